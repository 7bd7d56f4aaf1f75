"""
Timesheet conflict detection service.
Overlapping entries for the same worker on the same day are flagged on both
sides; the save itself is never blocked.
"""
from datetime import datetime
from typing import List, Set

import structlog

from ..models.models import TimesheetEntry, Timesheet
from .time_rules import ensure_utc

logger = structlog.get_logger(__name__)


def intervals_conflict(new_in: datetime, new_out: datetime, other_in: datetime, other_out: datetime) -> bool:
    """
    Check if an existing interval collides with a new one.

    True when the other interval starts inside the new one, ends inside it,
    or fully contains it.
    """
    new_in, new_out = ensure_utc(new_in), ensure_utc(new_out)
    other_in, other_out = ensure_utc(other_in), ensure_utc(other_out)
    starts_inside = new_in <= other_in < new_out
    ends_inside = new_in < other_out <= new_out
    contains = other_in <= new_in and other_out >= new_out
    return starts_inside or ends_inside or contains


def _has_clock_times(entry: TimesheetEntry) -> bool:
    return entry.clock_in is not None and entry.clock_out is not None


def find_conflicting_entries(repos, entry: TimesheetEntry, worker_id) -> List[TimesheetEntry]:
    if not _has_clock_times(entry):
        return []
    candidates = repos.timesheets.entries_for_worker_on(worker_id, entry.work_date)
    return [
        other for other in candidates
        if other.id != entry.id
        and _has_clock_times(other)
        and intervals_conflict(entry.clock_in, entry.clock_out, other.clock_in, other.clock_out)
    ]


def refresh_entry_conflicts(repos, entry: TimesheetEntry, worker_id) -> Set[Timesheet]:
    """
    Re-evaluate conflicts for one entry after it was created, moved or cleared.

    Matches get a mutual reference; entries that referenced this one from a
    previous position are released. Returns every timesheet whose entries
    changed so the caller can refresh their flags and totals.
    """
    # Pending inserts and clock changes must be visible to the lookup
    repos.db.flush()

    entry_id = str(entry.id)
    previous = set(entry.conflict_with or [])
    matches = find_conflicting_entries(repos, entry, worker_id)
    match_ids = {str(m.id) for m in matches}
    touched = {entry.timesheet}

    for other in matches:
        refs = set(other.conflict_with or [])
        refs.add(entry_id)
        other.conflict_with = sorted(refs)
        other.is_conflict = True
        touched.add(other.timesheet)

    for stale in repos.timesheets.entries_by_ids(previous - match_ids):
        refs = set(stale.conflict_with or [])
        refs.discard(entry_id)
        stale.conflict_with = sorted(refs)
        stale.is_conflict = bool(refs)
        touched.add(stale.timesheet)

    entry.conflict_with = sorted(match_ids)
    entry.is_conflict = bool(match_ids)

    if match_ids:
        logger.info(
            "timesheet_conflict_detected",
            entry_id=entry_id,
            worker_id=str(worker_id),
            work_date=entry.work_date.isoformat(),
            conflict_with=sorted(match_ids),
        )

    for timesheet in touched:
        if timesheet is not None:
            timesheet.refresh_conflict_flag()
    return {t for t in touched if t is not None}


def release_entry_conflicts(repos, entry: TimesheetEntry) -> Set[Timesheet]:
    """Drop every reference other entries hold to ``entry`` (used on soft delete)."""
    entry_id = str(entry.id)
    touched = set()
    for other in repos.timesheets.entries_by_ids(entry.conflict_with or []):
        refs = set(other.conflict_with or [])
        refs.discard(entry_id)
        other.conflict_with = sorted(refs)
        other.is_conflict = bool(refs)
        touched.add(other.timesheet)
    entry.conflict_with = []
    entry.is_conflict = False
    for timesheet in touched:
        timesheet.refresh_conflict_flag()
    return touched
