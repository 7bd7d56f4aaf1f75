"""
Timesheet operations: attendance ingestion, manual edits, holiday and leave
fills, weekly generation and soft delete.

Every path that touches entries finishes with ``Timesheet.recalculate_totals()``
on each timesheet it changed, so week totals always equal the sum of entries.
"""
from datetime import date, datetime
from typing import Dict, Iterable, Optional

import structlog

from ..errors import Forbidden, InvalidInput, NotFound
from ..models.models import Timesheet, TimesheetEntry, GazettedHoliday, LeaveRequest
from .audit import create_audit_log, compute_diff
from .permissions import Actor, can_edit_timesheet, can_generate_timesheets, can_manage_holidays
from .statutory import to_decimal, ZERO
from .time_rules import (
    day_name,
    ensure_utc,
    iter_days,
    local_date,
    split_hours,
    week_bounds,
    worked_hours,
)
from .timesheet_conflict import refresh_entry_conflicts, release_entry_conflicts
from .timesheet_workflow import ensure_editable, is_locked, load_timesheet

logger = structlog.get_logger(__name__)

CLOCK_FIELDS = ("clock_in", "clock_out", "lunch_out", "lunch_in")
HOUR_FIELDS = ("normal_hours", "ot1_5_hours", "ot2_0_hours")
EDITABLE_FIELDS = CLOCK_FIELDS + HOUR_FIELDS + ("is_absent", "leave_type", "notes", "check_in_method")
TIERED_WORKER_TYPES = ("hourly", "unit-based")


def _apply_clock_hours(entry: TimesheetEntry) -> None:
    if entry.clock_in is None or entry.clock_out is None:
        entry.normal_hours = entry.ot1_5_hours = entry.ot2_0_hours = entry.total_hours = ZERO
        return
    split = split_hours(worked_hours(entry.clock_in, entry.clock_out, entry.lunch_out, entry.lunch_in))
    entry.normal_hours = split.normal
    entry.ot1_5_hours = split.ot1_5
    entry.ot2_0_hours = split.ot2_0
    entry.total_hours = split.total


def _recalculate(timesheets: Iterable[Timesheet]) -> None:
    for timesheet in {t for t in timesheets if t is not None}:
        timesheet.recalculate_totals()


def _check_work_date(repos, timesheet: Timesheet, work_date: date, clock_in: datetime) -> None:
    """The entry must sit on the company-local date its shift starts."""
    company = repos.companies.get(timesheet.company_id)
    timezone_str = company.timezone if company is not None else None
    started_on = local_date(clock_in, timezone_str)
    if started_on != work_date:
        raise InvalidInput(f"clock_in falls on {started_on} (company time), not on {work_date}")


def build_week_timesheet(worker, week_start: date, created_by=None) -> Timesheet:
    """An empty draft timesheet with one entry per day of the week."""
    monday, sunday = week_bounds(week_start)
    timesheet = Timesheet(
        company_id=worker.company_id,
        worker_id=worker.id,
        week_start_date=monday,
        week_end_date=sunday,
        status="draft",
        approval_history=[],
        edit_history=[],
        created_by=created_by,
    )
    for day in iter_days(monday, sunday):
        timesheet.entries.append(TimesheetEntry(
            work_date=day,
            day_of_week=day_name(day),
            normal_hours=ZERO,
            ot1_5_hours=ZERO,
            ot2_0_hours=ZERO,
            total_hours=ZERO,
            is_absent=False,
            is_conflict=False,
            conflict_with=[],
        ))
    timesheet.recalculate_totals()
    return timesheet


def record_attendance(
    repos,
    timesheet_id,
    work_date: date,
    clock_in: datetime,
    clock_out: datetime,
    actor: Actor,
    lunch_out: Optional[datetime] = None,
    lunch_in: Optional[datetime] = None,
    check_in_method: str = "manual",
    notes: Optional[str] = None,
) -> Timesheet:
    """
    Record a worked interval for one day.

    Fills the day's empty entry when there is one; a second interval on the
    same day becomes an additional entry (split shift).
    """
    timesheet = load_timesheet(repos, timesheet_id, actor)
    if not can_edit_timesheet(actor, timesheet):
        raise Forbidden("Not allowed to record attendance on this timesheet")
    ensure_editable(timesheet)

    if not (timesheet.week_start_date <= work_date <= timesheet.week_end_date):
        raise InvalidInput(
            f"{work_date} is outside the timesheet week {timesheet.week_start_date} - {timesheet.week_end_date}"
        )
    if ensure_utc(clock_out) <= ensure_utc(clock_in):
        raise InvalidInput("clock_out must be after clock_in")
    _check_work_date(repos, timesheet, work_date, clock_in)

    entry = next(
        (e for e in timesheet.entries
         if e.work_date == work_date and e.clock_in is None and not e.is_absent),
        None,
    )
    if entry is None:
        entry = TimesheetEntry(work_date=work_date, day_of_week=day_name(work_date), conflict_with=[])
        timesheet.entries.append(entry)

    # Stored as UTC; naive values coming back from the database are read as UTC
    entry.clock_in = ensure_utc(clock_in)
    entry.clock_out = ensure_utc(clock_out)
    entry.lunch_out = ensure_utc(lunch_out) if lunch_out else None
    entry.lunch_in = ensure_utc(lunch_in) if lunch_in else None
    entry.check_in_method = check_in_method
    if notes is not None:
        entry.notes = notes
    _apply_clock_hours(entry)

    touched = refresh_entry_conflicts(repos, entry, timesheet.worker_id)
    touched.add(timesheet)
    _recalculate(touched)
    timesheet.last_modified_by = actor.user_uuid
    timesheet.updated_at = datetime.utcnow()
    repos.db.commit()
    repos.db.refresh(timesheet)

    logger.info(
        "attendance_recorded",
        timesheet_id=str(timesheet.id),
        entry_id=str(entry.id),
        work_date=work_date.isoformat(),
        total_hours=str(entry.total_hours),
    )
    return timesheet


def _snapshot(entry: TimesheetEntry) -> Dict:
    snapshot = {}
    for name in EDITABLE_FIELDS:
        value = getattr(entry, name)
        if isinstance(value, datetime):
            value = ensure_utc(value).isoformat()
        elif name in HOUR_FIELDS:
            value = to_decimal(value)
        snapshot[name] = value
    return snapshot


def update_entry(repos, entry_id, changes: Dict, actor: Actor) -> Timesheet:
    """Manual edit of one entry; every changed field lands in the timesheet's edit history."""
    entry = repos.timesheets.get_entry(entry_id)
    if entry is None or entry.timesheet is None or entry.timesheet.is_deleted:
        raise NotFound(f"Timesheet entry {entry_id} not found")
    timesheet = load_timesheet(repos, entry.timesheet_id, actor)
    if not can_edit_timesheet(actor, timesheet):
        raise Forbidden("Not allowed to edit this timesheet")
    ensure_editable(timesheet)

    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise InvalidInput(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    before = _snapshot(entry)
    for name, value in changes.items():
        if name in CLOCK_FIELDS and value is not None:
            value = ensure_utc(value)
        elif name in HOUR_FIELDS:
            value = to_decimal(value)
        setattr(entry, name, value)

    if entry.clock_in is not None and entry.clock_out is not None and ensure_utc(entry.clock_out) <= ensure_utc(entry.clock_in):
        raise InvalidInput("clock_out must be after clock_in")
    if "clock_in" in changes and entry.clock_in is not None:
        _check_work_date(repos, timesheet, entry.work_date, entry.clock_in)

    touched = {timesheet}
    if any(name in CLOCK_FIELDS for name in changes):
        # Clock changes win over hour values sent in the same edit
        _apply_clock_hours(entry)
        touched |= refresh_entry_conflicts(repos, entry, timesheet.worker_id)
    elif any(name in HOUR_FIELDS for name in changes):
        entry.total_hours = sum((to_decimal(getattr(entry, f)) for f in HOUR_FIELDS), ZERO)

    diff = compute_diff(before, _snapshot(entry))
    if diff:
        edited_at = datetime.utcnow().isoformat()
        rows = [
            {
                "entry_id": str(entry.id),
                "field": name,
                "before": str(values["before"]) if values["before"] is not None else None,
                "after": str(values["after"]) if values["after"] is not None else None,
                "edited_by": actor.user_id,
                "edited_at": edited_at,
            }
            for name, values in sorted(diff.items())
        ]
        timesheet.edit_history = list(timesheet.edit_history or []) + rows
        timesheet.manually_edited = True

    _recalculate(touched)
    timesheet.last_modified_by = actor.user_uuid
    timesheet.updated_at = datetime.utcnow()
    create_audit_log(
        repos.db,
        entity_type="timesheet",
        entity_id=timesheet.id,
        action="UPDATE",
        actor=actor,
        company_id=timesheet.company_id,
        changes_json={k: {"before": str(v["before"]), "after": str(v["after"])} for k, v in diff.items()},
        context={"entry_id": str(entry.id)},
    )
    repos.db.commit()
    repos.db.refresh(timesheet)
    return timesheet


def _mark_absent(repos, timesheet: Timesheet, days: Iterable[date], leave_code: str) -> int:
    day_set = set(days)
    touched = {timesheet}
    changed = 0
    for entry in timesheet.entries:
        if entry.work_date not in day_set:
            continue
        entry.is_absent = True
        entry.leave_type = leave_code
        entry.clear_hours()
        touched |= refresh_entry_conflicts(repos, entry, timesheet.worker_id)
        changed += 1
    _recalculate(touched)
    return changed


def apply_holiday(repos, holiday: GazettedHoliday) -> int:
    """
    Mark every entry on the holiday date as absent ('PH') across the company.

    Locked timesheets are left untouched. Does not commit.
    """
    updated = 0
    for timesheet in repos.timesheets.list_covering(holiday.company_id, holiday.holiday_date, holiday.holiday_date):
        if is_locked(timesheet):
            logger.info(
                "holiday_fill_skipped",
                timesheet_id=str(timesheet.id),
                status=timesheet.status,
                holiday_date=holiday.holiday_date.isoformat(),
            )
            continue
        updated += _mark_absent(repos, timesheet, [holiday.holiday_date], "PH")
    logger.info("holiday_applied", holiday_id=str(holiday.id), entries_updated=updated)
    return updated


def create_holiday(repos, company_id, name: str, holiday_date: date, actor: Actor,
                   holiday_type: str = "public", is_paid: bool = True) -> GazettedHoliday:
    company = repos.companies.get(company_id)
    if company is None:
        raise NotFound(f"Company {company_id} not found")
    if not can_manage_holidays(actor, company.id):
        raise Forbidden("Not allowed to manage holidays for this company")

    holiday = GazettedHoliday(
        company_id=company.id,
        name=name,
        holiday_date=holiday_date,
        holiday_type=holiday_type,
        is_paid=is_paid,
        is_active=True,
    )
    repos.holidays.add(holiday)
    repos.db.flush()
    apply_holiday(repos, holiday)
    repos.db.commit()
    repos.db.refresh(holiday)
    return holiday


def fill_leave(repos, leave_request: LeaveRequest, leave_code: str) -> int:
    """Mark the worker's entries inside an approved leave as absent. Does not commit."""
    days = list(iter_days(leave_request.start_date, leave_request.end_date))
    updated = 0
    for timesheet in repos.timesheets.list_covering(
        leave_request.company_id, leave_request.start_date, leave_request.end_date,
        worker_id=leave_request.worker_id,
    ):
        if is_locked(timesheet):
            logger.info("leave_fill_skipped", timesheet_id=str(timesheet.id), status=timesheet.status)
            continue
        updated += _mark_absent(repos, timesheet, days, leave_code)
    return updated


def clear_leave(repos, leave_request: LeaveRequest, leave_code: str) -> int:
    """Undo ``fill_leave`` for a cancelled leave. Does not commit."""
    updated = 0
    for timesheet in repos.timesheets.list_covering(
        leave_request.company_id, leave_request.start_date, leave_request.end_date,
        worker_id=leave_request.worker_id,
    ):
        if is_locked(timesheet):
            logger.info("leave_clear_skipped", timesheet_id=str(timesheet.id), status=timesheet.status)
            continue
        for entry in timesheet.entries:
            if (leave_request.start_date <= entry.work_date <= leave_request.end_date
                    and entry.is_absent and entry.leave_type == leave_code):
                entry.is_absent = False
                entry.leave_type = None
                entry.clear_hours()
                updated += 1
        timesheet.recalculate_totals()
    return updated


def generate_weekly_timesheets(repos, company_id, week_of: date, actor: Actor) -> Dict[str, int]:
    """Create the week's empty timesheet for every active hourly and unit-based worker lacking one."""
    company = repos.companies.get(company_id)
    if company is None:
        raise NotFound(f"Company {company_id} not found")
    if not can_generate_timesheets(actor, company.id):
        raise Forbidden("Not allowed to generate timesheets for this company")

    monday, _ = week_bounds(week_of)
    workers = repos.workers.list_active(company.id, TIERED_WORKER_TYPES)
    created = 0
    skipped = 0
    for worker in workers:
        if repos.timesheets.find_for_week(worker.id, monday) is not None:
            skipped += 1
            continue
        repos.timesheets.add(build_week_timesheet(worker, monday, created_by=actor.user_uuid))
        created += 1

    repos.db.commit()
    logger.info(
        "weekly_timesheets_generated",
        company_id=str(company.id),
        week_start=monday.isoformat(),
        created=created,
        skipped=skipped,
    )
    return {"created": created, "skipped": skipped, "total": len(workers)}


def delete_timesheet(repos, timesheet_id, actor: Actor) -> None:
    timesheet = load_timesheet(repos, timesheet_id, actor)
    if not can_edit_timesheet(actor, timesheet):
        raise Forbidden("Not allowed to delete this timesheet")
    ensure_editable(timesheet)

    timesheet.is_deleted = True
    touched = set()
    for entry in timesheet.entries:
        touched |= release_entry_conflicts(repos, entry)
    _recalculate(touched | {timesheet})
    timesheet.last_modified_by = actor.user_uuid
    timesheet.updated_at = datetime.utcnow()
    create_audit_log(
        repos.db,
        entity_type="timesheet",
        entity_id=timesheet.id,
        action="DELETE",
        actor=actor,
        company_id=timesheet.company_id,
    )
    repos.db.commit()
    logger.info("timesheet_deleted", timesheet_id=str(timesheet.id))
