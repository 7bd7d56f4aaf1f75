from datetime import date, datetime
from decimal import Decimal

import pytest

from payhub.errors import InvalidInput, TimesheetLocked, Forbidden
from payhub.models.models import Timesheet, Worker
from payhub.services import timesheet_service
from payhub.services.timesheet_conflict import intervals_conflict

MONDAY = date(2024, 4, 1)
TUESDAY = date(2024, 4, 2)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


def _sum_entries(timesheet):
    return sum((e.total_hours for e in timesheet.entries), Decimal("0"))


@pytest.fixture()
def worker(make_worker):
    return make_worker("hourly", hourlyRate=10)


@pytest.fixture()
def timesheet(worker, make_timesheet):
    return make_timesheet(worker, MONDAY)


def test_build_week_timesheet_has_seven_days(timesheet):
    assert [e.day_of_week for e in timesheet.entries] == ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    assert timesheet.week_end_date == date(2024, 4, 7)
    assert timesheet.total_hours == 0


def test_attendance_tiers_hours_and_updates_totals(repos, timesheet, agent):
    updated = timesheet_service.record_attendance(
        repos, timesheet.id, MONDAY, at(MONDAY, 8), at(MONDAY, 20), agent,
        lunch_out=at(MONDAY, 12), lunch_in=at(MONDAY, 13),
    )
    monday = next(e for e in updated.entries if e.work_date == MONDAY and e.clock_in is not None)
    assert monday.total_hours == Decimal("11.00")
    assert monday.normal_hours == Decimal("8.00")
    assert monday.ot1_5_hours == Decimal("2.00")
    assert monday.ot2_0_hours == Decimal("1.00")
    assert updated.total_hours == Decimal("11.00")
    assert updated.total_ot2_0_hours == Decimal("1.00")
    assert len(updated.entries) == 7


def test_attendance_outside_week_is_rejected(repos, timesheet, agent):
    with pytest.raises(InvalidInput):
        timesheet_service.record_attendance(repos, timesheet.id, date(2024, 4, 8), at(date(2024, 4, 8), 9), at(date(2024, 4, 8), 17), agent)


def test_attendance_clock_out_before_clock_in(repos, timesheet, agent):
    with pytest.raises(InvalidInput):
        timesheet_service.record_attendance(repos, timesheet.id, MONDAY, at(MONDAY, 17), at(MONDAY, 9), agent)


def test_overlapping_entries_flag_each_other(repos, timesheet, agent):
    timesheet_service.record_attendance(repos, timesheet.id, MONDAY, at(MONDAY, 9), at(MONDAY, 13), agent)
    updated = timesheet_service.record_attendance(repos, timesheet.id, MONDAY, at(MONDAY, 12), at(MONDAY, 17), agent)

    first, second = sorted(
        (e for e in updated.entries if e.work_date == MONDAY),
        key=lambda e: e.clock_in,
    )
    assert first.is_conflict and second.is_conflict
    assert first.conflict_with == [str(second.id)]
    assert second.conflict_with == [str(first.id)]
    assert updated.is_conflict is True


def test_split_shift_without_overlap_is_clean(repos, timesheet, agent):
    timesheet_service.record_attendance(repos, timesheet.id, MONDAY, at(MONDAY, 8), at(MONDAY, 12), agent)
    updated = timesheet_service.record_attendance(repos, timesheet.id, MONDAY, at(MONDAY, 12), at(MONDAY, 16), agent)
    assert not any(e.is_conflict for e in updated.entries)
    assert updated.total_hours == Decimal("8.00")


def test_moving_an_entry_clears_stale_conflicts(repos, timesheet, agent):
    timesheet_service.record_attendance(repos, timesheet.id, MONDAY, at(MONDAY, 9), at(MONDAY, 13), agent)
    updated = timesheet_service.record_attendance(repos, timesheet.id, MONDAY, at(MONDAY, 12), at(MONDAY, 17), agent)
    late = max((e for e in updated.entries if e.work_date == MONDAY and e.clock_in), key=lambda e: e.clock_in)

    updated = timesheet_service.update_entry(repos, late.id, {"clock_in": at(MONDAY, 14)}, agent)
    assert not any(e.is_conflict for e in updated.entries)
    assert all(e.conflict_with == [] for e in updated.entries)
    assert updated.is_conflict is False


def test_conflict_across_timesheets(db, repos, worker, timesheet, agent):
    # A second (e.g. duplicated) timesheet for the same worker and week
    other = timesheet_service.build_week_timesheet(worker, MONDAY)
    db.add(other)
    db.commit()

    timesheet_service.record_attendance(repos, timesheet.id, TUESDAY, at(TUESDAY, 9), at(TUESDAY, 17), agent)
    timesheet_service.record_attendance(repos, other.id, TUESDAY, at(TUESDAY, 10), at(TUESDAY, 12), agent)

    db.refresh(timesheet)
    db.refresh(other)
    assert timesheet.is_conflict is True
    assert other.is_conflict is True


@pytest.mark.parametrize("other,expected", [
    ((9, 13), True),    # identical
    ((10, 11), True),   # starts inside
    ((7, 10), True),    # ends inside
    ((8, 18), True),    # contains
    ((13, 17), False),  # touches the end
    ((6, 9), False),    # touches the start
])
def test_interval_conflict_rules(other, expected):
    assert intervals_conflict(at(MONDAY, 9), at(MONDAY, 13), at(MONDAY, other[0]), at(MONDAY, other[1])) is expected


def test_manual_edit_records_history(repos, timesheet, agent):
    entry = timesheet.entries[1]
    updated = timesheet_service.update_entry(
        repos, entry.id, {"normal_hours": 6, "ot1_5_hours": 1, "notes": "Site closed early"}, agent
    )
    assert updated.manually_edited is True
    fields = sorted(row["field"] for row in updated.edit_history)
    assert fields == ["normal_hours", "notes", "ot1_5_hours"]
    assert updated.total_hours == Decimal("7")
    assert updated.total_hours == _sum_entries(updated)


def test_manual_edit_rejects_unknown_fields(repos, timesheet, agent):
    with pytest.raises(InvalidInput):
        timesheet_service.update_entry(repos, timesheet.entries[0].id, {"total_hours": 40}, agent)


def test_locked_timesheet_rejects_edits(repos, worker, make_timesheet, agent):
    locked = make_timesheet(worker, date(2024, 4, 8), status="approved_admin")
    with pytest.raises(TimesheetLocked):
        timesheet_service.record_attendance(repos, locked.id, date(2024, 4, 8), at(date(2024, 4, 8), 9), at(date(2024, 4, 8), 17), agent)
    with pytest.raises(TimesheetLocked):
        timesheet_service.update_entry(repos, locked.entries[0].id, {"notes": "late"}, agent)
    with pytest.raises(Forbidden):
        timesheet_service.delete_timesheet(repos, locked.id, agent)


def test_holiday_keeps_weekly_total_in_sync(db, repos, company, timesheet, agent, admin):
    for day in (MONDAY, TUESDAY, date(2024, 4, 3)):
        timesheet_service.record_attendance(repos, timesheet.id, day, at(day, 9), at(day, 17), agent)
    db.refresh(timesheet)
    assert timesheet.total_hours == Decimal("24.00")

    timesheet_service.create_holiday(repos, company.id, "Hari Raya", TUESDAY, admin)
    db.refresh(timesheet)

    tuesday = [e for e in timesheet.entries if e.work_date == TUESDAY]
    assert all(e.is_absent and e.leave_type == "PH" and e.total_hours == 0 for e in tuesday)
    assert timesheet.total_hours == Decimal("16.00")
    assert timesheet.total_hours == _sum_entries(timesheet)
    assert timesheet.total_normal_hours == Decimal("16.00")


def test_holiday_skips_locked_timesheets(db, repos, company, worker, make_timesheet, admin):
    locked = make_timesheet(worker, date(2024, 4, 8), status="approved_admin")
    locked.entries[1].normal_hours = Decimal("8")
    locked.entries[1].total_hours = Decimal("8")
    locked.recalculate_totals()
    db.commit()

    timesheet_service.create_holiday(repos, company.id, "Labour Day", date(2024, 4, 9), admin)
    db.refresh(locked)
    assert locked.entries[1].is_absent is False
    assert locked.total_hours == Decimal("8.00")


def test_generate_weekly_timesheets(db, repos, company, make_worker, admin):
    hourly = make_worker("hourly", hourlyRate=10)
    make_worker("unit-based")
    make_worker("monthly-salary", monthlySalary=3000)
    inactive = make_worker("hourly", hourlyRate=10)
    inactive.is_active = False
    db.commit()

    first = timesheet_service.generate_weekly_timesheets(repos, company.id, date(2024, 4, 10), admin)
    assert first == {"created": 2, "skipped": 0, "total": 2}

    second = timesheet_service.generate_weekly_timesheets(repos, company.id, date(2024, 4, 8), admin)
    assert second == {"created": 0, "skipped": 2, "total": 2}

    created = db.query(Timesheet).filter(Timesheet.worker_id == hourly.id).one()
    assert created.week_start_date == date(2024, 4, 8)
    assert created.status == "draft"
    assert len(created.entries) == 7


def test_soft_delete_releases_conflicts(db, repos, worker, timesheet, agent):
    other = timesheet_service.build_week_timesheet(worker, MONDAY)
    db.add(other)
    db.commit()
    timesheet_service.record_attendance(repos, timesheet.id, MONDAY, at(MONDAY, 9), at(MONDAY, 17), agent)
    timesheet_service.record_attendance(repos, other.id, MONDAY, at(MONDAY, 10), at(MONDAY, 12), agent)

    timesheet_service.delete_timesheet(repos, other.id, agent)
    db.refresh(timesheet)
    db.refresh(other)
    assert other.is_deleted is True
    assert timesheet.is_conflict is False
    assert all(not e.is_conflict for e in timesheet.entries)


def test_attendance_must_match_local_clock_in_date(db, repos, company, timesheet, agent):
    company.timezone = "Asia/Kuala_Lumpur"
    db.commit()
    # 01:00 UTC on Tuesday is 09:00 in Kuala Lumpur
    tuesday_morning = datetime(2024, 4, 2, 1, 0)
    tuesday_noon = datetime(2024, 4, 2, 5, 0)

    timesheet_service.record_attendance(repos, timesheet.id, TUESDAY, tuesday_morning, tuesday_noon, agent)
    with pytest.raises(InvalidInput):
        timesheet_service.record_attendance(
            repos, timesheet.id, MONDAY, datetime(2024, 4, 2, 2, 0), datetime(2024, 4, 2, 4, 0), agent
        )

    # 20:00 UTC on Monday is already Tuesday locally
    with pytest.raises(InvalidInput):
        timesheet_service.record_attendance(repos, timesheet.id, MONDAY, at(MONDAY, 20), at(MONDAY, 22), agent)

    updated = timesheet_service.record_attendance(
        repos, timesheet.id, TUESDAY, datetime(2024, 4, 2, 2, 0), datetime(2024, 4, 2, 4, 0), agent
    )
    tuesday = [e for e in updated.entries if e.work_date == TUESDAY and e.clock_in is not None]
    assert len(tuesday) == 2
    assert all(e.is_conflict for e in tuesday)


def test_attendance_uses_company_timezone(db, repos, company, timesheet, agent):
    company.timezone = "UTC"
    db.commit()
    updated = timesheet_service.record_attendance(repos, timesheet.id, MONDAY, at(MONDAY, 20), at(MONDAY, 22), agent)
    assert updated.total_hours == Decimal("2.00")


def test_manual_clock_edit_cannot_move_shift_to_another_day(repos, timesheet, agent):
    updated = timesheet_service.record_attendance(repos, timesheet.id, MONDAY, at(MONDAY, 9), at(MONDAY, 13), agent)
    monday = next(e for e in updated.entries if e.work_date == MONDAY and e.clock_in is not None)
    with pytest.raises(InvalidInput):
        timesheet_service.update_entry(
            repos, monday.id, {"clock_in": at(TUESDAY, 1), "clock_out": at(TUESDAY, 4)}, agent
        )
