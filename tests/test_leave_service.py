import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest

from payhub.errors import Conflict, Forbidden, InsufficientLeaveBalance, InvalidTransition
from payhub.models.models import LeaveBalance, LeaveType
from payhub.services import leave_service, timesheet_service
from payhub.services.permissions import Actor

MONDAY = date(2024, 4, 1)


@pytest.fixture()
def worker(make_worker):
    return make_worker("hourly", hourlyRate=10)


@pytest.fixture()
def annual(make_leave_type):
    return make_leave_type(name="Annual Leave", is_paid=True)


@pytest.fixture()
def balance(db, worker, annual):
    balance = LeaveBalance(
        company_id=worker.company_id,
        worker_id=worker.id,
        leave_type_id=annual.id,
        year=2024,
        total_days=Decimal("10"),
        used_days=Decimal("0"),
        pending_days=Decimal("0"),
    )
    db.add(balance)
    db.commit()
    return balance


@pytest.mark.parametrize("name,code,expected", [
    ("Annual Leave", None, "AL"),
    ("Sick Leave", None, "MC"),
    ("Medical", None, "MC"),
    ("Unpaid Leave", None, "UL"),
    ("Compassionate", "CL", "CL"),
    ("Compassionate", None, "UL"),
])
def test_leave_codes(name, code, expected):
    assert leave_service.leave_code_for(LeaveType(name=name, code=code)) == expected


def test_request_reserves_balance(db, repos, worker, annual, balance, agent):
    request = leave_service.create_leave_request(repos, worker.id, annual.id, date(2024, 4, 2), date(2024, 4, 4), agent)
    assert request.status == "pending"
    assert request.total_days == Decimal("3")
    db.refresh(balance)
    assert balance.pending_days == Decimal("3")
    assert balance.remaining_days == Decimal("7")


def test_request_weekdays_only_by_default(repos, worker, annual, agent):
    # Friday to Monday covers two weekdays
    request = leave_service.create_leave_request(repos, worker.id, annual.id, date(2024, 4, 5), date(2024, 4, 8), agent)
    assert request.total_days == Decimal("2")


def test_insufficient_balance(db, repos, worker, annual, balance, agent):
    balance.used_days = Decimal("9")
    db.commit()
    with pytest.raises(InsufficientLeaveBalance):
        leave_service.create_leave_request(repos, worker.id, annual.id, date(2024, 4, 2), date(2024, 4, 3), agent)


def test_overlapping_request_rejected(repos, worker, annual, agent):
    leave_service.create_leave_request(repos, worker.id, annual.id, date(2024, 4, 2), date(2024, 4, 4), agent)
    with pytest.raises(Conflict):
        leave_service.create_leave_request(repos, worker.id, annual.id, date(2024, 4, 4), date(2024, 4, 5), agent)


def test_approve_marks_timesheet_and_recalculates(db, repos, worker, annual, balance, make_timesheet, agent, subcon_admin):
    timesheet = make_timesheet(worker, MONDAY)
    for day in (date(2024, 4, 1), date(2024, 4, 2), date(2024, 4, 3)):
        timesheet_service.record_attendance(
            repos, timesheet.id, day, datetime(2024, 4, day.day, 9), datetime(2024, 4, day.day, 17), agent
        )

    request = leave_service.create_leave_request(repos, worker.id, annual.id, date(2024, 4, 2), date(2024, 4, 3), agent)
    approved = leave_service.approve_leave(repos, request.id, subcon_admin)
    assert approved.status == "approved"
    assert approved.reviewed_by == uuid.UUID(subcon_admin.user_id)

    db.refresh(balance)
    assert balance.pending_days == 0
    assert balance.used_days == Decimal("2")

    db.refresh(timesheet)
    on_leave = [e for e in timesheet.entries if e.work_date in (date(2024, 4, 2), date(2024, 4, 3))]
    assert all(e.is_absent and e.leave_type == "AL" and e.total_hours == 0 for e in on_leave)
    assert timesheet.total_hours == Decimal("8.00")


def test_cancel_approved_restores_balance_and_timesheet(db, repos, worker, annual, balance, make_timesheet, agent, admin):
    timesheet = make_timesheet(worker, MONDAY)
    request = leave_service.create_leave_request(repos, worker.id, annual.id, date(2024, 4, 2), date(2024, 4, 2), agent)
    leave_service.approve_leave(repos, request.id, admin)

    cancelled = leave_service.cancel_leave(repos, request.id, admin)
    assert cancelled.status == "cancelled"
    db.refresh(balance)
    assert balance.used_days == 0
    db.refresh(timesheet)
    tuesday = next(e for e in timesheet.entries if e.work_date == date(2024, 4, 2))
    assert tuesday.is_absent is False
    assert tuesday.leave_type is None


def test_reject_releases_pending(db, repos, worker, annual, balance, agent):
    request = leave_service.create_leave_request(repos, worker.id, annual.id, date(2024, 4, 2), date(2024, 4, 4), agent)
    rejected = leave_service.reject_leave(repos, request.id, agent)
    assert rejected.status == "rejected"
    db.refresh(balance)
    assert balance.pending_days == 0

    with pytest.raises(InvalidTransition):
        leave_service.approve_leave(repos, request.id, agent)


def test_worker_requests_and_withdraws_own_leave(repos, worker, annual):
    me = Actor(user_id=str(uuid.uuid4()), role="worker", company_id=str(worker.company_id), worker_id=str(worker.id))
    request = leave_service.create_leave_request(repos, worker.id, annual.id, date(2024, 4, 2), date(2024, 4, 2), me)

    with pytest.raises(Forbidden):
        leave_service.approve_leave(repos, request.id, me)
    assert leave_service.cancel_leave(repos, request.id, me).status == "cancelled"
