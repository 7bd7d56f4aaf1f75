"""
Entity repositories over a SQLAlchemy session.

Services and calculators receive a ``Repositories`` bundle built from the
request's session (see ``get_repos``).
"""
import uuid
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Iterable

from fastapi import Depends
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .db import get_db
from .models.models import (
    Company,
    Worker,
    Timesheet,
    TimesheetEntry,
    UnitRecord,
    LeaveType,
    LeaveBalance,
    LeaveRequest,
    GazettedHoliday,
    Loan,
    PayrollRecord,
)


def _as_uuid(value) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


class _Repository:
    model = None

    def __init__(self, db: Session):
        self.db = db

    def get(self, obj_id) -> Optional[object]:
        try:
            key = _as_uuid(obj_id)
        except (ValueError, TypeError):
            return None
        return self.db.get(self.model, key)

    def add(self, obj):
        self.db.add(obj)
        return obj


class CompanyRepository(_Repository):
    model = Company


class WorkerRepository(_Repository):
    model = Worker

    def count_active(self, company_id) -> int:
        return (
            self.db.query(Worker)
            .filter(Worker.company_id == _as_uuid(company_id), Worker.is_active == True)
            .count()
        )

    def list_active(self, company_id, payment_types: Optional[Iterable[str]] = None) -> List[Worker]:
        query = self.db.query(Worker).filter(
            Worker.company_id == _as_uuid(company_id),
            Worker.is_active == True,
        )
        if payment_types:
            query = query.filter(Worker.payment_type.in_(list(payment_types)))
        return query.order_by(Worker.first_name.asc()).all()


class TimesheetRepository(_Repository):
    model = Timesheet

    def get_active(self, timesheet_id) -> Optional[Timesheet]:
        timesheet = self.get(timesheet_id)
        if timesheet is None or timesheet.is_deleted:
            return None
        return timesheet

    def get_entry(self, entry_id) -> Optional[TimesheetEntry]:
        try:
            key = _as_uuid(entry_id)
        except (ValueError, TypeError):
            return None
        return self.db.get(TimesheetEntry, key)

    def find_for_week(self, worker_id, week_start: date) -> Optional[Timesheet]:
        return (
            self.db.query(Timesheet)
            .filter(
                Timesheet.worker_id == _as_uuid(worker_id),
                Timesheet.week_start_date == week_start,
                Timesheet.is_deleted == False,
            )
            .first()
        )

    def list_approved_in_period(self, worker_id, period_start: date, period_end: date) -> List[Timesheet]:
        return (
            self.db.query(Timesheet)
            .filter(
                Timesheet.worker_id == _as_uuid(worker_id),
                Timesheet.week_start_date >= period_start,
                Timesheet.week_start_date <= period_end,
                Timesheet.status.in_(["approved_admin", "approved"]),
                Timesheet.is_deleted == False,
            )
            .order_by(Timesheet.week_start_date.asc())
            .all()
        )

    def list_covering(self, company_id, start: date, end: date, worker_id=None) -> List[Timesheet]:
        """Non-deleted timesheets whose week intersects [start, end]."""
        query = self.db.query(Timesheet).filter(
            Timesheet.company_id == _as_uuid(company_id),
            Timesheet.week_start_date <= end,
            Timesheet.week_end_date >= start,
            Timesheet.is_deleted == False,
        )
        if worker_id is not None:
            query = query.filter(Timesheet.worker_id == _as_uuid(worker_id))
        return query.all()

    def entries_for_worker_on(self, worker_id, work_date: date) -> List[TimesheetEntry]:
        return (
            self.db.query(TimesheetEntry)
            .join(Timesheet, TimesheetEntry.timesheet_id == Timesheet.id)
            .filter(
                Timesheet.worker_id == _as_uuid(worker_id),
                Timesheet.is_deleted == False,
                TimesheetEntry.work_date == work_date,
            )
            .all()
        )

    def entries_by_ids(self, entry_ids: Iterable[str]) -> List[TimesheetEntry]:
        keys = []
        for entry_id in entry_ids:
            try:
                keys.append(_as_uuid(entry_id))
            except (ValueError, TypeError):
                continue
        if not keys:
            return []
        return self.db.query(TimesheetEntry).filter(TimesheetEntry.id.in_(keys)).all()


class UnitRecordRepository(_Repository):
    model = UnitRecord

    def list_approved_in_period(self, worker_id, period_start: date, period_end: date) -> List[UnitRecord]:
        return (
            self.db.query(UnitRecord)
            .filter(
                UnitRecord.worker_id == _as_uuid(worker_id),
                UnitRecord.work_date >= period_start,
                UnitRecord.work_date <= period_end,
                UnitRecord.status == "approved",
            )
            .order_by(UnitRecord.work_date.asc())
            .all()
        )


class LeaveRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_request(self, request_id) -> Optional[LeaveRequest]:
        try:
            key = _as_uuid(request_id)
        except (ValueError, TypeError):
            return None
        return self.db.get(LeaveRequest, key)

    def get_type(self, leave_type_id) -> Optional[LeaveType]:
        try:
            key = _as_uuid(leave_type_id)
        except (ValueError, TypeError):
            return None
        return self.db.get(LeaveType, key)

    def find_balance(self, worker_id, leave_type_id, year: int) -> Optional[LeaveBalance]:
        return (
            self.db.query(LeaveBalance)
            .filter(
                LeaveBalance.worker_id == _as_uuid(worker_id),
                LeaveBalance.leave_type_id == _as_uuid(leave_type_id),
                LeaveBalance.year == year,
            )
            .first()
        )

    def approved_in_period(self, worker_id, period_start: date, period_end: date) -> List[LeaveRequest]:
        return (
            self.db.query(LeaveRequest)
            .filter(
                LeaveRequest.worker_id == _as_uuid(worker_id),
                LeaveRequest.status == "approved",
                LeaveRequest.start_date <= period_end,
                LeaveRequest.end_date >= period_start,
            )
            .all()
        )

    def overlapping(self, worker_id, start: date, end: date) -> List[LeaveRequest]:
        return (
            self.db.query(LeaveRequest)
            .filter(
                LeaveRequest.worker_id == _as_uuid(worker_id),
                or_(LeaveRequest.status == "pending", LeaveRequest.status == "approved"),
                LeaveRequest.start_date <= end,
                LeaveRequest.end_date >= start,
            )
            .all()
        )

    def add(self, obj):
        self.db.add(obj)
        return obj


class HolidayRepository(_Repository):
    model = GazettedHoliday

    def active_dates_between(self, company_id, start: date, end: date) -> List[date]:
        rows = (
            self.db.query(GazettedHoliday.holiday_date)
            .filter(
                GazettedHoliday.company_id == _as_uuid(company_id),
                GazettedHoliday.is_active == True,
                GazettedHoliday.holiday_date >= start,
                GazettedHoliday.holiday_date <= end,
            )
            .all()
        )
        return [r[0] for r in rows]


class LoanRepository(_Repository):
    model = Loan

    def active_for_worker(self, worker_id) -> List[Loan]:
        return (
            self.db.query(Loan)
            .filter(
                Loan.worker_id == _as_uuid(worker_id),
                Loan.status == "active",
                Loan.remaining_amount > 0,
            )
            .order_by(Loan.created_at.asc())
            .all()
        )


class PayrollRecordRepository(_Repository):
    model = PayrollRecord

    def find_for_period(self, company_id, worker_id, period_start: date, period_end: date) -> Optional[PayrollRecord]:
        return (
            self.db.query(PayrollRecord)
            .filter(
                PayrollRecord.company_id == _as_uuid(company_id),
                PayrollRecord.worker_id == _as_uuid(worker_id),
                PayrollRecord.period_start == period_start,
                PayrollRecord.period_end == period_end,
            )
            .first()
        )


@dataclass
class Repositories:
    db: Session
    companies: CompanyRepository
    workers: WorkerRepository
    timesheets: TimesheetRepository
    unit_records: UnitRecordRepository
    leave: LeaveRepository
    holidays: HolidayRepository
    loans: LoanRepository
    payroll: PayrollRecordRepository

    @classmethod
    def from_session(cls, db: Session) -> "Repositories":
        return cls(
            db=db,
            companies=CompanyRepository(db),
            workers=WorkerRepository(db),
            timesheets=TimesheetRepository(db),
            unit_records=UnitRecordRepository(db),
            leave=LeaveRepository(db),
            holidays=HolidayRepository(db),
            loans=LoanRepository(db),
            payroll=PayrollRecordRepository(db),
        )


def get_repos(db: Session = Depends(get_db)) -> Repositories:
    return Repositories.from_session(db)
