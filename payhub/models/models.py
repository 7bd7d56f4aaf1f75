import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Integer,
    Numeric,
    JSON,
    UniqueConstraint,
    Text,
    Index,
    event,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


ZERO = Decimal("0")


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


def money(**kwargs):
    return mapped_column(Numeric(12, 2), **kwargs)


def hours(**kwargs):
    return mapped_column(Numeric(6, 2), **kwargs)


class Company(Base):
    """Tenant root"""
    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    registration_no: Mapped[Optional[str]] = mapped_column(String(100))
    timezone: Mapped[Optional[str]] = mapped_column(String(64))  # falls back to settings.tz_default
    # {"overtimeRates": {"ot1_5": 1.5, "ot2_0": 2.0}, "epfEnabled": true, "socsoEnabled": true, "eisEnabled": true}
    payroll_settings: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)
    max_workers: Mapped[Optional[int]] = mapped_column(Integer)  # subscription cap, None = unlimited
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    workers = relationship("Worker", back_populates="company")


class Worker(Base):
    __tablename__ = "workers"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_code: Mapped[Optional[str]] = mapped_column(String(50))
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    payment_type: Mapped[str] = mapped_column(String(20), nullable=False, default="hourly")  # monthly-salary|hourly|unit-based
    # {"monthlySalary", "hourlyRate", "unitRates": [...], "allowances": [...], "deductions": [...], "bankName", ...}
    payroll_info: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    deactivated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    company = relationship("Company", back_populates="workers")

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class Timesheet(Base):
    """One timesheet per worker per ISO week"""
    __tablename__ = "timesheets"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    worker_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("workers.id", ondelete="CASCADE"), nullable=False, index=True)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)  # Monday
    week_end_date: Mapped[date] = mapped_column(Date, nullable=False)  # Sunday

    # Week totals, written only by recalculate_totals()
    total_normal_hours: Mapped[Decimal] = hours(default=ZERO)
    total_ot1_5_hours: Mapped[Decimal] = hours(default=ZERO)
    total_ot2_0_hours: Mapped[Decimal] = hours(default=ZERO)
    total_hours: Mapped[Decimal] = hours(default=ZERO)

    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)  # draft|submitted|approved_subcon|approved_admin|rejected|cancelled
    approval_history: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    project: Mapped[Optional[dict]] = mapped_column(JSON)  # {name, code, location}
    description: Mapped[Optional[str]] = mapped_column(Text)

    manually_edited: Mapped[bool] = mapped_column(Boolean, default=False)
    edit_history: Mapped[Optional[list]] = mapped_column(JSON, default=list)

    is_conflict: Mapped[bool] = mapped_column(Boolean, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))  # None for generated timesheets
    last_modified_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    entries = relationship(
        "TimesheetEntry",
        back_populates="timesheet",
        cascade="all, delete-orphan",
        order_by="TimesheetEntry.work_date",
    )
    worker = relationship("Worker")

    __table_args__ = (
        Index('idx_timesheets_worker_week', 'worker_id', 'week_start_date'),
        Index('idx_timesheets_company_status', 'company_id', 'status'),
    )

    def recalculate_totals(self) -> None:
        """Recompute the week totals from the daily entries."""
        normal = sum((e.normal_hours or ZERO for e in self.entries), ZERO)
        ot1_5 = sum((e.ot1_5_hours or ZERO for e in self.entries), ZERO)
        ot2_0 = sum((e.ot2_0_hours or ZERO for e in self.entries), ZERO)
        self.total_normal_hours = normal
        self.total_ot1_5_hours = ot1_5
        self.total_ot2_0_hours = ot2_0
        self.total_hours = sum((e.total_hours or ZERO for e in self.entries), ZERO)
        self.refresh_conflict_flag()

    def refresh_conflict_flag(self) -> None:
        self.is_conflict = any(e.is_conflict for e in self.entries)


class TimesheetEntry(Base):
    """A worked (or absent) day inside a weekly timesheet. Split shifts add more than one row per day."""
    __tablename__ = "timesheet_entries"

    id: Mapped[uuid.UUID] = uuid_pk()
    timesheet_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("timesheets.id", ondelete="CASCADE"), nullable=False, index=True)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)  # Local date
    day_of_week: Mapped[str] = mapped_column(String(3), nullable=False)  # Mon..Sun
    clock_in: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    clock_out: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    lunch_out: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    lunch_in: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    normal_hours: Mapped[Decimal] = hours(default=ZERO)
    ot1_5_hours: Mapped[Decimal] = hours(default=ZERO)
    ot2_0_hours: Mapped[Decimal] = hours(default=ZERO)
    total_hours: Mapped[Decimal] = hours(default=ZERO)
    check_in_method: Mapped[str] = mapped_column(String(20), default="manual")  # manual|qr-code|gps|photo
    is_absent: Mapped[bool] = mapped_column(Boolean, default=False)
    leave_type: Mapped[Optional[str]] = mapped_column(String(10))  # AL|MC|UL|PH
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_conflict: Mapped[bool] = mapped_column(Boolean, default=False)
    conflict_with: Mapped[Optional[list]] = mapped_column(JSON, default=list)  # entry ids (str)

    timesheet = relationship("Timesheet", back_populates="entries")

    __table_args__ = (
        Index('idx_entries_timesheet_date', 'timesheet_id', 'work_date'),
    )

    def clear_hours(self) -> None:
        self.clock_in = None
        self.clock_out = None
        self.lunch_out = None
        self.lunch_in = None
        self.normal_hours = ZERO
        self.ot1_5_hours = ZERO
        self.ot2_0_hours = ZERO
        self.total_hours = ZERO


class UnitRecord(Base):
    """Piece-rate production record"""
    __tablename__ = "unit_records"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    worker_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("workers.id", ondelete="CASCADE"), nullable=False, index=True)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    unit_type: Mapped[str] = mapped_column(String(100), nullable=False)
    units_completed: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    units_rejected: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=ZERO)
    rate_per_unit: Mapped[Decimal] = money(nullable=False)
    total_amount: Mapped[Decimal] = money(default=ZERO)  # set on save
    status: Mapped[str] = mapped_column(String(20), default="draft")  # draft|submitted|verified|approved|rejected
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    __table_args__ = (
        Index('idx_unit_records_worker_date', 'worker_id', 'work_date'),
    )

    def compute_total_amount(self) -> None:
        accepted = Decimal(str(self.units_completed or 0)) - Decimal(str(self.units_rejected or 0))
        self.total_amount = (accepted * Decimal(str(self.rate_per_unit or 0))).quantize(Decimal("0.01"))


@event.listens_for(UnitRecord, "before_insert")
@event.listens_for(UnitRecord, "before_update")
def _unit_record_total(mapper, connection, target: UnitRecord) -> None:
    target.compute_total_amount()


class LeaveType(Base):
    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(10))
    is_paid: Mapped[bool] = mapped_column(Boolean, default=True)


class LeaveBalance(Base):
    __tablename__ = "leave_balances"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    worker_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("workers.id", ondelete="CASCADE"), nullable=False, index=True)
    leave_type_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("leave_types.id", ondelete="CASCADE"), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    total_days: Mapped[Decimal] = mapped_column(Numeric(5, 1), default=ZERO)
    used_days: Mapped[Decimal] = mapped_column(Numeric(5, 1), default=ZERO)
    pending_days: Mapped[Decimal] = mapped_column(Numeric(5, 1), default=ZERO)

    __table_args__ = (
        UniqueConstraint("worker_id", "leave_type_id", "year", name="uq_leave_balance"),
    )

    @property
    def remaining_days(self) -> Decimal:
        return (self.total_days or ZERO) - (self.used_days or ZERO) - (self.pending_days or ZERO)

    def can_take_leave(self, days: Decimal) -> bool:
        return self.remaining_days >= days


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    worker_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("workers.id", ondelete="CASCADE"), nullable=False, index=True)
    leave_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("leave_types.id", ondelete="SET NULL"))
    leave_balance_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("leave_balances.id", ondelete="SET NULL"))
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_days: Mapped[Decimal] = mapped_column(Numeric(5, 1), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|approved|rejected|cancelled
    reason: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    leave_type = relationship("LeaveType")
    leave_balance = relationship("LeaveBalance")

    __table_args__ = (
        Index('idx_leave_requests_worker_dates', 'worker_id', 'start_date', 'end_date'),
    )


class GazettedHoliday(Base):
    __tablename__ = "gazetted_holidays"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False)
    holiday_type: Mapped[str] = mapped_column(String(20), default="public")  # public|company|state-specific
    is_paid: Mapped[bool] = mapped_column(Boolean, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index('idx_holidays_company_date', 'company_id', 'holiday_date'),
    )


class Loan(Base):
    """Loans and salary advances repaid through payroll"""
    __tablename__ = "loans"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    worker_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("workers.id", ondelete="CASCADE"), nullable=False, index=True)
    loan_code: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[str] = mapped_column(String(20), default="advance")  # loan|advance
    description: Mapped[Optional[str]] = mapped_column(Text)
    principal_amount: Mapped[Decimal] = money(nullable=False)
    remaining_amount: Mapped[Decimal] = money(nullable=False)
    installment_amount: Mapped[Optional[Decimal]] = money()
    status: Mapped[str] = mapped_column(String(20), default="active")  # active|completed|cancelled
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    installments = relationship(
        "LoanInstallment",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="LoanInstallment.due_date",
    )


class LoanInstallment(Base):
    __tablename__ = "loan_installments"

    id: Mapped[uuid.UUID] = uuid_pk()
    loan_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = money(nullable=False)
    paid_amount: Mapped[Decimal] = money(default=ZERO)
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|paid|overdue

    loan = relationship("Loan", back_populates="installments")


class PayrollRecord(Base):
    """One payroll record per worker per pay period"""
    __tablename__ = "payroll_records"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    worker_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("workers.id", ondelete="CASCADE"), nullable=False, index=True)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    payment_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Hourly breakdown
    timesheet_ids: Mapped[Optional[list]] = mapped_column(JSON)
    total_normal_hours: Mapped[Decimal] = hours(default=ZERO)
    total_ot1_5_hours: Mapped[Decimal] = hours(default=ZERO)
    total_ot2_0_hours: Mapped[Decimal] = hours(default=ZERO)
    total_hours: Mapped[Decimal] = hours(default=ZERO)
    hourly_rate: Mapped[Optional[Decimal]] = money()
    ot1_5_rate: Mapped[Optional[Decimal]] = money()
    ot2_0_rate: Mapped[Optional[Decimal]] = money()
    normal_pay: Mapped[Decimal] = money(default=ZERO)
    ot1_5_pay: Mapped[Decimal] = money(default=ZERO)
    ot2_0_pay: Mapped[Decimal] = money(default=ZERO)

    # Monthly-salary breakdown
    monthly_salary: Mapped[Optional[Decimal]] = money()
    base_salary: Mapped[Optional[Decimal]] = money()
    working_days: Mapped[Optional[int]] = mapped_column(Integer)
    paid_leave_days: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 1))
    unpaid_leave_days: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 1))
    actual_working_days: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 1))

    # Unit-based breakdown
    unit_record_ids: Mapped[Optional[list]] = mapped_column(JSON)
    unit_summary: Mapped[Optional[dict]] = mapped_column(JSON)  # {unit_type: {totalUnits, rejectedUnits, acceptedUnits, ratePerUnit, totalAmount}}

    # Earnings
    allowances: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    total_allowances: Mapped[Decimal] = money(default=ZERO)
    gross_pay: Mapped[Decimal] = money(nullable=False)  # includes allowances

    # Statutory contributions
    statutory_wage: Mapped[Decimal] = money(default=ZERO)
    epf_employee: Mapped[Decimal] = money(default=ZERO)
    epf_employer: Mapped[Decimal] = money(default=ZERO)
    epf_total: Mapped[Decimal] = money(default=ZERO)
    socso_employee: Mapped[Decimal] = money(default=ZERO)
    socso_employer: Mapped[Decimal] = money(default=ZERO)
    socso_total: Mapped[Decimal] = money(default=ZERO)
    eis_employee: Mapped[Decimal] = money(default=ZERO)
    eis_employer: Mapped[Decimal] = money(default=ZERO)
    eis_total: Mapped[Decimal] = money(default=ZERO)
    statutory_employee_total: Mapped[Decimal] = money(default=ZERO)
    statutory_employer_total: Mapped[Decimal] = money(default=ZERO)

    # Other deductions
    deductions: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    other_deductions: Mapped[Decimal] = money(default=ZERO)
    loan_deductions: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    total_loan_deductions: Mapped[Decimal] = money(default=ZERO)

    total_deductions: Mapped[Decimal] = money(nullable=False)
    net_pay: Mapped[Decimal] = money(nullable=False)

    status: Mapped[str] = mapped_column(String(20), default="draft")  # draft|approved|paid
    payment_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|paid
    bank_details: Mapped[Optional[dict]] = mapped_column(JSON)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    worker = relationship("Worker")

    __table_args__ = (
        UniqueConstraint("company_id", "worker_id", "period_start", "period_end", name="uq_payroll_worker_period"),
        Index('idx_payroll_company_period', 'company_id', 'period_start'),
    )


class AuditLog(Base):
    """Append-only audit log for approval and payroll actions"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # timesheet|payroll_record|leave_request
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # SUBMIT|APPROVE|REJECT|CANCEL|GENERATE|UPDATE
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), index=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(50))  # admin|agent|subcon-admin|worker|system
    source: Mapped[str] = mapped_column(String(20), default="api")  # api|script|system
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), index=True)
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # Before/after diff
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hash for integrity verification

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )
