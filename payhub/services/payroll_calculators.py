"""
Payroll calculators, one per payment type.

Each calculator turns a worker's configuration plus the period's source
records (timesheets, unit records, leave) into a ``PayrollCalculation``.
Nothing is persisted here.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ..config import settings
from ..errors import ConfigurationError, NotFound
from ..models.models import Worker, Company
from .statutory import calculate_gross_pay, round_money, to_decimal, ZERO
from .time_rules import count_working_days, days_in_month

logger = structlog.get_logger(__name__)

MONTHLY_SALARY = "monthly-salary"
HOURLY = "hourly"
UNIT_BASED = "unit-based"


@dataclass
class PayrollCalculation:
    payment_type: str
    gross_pay: Decimal

    # monthly-salary
    monthly_salary: Optional[Decimal] = None
    base_salary: Optional[Decimal] = None
    working_days: Optional[int] = None
    paid_leave_days: Optional[Decimal] = None
    unpaid_leave_days: Optional[Decimal] = None
    actual_working_days: Optional[Decimal] = None

    # hourly
    timesheet_ids: List[str] = field(default_factory=list)
    total_normal_hours: Decimal = ZERO
    total_ot1_5_hours: Decimal = ZERO
    total_ot2_0_hours: Decimal = ZERO
    total_hours: Decimal = ZERO
    hourly_rate: Optional[Decimal] = None
    ot1_5_rate: Optional[Decimal] = None  # per hour: hourly_rate x multiplier
    ot2_0_rate: Optional[Decimal] = None
    normal_pay: Decimal = ZERO
    ot1_5_pay: Decimal = ZERO
    ot2_0_pay: Decimal = ZERO

    # unit-based
    unit_record_ids: List[str] = field(default_factory=list)
    unit_summary: Dict[str, Dict[str, str]] = field(default_factory=dict)


def overtime_rates(company: Optional[Company]) -> Dict[str, Decimal]:
    """Company OT multipliers, falling back to the configured defaults."""
    configured = ((company.payroll_settings or {}) if company is not None else {}).get("overtimeRates") or {}
    return {
        "ot1_5": to_decimal(configured.get("ot1_5") or settings.default_ot1_5_rate),
        "ot2_0": to_decimal(configured.get("ot2_0") or settings.default_ot2_0_rate),
    }


def _payroll_info(worker: Worker) -> dict:
    return worker.payroll_info or {}


class MonthlySalaryCalculator:
    payment_type = MONTHLY_SALARY

    def __init__(self, repos):
        self.repos = repos

    def calculate(self, worker: Worker, company: Company, period_start: date, period_end: date) -> PayrollCalculation:
        monthly_salary = to_decimal(_payroll_info(worker).get("monthlySalary"))
        if monthly_salary <= 0:
            raise ConfigurationError(f"Worker {worker.id} has no monthlySalary configured")

        working_days = self._working_days(company, period_start, period_end)
        paid_leave, unpaid_leave = self._leave_days(worker, period_start, period_end)
        actual_working_days = max(Decimal(working_days) - unpaid_leave, Decimal("0"))

        if unpaid_leave > 0:
            daily_rate = monthly_salary / Decimal(days_in_month(period_end))
            base_salary = round_money(daily_rate * actual_working_days)
        else:
            base_salary = monthly_salary

        return PayrollCalculation(
            payment_type=self.payment_type,
            gross_pay=base_salary,
            monthly_salary=monthly_salary,
            base_salary=base_salary,
            working_days=working_days,
            paid_leave_days=paid_leave,
            unpaid_leave_days=unpaid_leave,
            actual_working_days=actual_working_days,
        )

    def _working_days(self, company: Company, period_start: date, period_end: date) -> int:
        try:
            # Savepoint keeps the outer transaction usable after a failed lookup
            with self.repos.db.begin_nested():
                holidays = self.repos.holidays.active_dates_between(company.id, period_start, period_end)
        except SQLAlchemyError as e:
            logger.warning(
                "working_days_fallback",
                company_id=str(company.id),
                fallback=settings.fallback_working_days,
                error=str(e),
            )
            return settings.fallback_working_days
        return count_working_days(period_start, period_end, holidays)

    def _leave_days(self, worker: Worker, period_start: date, period_end: date):
        """Approved leave overlapping the period, split by whether the leave type is paid."""
        try:
            with self.repos.db.begin_nested():
                requests = self.repos.leave.approved_in_period(worker.id, period_start, period_end)
                # Leave types are loaded inside the savepoint too
                unpaid_flags = [
                    request.leave_type is not None and not request.leave_type.is_paid
                    for request in requests
                ]
        except SQLAlchemyError as e:
            logger.warning("leave_lookup_failed", worker_id=str(worker.id), error=str(e))
            return Decimal("0"), Decimal("0")

        paid = Decimal("0")
        unpaid = Decimal("0")
        for request, is_unpaid in zip(requests, unpaid_flags):
            days = to_decimal(request.total_days)
            if is_unpaid:
                unpaid += days
            else:
                paid += days
        return paid, unpaid


class HourlyCalculator:
    payment_type = HOURLY

    def __init__(self, repos):
        self.repos = repos

    def calculate(self, worker: Worker, company: Company, period_start: date, period_end: date) -> PayrollCalculation:
        hourly_rate = to_decimal(_payroll_info(worker).get("hourlyRate"))
        if hourly_rate <= 0:
            raise ConfigurationError(f"Worker {worker.id} has no hourlyRate configured")

        timesheets = self.repos.timesheets.list_approved_in_period(worker.id, period_start, period_end)
        if not timesheets:
            raise NotFound(
                f"No approved timesheets for worker {worker.id} between {period_start} and {period_end}"
            )

        normal = sum((to_decimal(t.total_normal_hours) for t in timesheets), ZERO)
        ot1_5 = sum((to_decimal(t.total_ot1_5_hours) for t in timesheets), ZERO)
        ot2_0 = sum((to_decimal(t.total_ot2_0_hours) for t in timesheets), ZERO)
        total = sum((to_decimal(t.total_hours) for t in timesheets), ZERO)

        rates = overtime_rates(company)
        pay = calculate_gross_pay({"normal": normal, "ot1_5": ot1_5, "ot2_0": ot2_0}, hourly_rate, rates)

        return PayrollCalculation(
            payment_type=self.payment_type,
            gross_pay=pay.gross_pay,
            timesheet_ids=[str(t.id) for t in timesheets],
            total_normal_hours=normal,
            total_ot1_5_hours=ot1_5,
            total_ot2_0_hours=ot2_0,
            total_hours=total,
            hourly_rate=hourly_rate,
            ot1_5_rate=round_money(hourly_rate * rates["ot1_5"]),
            ot2_0_rate=round_money(hourly_rate * rates["ot2_0"]),
            normal_pay=pay.normal_pay,
            ot1_5_pay=pay.ot1_5_pay,
            ot2_0_pay=pay.ot2_0_pay,
        )


class UnitBasedCalculator:
    payment_type = UNIT_BASED

    def __init__(self, repos):
        self.repos = repos

    def calculate(self, worker: Worker, company: Company, period_start: date, period_end: date) -> PayrollCalculation:
        records = self.repos.unit_records.list_approved_in_period(worker.id, period_start, period_end)
        if not records:
            raise NotFound(
                f"No approved unit records for worker {worker.id} between {period_start} and {period_end}"
            )

        summary: Dict[str, Dict[str, Decimal]] = {}
        for record in records:
            row = summary.setdefault(record.unit_type, {
                "total_units": ZERO,
                "rejected_units": ZERO,
                "accepted_units": ZERO,
                "rate_per_unit": to_decimal(record.rate_per_unit),
                "total_amount": ZERO,
            })
            completed = to_decimal(record.units_completed)
            rejected = to_decimal(record.units_rejected)
            row["total_units"] += completed
            row["rejected_units"] += rejected
            row["accepted_units"] += completed - rejected
            # Stored amount is authoritative (computed on save)
            row["total_amount"] += to_decimal(record.total_amount)

        gross = round_money(sum((row["total_amount"] for row in summary.values()), ZERO))

        return PayrollCalculation(
            payment_type=self.payment_type,
            gross_pay=gross,
            unit_record_ids=[str(r.id) for r in records],
            unit_summary={
                unit_type: {k: str(v) for k, v in row.items()}
                for unit_type, row in summary.items()
            },
        )


CALCULATORS = {
    MONTHLY_SALARY: MonthlySalaryCalculator,
    HOURLY: HourlyCalculator,
    UNIT_BASED: UnitBasedCalculator,
}


def calculator_for(payment_type: str, repos):
    try:
        calculator_cls = CALCULATORS[payment_type]
    except KeyError:
        raise ConfigurationError(f"Unknown payment type: {payment_type}") from None
    return calculator_cls(repos)
