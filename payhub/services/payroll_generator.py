"""
Payroll record generation.

Runs the worker's calculator, then applies allowances, statutory
contributions, worker deductions and loan repayments, and persists a single
draft ``PayrollRecord`` per worker and period.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Tuple

import structlog
from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, Forbidden, DuplicatePayroll, InvalidTransition, ConfigurationError
from ..models.models import PayrollRecord, Loan, Worker
from .adjustments import apply_adjustments
from .audit import create_audit_log
from .payroll_calculators import calculator_for, PayrollCalculation, MONTHLY_SALARY, HOURLY
from .permissions import Actor, can_generate_payroll, can_manage_payroll, can_view_payroll
from .statutory import calculate_statutory_deductions, hourly_to_monthly, round_money, to_decimal, ZERO

logger = structlog.get_logger(__name__)

PAYROLL_TRANSITIONS = {
    "draft": {"approved"},
    "approved": {"paid"},
    "paid": set(),
}


def loan_deduction_for(loan: Loan, period_end: date) -> Decimal:
    """
    Amount to recover from one loan in a period ending ``period_end``.

    With an installment schedule, the first pending installment already due;
    without one, the whole balance for an advance or the agreed installment for
    a loan. Never more than what is still owed.
    """
    remaining = to_decimal(loan.remaining_amount)
    if remaining <= 0:
        return ZERO

    if loan.installments:
        due = [
            i for i in loan.installments
            if i.status == "pending" and i.due_date <= period_end
        ]
        if not due:
            return ZERO
        first = min(due, key=lambda i: i.due_date)
        amount = to_decimal(first.amount) - to_decimal(first.paid_amount)
    elif loan.category == "advance":
        amount = remaining
    else:
        amount = to_decimal(loan.installment_amount) or remaining

    return round_money(max(min(amount, remaining), ZERO))


def calculate_loan_deductions(repos, worker: Worker, period_end: date) -> Tuple[List[Dict], Decimal]:
    rows = []
    total = ZERO
    for loan in repos.loans.active_for_worker(worker.id):
        amount = loan_deduction_for(loan, period_end)
        if amount <= 0:
            continue
        rows.append({
            "loan_id": str(loan.id),
            "loan_code": loan.loan_code,
            "category": loan.category,
            "amount": str(amount),
        })
        total += amount
    return rows, round_money(total)


def statutory_wage_for(worker: Worker, calculation: PayrollCalculation, gross_pay: Decimal) -> Decimal:
    """
    Monthly wage the statutory schemes are computed on.

    Monthly workers use the configured salary, hourly workers the flat
    8 h x 26 day equivalent of their rate, unit-based workers the period gross.
    """
    info = worker.payroll_info or {}
    if calculation.payment_type == MONTHLY_SALARY:
        return round_money(to_decimal(info.get("monthlySalary")))
    if calculation.payment_type == HOURLY:
        return hourly_to_monthly(info.get("hourlyRate"))
    return round_money(gross_pay)


def _record_from(worker: Worker, calculation: PayrollCalculation, period_start: date, period_end: date) -> PayrollRecord:
    return PayrollRecord(
        company_id=worker.company_id,
        worker_id=worker.id,
        period_start=period_start,
        period_end=period_end,
        payment_type=calculation.payment_type,
        timesheet_ids=calculation.timesheet_ids or None,
        total_normal_hours=calculation.total_normal_hours,
        total_ot1_5_hours=calculation.total_ot1_5_hours,
        total_ot2_0_hours=calculation.total_ot2_0_hours,
        total_hours=calculation.total_hours,
        hourly_rate=calculation.hourly_rate,
        ot1_5_rate=calculation.ot1_5_rate,
        ot2_0_rate=calculation.ot2_0_rate,
        normal_pay=calculation.normal_pay,
        ot1_5_pay=calculation.ot1_5_pay,
        ot2_0_pay=calculation.ot2_0_pay,
        monthly_salary=calculation.monthly_salary,
        base_salary=calculation.base_salary,
        working_days=calculation.working_days,
        paid_leave_days=calculation.paid_leave_days,
        unpaid_leave_days=calculation.unpaid_leave_days,
        actual_working_days=calculation.actual_working_days,
        unit_record_ids=calculation.unit_record_ids or None,
        unit_summary=calculation.unit_summary or None,
    )


def generate_payroll(repos, worker_id, period_start: date, period_end: date, actor: Actor) -> PayrollRecord:
    if period_end < period_start:
        raise ConfigurationError("period_end must not be before period_start")

    worker = repos.workers.get(worker_id)
    if worker is None:
        raise NotFound(f"Worker {worker_id} not found")
    if not can_generate_payroll(actor, worker):
        raise Forbidden("Not allowed to generate payroll for this worker")

    if repos.payroll.find_for_period(worker.company_id, worker.id, period_start, period_end) is not None:
        raise DuplicatePayroll(
            f"Payroll already exists for worker {worker.id} from {period_start} to {period_end}"
        )

    company = repos.companies.get(worker.company_id)
    if company is None:
        raise NotFound(f"Company {worker.company_id} not found")

    calculation = calculator_for(worker.payment_type, repos).calculate(worker, company, period_start, period_end)
    info = worker.payroll_info or {}

    allowances, total_allowances = apply_adjustments(info.get("allowances"), calculation.gross_pay)
    gross_pay = round_money(calculation.gross_pay + total_allowances)

    statutory_wage = statutory_wage_for(worker, calculation, gross_pay)
    payroll_settings = company.payroll_settings or {}
    statutory = calculate_statutory_deductions(
        statutory_wage,
        epf_enabled=payroll_settings.get("epfEnabled", True),
        socso_enabled=payroll_settings.get("socsoEnabled", True),
        eis_enabled=payroll_settings.get("eisEnabled", True),
    )

    deductions, other_deductions = apply_adjustments(info.get("deductions"), gross_pay)
    loan_rows, total_loan_deductions = calculate_loan_deductions(repos, worker, period_end)

    total_deductions = round_money(statutory.total_employee + other_deductions + total_loan_deductions)
    net_pay = round_money(gross_pay - total_deductions)

    record = _record_from(worker, calculation, period_start, period_end)
    record.allowances = allowances
    record.total_allowances = total_allowances
    record.gross_pay = gross_pay
    record.statutory_wage = statutory_wage
    record.epf_employee = statutory.epf.employee
    record.epf_employer = statutory.epf.employer
    record.epf_total = statutory.epf.total
    record.socso_employee = statutory.socso.employee
    record.socso_employer = statutory.socso.employer
    record.socso_total = statutory.socso.total
    record.eis_employee = statutory.eis.employee
    record.eis_employer = statutory.eis.employer
    record.eis_total = statutory.eis.total
    record.statutory_employee_total = statutory.total_employee
    record.statutory_employer_total = statutory.total_employer
    record.deductions = deductions
    record.other_deductions = other_deductions
    record.loan_deductions = loan_rows
    record.total_loan_deductions = total_loan_deductions
    record.total_deductions = total_deductions
    record.net_pay = net_pay
    record.status = "draft"
    record.payment_status = "pending"
    record.bank_details = {
        k: info.get(k) for k in ("bankName", "bankAccountNumber", "bankAccountName") if info.get(k)
    } or None
    record.created_by = actor.user_uuid

    repos.payroll.add(record)
    try:
        repos.db.flush()
        create_audit_log(
            repos.db,
            entity_type="payroll_record",
            entity_id=record.id,
            action="GENERATE",
            actor=actor,
            company_id=record.company_id,
            context={
                "worker_id": str(worker.id),
                "period_start": period_start.isoformat(),
                "period_end": period_end.isoformat(),
                "gross_pay": str(gross_pay),
                "net_pay": str(net_pay),
            },
        )
        repos.db.commit()
    except IntegrityError:
        repos.db.rollback()
        raise DuplicatePayroll(
            f"Payroll already exists for worker {worker.id} from {period_start} to {period_end}"
        ) from None
    repos.db.refresh(record)

    logger.info(
        "payroll_generated",
        payroll_id=str(record.id),
        worker_id=str(worker.id),
        payment_type=record.payment_type,
        gross_pay=str(gross_pay),
        net_pay=str(net_pay),
    )
    return record


def get_payroll(repos, record_id, actor: Actor) -> PayrollRecord:
    record = repos.payroll.get(record_id)
    if record is None:
        raise NotFound(f"Payroll record {record_id} not found")
    if not can_view_payroll(actor, record):
        raise Forbidden("Not allowed to view this payroll record")
    return record


def update_payroll_status(repos, record_id, new_status: str, actor: Actor) -> PayrollRecord:
    """Move a record along draft -> approved -> paid. Paid records never change."""
    record = repos.payroll.get(record_id)
    if record is None:
        raise NotFound(f"Payroll record {record_id} not found")
    if not can_manage_payroll(actor, record):
        raise Forbidden("Not allowed to update this payroll record")

    allowed = PAYROLL_TRANSITIONS.get(record.status, set())
    if new_status not in allowed:
        required = {"approved": "draft", "paid": "approved"}.get(new_status)
        raise InvalidTransition(
            f"Cannot move payroll record from {record.status} to {new_status}",
            current=record.status,
            required=required,
        )

    previous = record.status
    record.status = new_status
    now = datetime.utcnow()
    if new_status == "approved":
        record.approved_at = now
    elif new_status == "paid":
        record.payment_status = "paid"
        record.paid_at = now

    create_audit_log(
        repos.db,
        entity_type="payroll_record",
        entity_id=record.id,
        action="UPDATE",
        actor=actor,
        company_id=record.company_id,
        changes_json={"status": {"before": previous, "after": new_status}},
    )
    repos.db.commit()
    repos.db.refresh(record)
    logger.info("payroll_status_changed", payroll_id=str(record.id), before=previous, after=new_status)
    return record
