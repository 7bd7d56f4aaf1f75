"""
Leave requests: creation with balance reservation, review, cancellation, and
the matching absence marks on the worker's timesheets.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import structlog

from ..errors import Conflict, Forbidden, InsufficientLeaveBalance, InvalidInput, InvalidTransition, NotFound
from ..models.models import LeaveBalance, LeaveRequest, LeaveType
from .audit import create_audit_log
from .permissions import Actor, can_cancel_leave, can_request_leave, can_review_leave
from .statutory import to_decimal
from .time_rules import count_weekdays
from .timesheet_service import clear_leave, fill_leave

logger = structlog.get_logger(__name__)

LEAVE_CODES = (
    ("annual", "AL"),
    ("sick", "MC"),
    ("medical", "MC"),
    ("unpaid", "UL"),
)


def leave_code_for(leave_type: Optional[LeaveType]) -> str:
    """Timesheet absence code for a leave type: name keyword first, then the type's own code."""
    if leave_type is None:
        return "UL"
    name = (leave_type.name or "").lower()
    for keyword, code in LEAVE_CODES:
        if keyword in name:
            return code
    return leave_type.code or "UL"


def reserve_days(balance: LeaveBalance, days: Decimal) -> None:
    if not balance.can_take_leave(days):
        raise InsufficientLeaveBalance(
            f"Insufficient leave balance: {balance.remaining_days} day(s) remaining, {days} requested"
        )
    balance.pending_days = to_decimal(balance.pending_days) + days


def release_days(balance: LeaveBalance, days: Decimal) -> None:
    balance.pending_days = max(to_decimal(balance.pending_days) - days, Decimal("0"))


def confirm_days(balance: LeaveBalance, days: Decimal) -> None:
    release_days(balance, days)
    balance.used_days = to_decimal(balance.used_days) + days


def restore_days(balance: LeaveBalance, days: Decimal) -> None:
    balance.used_days = max(to_decimal(balance.used_days) - days, Decimal("0"))


def _load_request(repos, request_id) -> LeaveRequest:
    leave_request = repos.leave.get_request(request_id)
    if leave_request is None:
        raise NotFound(f"Leave request {request_id} not found")
    return leave_request


def _audit(repos, leave_request: LeaveRequest, action: str, actor: Actor, before: str) -> None:
    create_audit_log(
        repos.db,
        entity_type="leave_request",
        entity_id=leave_request.id,
        action=action,
        actor=actor,
        company_id=leave_request.company_id,
        changes_json={"status": {"before": before, "after": leave_request.status}},
        context={"worker_id": str(leave_request.worker_id)},
    )


def create_leave_request(
    repos,
    worker_id,
    leave_type_id,
    start_date: date,
    end_date: date,
    actor: Actor,
    total_days: Optional[Decimal] = None,
    reason: Optional[str] = None,
) -> LeaveRequest:
    worker = repos.workers.get(worker_id)
    if worker is None:
        raise NotFound(f"Worker {worker_id} not found")
    if not can_request_leave(actor, worker):
        raise Forbidden("Not allowed to request leave for this worker")
    if end_date < start_date:
        raise InvalidInput("end_date must not be before start_date")

    leave_type = repos.leave.get_type(leave_type_id)
    if leave_type is None or leave_type.company_id != worker.company_id:
        raise NotFound(f"Leave type {leave_type_id} not found")

    if repos.leave.overlapping(worker.id, start_date, end_date):
        raise Conflict("Leave request overlaps an existing pending or approved request")

    days = to_decimal(total_days) if total_days is not None else Decimal(count_weekdays(start_date, end_date))
    if days <= 0:
        raise InvalidInput("Leave request covers no working days")

    balance = repos.leave.find_balance(worker.id, leave_type.id, start_date.year)
    if balance is not None:
        reserve_days(balance, days)

    leave_request = LeaveRequest(
        company_id=worker.company_id,
        worker_id=worker.id,
        leave_type_id=leave_type.id,
        leave_balance_id=balance.id if balance is not None else None,
        start_date=start_date,
        end_date=end_date,
        total_days=days,
        status="pending",
        reason=reason,
        created_by=actor.user_uuid,
    )
    repos.leave.add(leave_request)
    repos.db.commit()
    repos.db.refresh(leave_request)
    logger.info(
        "leave_requested",
        leave_request_id=str(leave_request.id),
        worker_id=str(worker.id),
        days=str(days),
    )
    return leave_request


def approve_leave(repos, request_id, actor: Actor) -> LeaveRequest:
    leave_request = _load_request(repos, request_id)
    if not can_review_leave(actor, leave_request):
        raise Forbidden("Not allowed to review this leave request")
    if leave_request.status != "pending":
        raise InvalidTransition(
            f"Leave request is {leave_request.status}, only pending requests can be approved",
            current=leave_request.status,
            required="pending",
        )

    if leave_request.leave_balance is not None:
        confirm_days(leave_request.leave_balance, to_decimal(leave_request.total_days))

    leave_request.status = "approved"
    leave_request.reviewed_by = actor.user_uuid
    leave_request.reviewed_at = datetime.utcnow()
    updated = fill_leave(repos, leave_request, leave_code_for(leave_request.leave_type))
    _audit(repos, leave_request, "APPROVE", actor, "pending")
    repos.db.commit()
    repos.db.refresh(leave_request)
    logger.info("leave_approved", leave_request_id=str(leave_request.id), entries_updated=updated)
    return leave_request


def reject_leave(repos, request_id, actor: Actor) -> LeaveRequest:
    leave_request = _load_request(repos, request_id)
    if not can_review_leave(actor, leave_request):
        raise Forbidden("Not allowed to review this leave request")
    if leave_request.status != "pending":
        raise InvalidTransition(
            f"Leave request is {leave_request.status}, only pending requests can be rejected",
            current=leave_request.status,
            required="pending",
        )

    if leave_request.leave_balance is not None:
        release_days(leave_request.leave_balance, to_decimal(leave_request.total_days))

    leave_request.status = "rejected"
    leave_request.reviewed_by = actor.user_uuid
    leave_request.reviewed_at = datetime.utcnow()
    _audit(repos, leave_request, "REJECT", actor, "pending")
    repos.db.commit()
    repos.db.refresh(leave_request)
    logger.info("leave_rejected", leave_request_id=str(leave_request.id))
    return leave_request


def cancel_leave(repos, request_id, actor: Actor) -> LeaveRequest:
    leave_request = _load_request(repos, request_id)
    if not can_cancel_leave(actor, leave_request):
        raise Forbidden("Not allowed to cancel this leave request")
    previous = leave_request.status
    if previous not in ("pending", "approved"):
        raise InvalidTransition(
            f"Leave request is {previous} and can no longer be cancelled",
            current=previous,
        )

    days = to_decimal(leave_request.total_days)
    balance = leave_request.leave_balance
    if previous == "pending":
        if balance is not None:
            release_days(balance, days)
    else:
        if balance is not None:
            restore_days(balance, days)
        clear_leave(repos, leave_request, leave_code_for(leave_request.leave_type))

    leave_request.status = "cancelled"
    _audit(repos, leave_request, "CANCEL", actor, previous)
    repos.db.commit()
    repos.db.refresh(leave_request)
    logger.info("leave_cancelled", leave_request_id=str(leave_request.id), previous_status=previous)
    return leave_request
