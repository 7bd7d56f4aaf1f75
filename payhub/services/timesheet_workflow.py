"""
Timesheet approval state machine.

draft -> submitted -> approved_subcon -> approved_admin, with rejected and
cancelled as exits. ``approved`` is a legacy fully-approved status.
"""
from datetime import datetime
from typing import Optional

import structlog

from ..errors import Forbidden, InvalidTransition, TimesheetLocked, NotFound
from ..models.models import Timesheet
from .audit import create_audit_log
from .permissions import (
    Actor,
    ADMIN,
    SUBCON_ADMIN,
    can_approve_timesheet,
    can_edit_timesheet,
    can_view_timesheet,
)

logger = structlog.get_logger(__name__)

DRAFT = "draft"
SUBMITTED = "submitted"
APPROVED_SUBCON = "approved_subcon"
APPROVED_ADMIN = "approved_admin"
APPROVED_LEGACY = "approved"
REJECTED = "rejected"
CANCELLED = "cancelled"

TERMINAL_STATUSES = frozenset({APPROVED_ADMIN, APPROVED_LEGACY, REJECTED, CANCELLED})
LOCKED_STATUSES = frozenset({APPROVED_ADMIN, APPROVED_LEGACY, CANCELLED})

# Status each approver role must find before approving, and the status it leaves behind
APPROVAL_STEPS = {
    SUBCON_ADMIN: (SUBMITTED, APPROVED_SUBCON),
    ADMIN: (APPROVED_SUBCON, APPROVED_ADMIN),
}


def is_locked(timesheet: Timesheet) -> bool:
    return timesheet.status in LOCKED_STATUSES


def ensure_editable(timesheet: Timesheet) -> None:
    if is_locked(timesheet):
        raise TimesheetLocked(f"Timesheet {timesheet.id} is {timesheet.status} and can no longer be edited")


def load_timesheet(repos, timesheet_id, actor: Actor) -> Timesheet:
    timesheet = repos.timesheets.get_active(timesheet_id)
    if timesheet is None:
        raise NotFound(f"Timesheet {timesheet_id} not found")
    if not can_view_timesheet(actor, timesheet):
        raise Forbidden("Not allowed to access this timesheet")
    return timesheet


def _history_entry(actor: Actor, role: str, status: str, comments: Optional[str]) -> dict:
    return {
        "approved_by": actor.user_id,
        "role": role,
        "status": status,
        "comments": comments,
        "timestamp": datetime.utcnow().isoformat(),
    }


def _transition(repos, timesheet: Timesheet, new_status: str, actor: Actor, action: str,
                history: Optional[dict] = None, comments: Optional[str] = None) -> Timesheet:
    previous = timesheet.status
    timesheet.status = new_status
    if history is not None:
        # Reassign so the JSON column registers the change
        timesheet.approval_history = list(timesheet.approval_history or []) + [history]
    timesheet.last_modified_by = actor.user_uuid
    timesheet.updated_at = datetime.utcnow()

    create_audit_log(
        repos.db,
        entity_type="timesheet",
        entity_id=timesheet.id,
        action=action,
        actor=actor,
        company_id=timesheet.company_id,
        changes_json={"status": {"before": previous, "after": new_status}},
        context={"worker_id": str(timesheet.worker_id), "comments": comments} if comments else {"worker_id": str(timesheet.worker_id)},
    )
    repos.db.commit()
    repos.db.refresh(timesheet)
    logger.info(
        "timesheet_transition",
        timesheet_id=str(timesheet.id),
        before=previous,
        after=new_status,
        actor_role=actor.role,
    )
    return timesheet


def submit(repos, timesheet_id, actor: Actor, comments: Optional[str] = None) -> Timesheet:
    timesheet = load_timesheet(repos, timesheet_id, actor)
    if not can_edit_timesheet(actor, timesheet):
        raise Forbidden("Not allowed to submit this timesheet")
    if timesheet.status != DRAFT:
        raise InvalidTransition(
            f"Timesheet must be {DRAFT} to submit (current: {timesheet.status})",
            current=timesheet.status,
            required=DRAFT,
        )
    return _transition(repos, timesheet, SUBMITTED, actor, "SUBMIT", comments=comments)


def approve(repos, timesheet_id, actor: Actor, comments: Optional[str] = None) -> Timesheet:
    timesheet = load_timesheet(repos, timesheet_id, actor)
    step = APPROVAL_STEPS.get(actor.role)
    if step is None or not can_approve_timesheet(actor, timesheet):
        raise Forbidden(f"Role {actor.role} cannot approve timesheets")

    required, new_status = step
    if timesheet.status != required:
        raise InvalidTransition(
            f"Timesheet must be {required} for {actor.role} approval (current: {timesheet.status})",
            current=timesheet.status,
            required=required,
        )
    history = _history_entry(actor, actor.role, "approved", comments)
    return _transition(repos, timesheet, new_status, actor, "APPROVE", history=history, comments=comments)


def reject(repos, timesheet_id, actor: Actor, comments: Optional[str] = None) -> Timesheet:
    timesheet = load_timesheet(repos, timesheet_id, actor)
    if not can_approve_timesheet(actor, timesheet):
        raise Forbidden(f"Role {actor.role} cannot reject timesheets")
    if timesheet.status in TERMINAL_STATUSES:
        raise InvalidTransition(
            f"Timesheet is {timesheet.status} and can no longer be rejected",
            current=timesheet.status,
        )
    history = _history_entry(actor, actor.role, "rejected", comments)
    return _transition(repos, timesheet, REJECTED, actor, "REJECT", history=history, comments=comments)


def cancel(repos, timesheet_id, actor: Actor, comments: Optional[str] = None) -> Timesheet:
    timesheet = load_timesheet(repos, timesheet_id, actor)
    if not can_edit_timesheet(actor, timesheet):
        raise Forbidden("Not allowed to cancel this timesheet")
    if timesheet.status in TERMINAL_STATUSES:
        raise InvalidTransition(
            f"Timesheet is {timesheet.status} and can no longer be cancelled",
            current=timesheet.status,
        )
    return _transition(repos, timesheet, CANCELLED, actor, "CANCEL", comments=comments)
