"""
Permission policies for payroll, timesheet and leave operations.

Every policy takes the acting ``Actor`` explicitly and answers True/False;
services turn a False into ``Forbidden``.
"""
import uuid
from dataclasses import dataclass, field
from typing import Optional, FrozenSet

ADMIN = "admin"
AGENT = "agent"
SUBCON_ADMIN = "subcon-admin"
WORKER = "worker"
SYSTEM = "system"  # scheduled jobs and scripts

STAFF_ROLES = frozenset({ADMIN, AGENT, SUBCON_ADMIN, SYSTEM})
APPROVER_ROLES = frozenset({ADMIN, SUBCON_ADMIN})


@dataclass(frozen=True)
class Actor:
    user_id: Optional[str]
    role: str
    company_id: Optional[str] = None  # home company (subcon-admin, worker)
    company_ids: FrozenSet[str] = field(default_factory=frozenset)  # assigned companies (agent)
    worker_id: Optional[str] = None  # set when the user is a worker

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id=None, role=SYSTEM)

    @property
    def user_uuid(self) -> Optional[uuid.UUID]:
        if not self.user_id:
            return None
        try:
            return uuid.UUID(str(self.user_id))
        except ValueError:
            return None


def is_admin(actor: Actor) -> bool:
    return actor.role in (ADMIN, SYSTEM)


def is_staff(actor: Actor) -> bool:
    return actor.role in STAFF_ROLES


def in_tenant(actor: Actor, company_id) -> bool:
    """
    Check whether the actor may act on data of a company.
    - Admin (and system jobs) any company
    - Agent only assigned companies
    - Subcon-admin and worker only their own company
    """
    if is_admin(actor):
        return True
    cid = str(company_id)
    if actor.role == AGENT:
        return cid in {str(c) for c in actor.company_ids}
    return actor.company_id is not None and str(actor.company_id) == cid


def can_generate_payroll(actor: Actor, worker) -> bool:
    return is_staff(actor) and in_tenant(actor, worker.company_id)


def can_manage_payroll(actor: Actor, record) -> bool:
    return is_staff(actor) and in_tenant(actor, record.company_id)


def can_view_payroll(actor: Actor, record) -> bool:
    if can_manage_payroll(actor, record):
        return True
    return actor.role == WORKER and actor.worker_id is not None and str(actor.worker_id) == str(record.worker_id)


def can_view_timesheet(actor: Actor, timesheet) -> bool:
    if is_staff(actor) and in_tenant(actor, timesheet.company_id):
        return True
    return actor.role == WORKER and actor.worker_id is not None and str(actor.worker_id) == str(timesheet.worker_id)


def can_edit_timesheet(actor: Actor, timesheet) -> bool:
    """Submit, cancel, attendance ingestion and manual edits."""
    return is_staff(actor) and in_tenant(actor, timesheet.company_id)


def can_approve_timesheet(actor: Actor, timesheet) -> bool:
    return actor.role in APPROVER_ROLES and in_tenant(actor, timesheet.company_id)


def can_generate_timesheets(actor: Actor, company_id) -> bool:
    return is_staff(actor) and in_tenant(actor, company_id)


def can_request_leave(actor: Actor, worker) -> bool:
    if is_staff(actor) and in_tenant(actor, worker.company_id):
        return True
    return actor.role == WORKER and actor.worker_id is not None and str(actor.worker_id) == str(worker.id)


def can_review_leave(actor: Actor, leave_request) -> bool:
    return is_staff(actor) and in_tenant(actor, leave_request.company_id)


def can_cancel_leave(actor: Actor, leave_request) -> bool:
    if can_review_leave(actor, leave_request):
        return True
    # Workers may withdraw their own request while it is still pending
    return (
        actor.role == WORKER
        and actor.worker_id is not None
        and str(actor.worker_id) == str(leave_request.worker_id)
        and leave_request.status == "pending"
    )


def can_manage_holidays(actor: Actor, company_id) -> bool:
    return is_staff(actor) and in_tenant(actor, company_id)
