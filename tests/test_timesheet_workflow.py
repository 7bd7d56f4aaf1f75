import uuid
from datetime import date

import pytest

from payhub.errors import Forbidden, InvalidTransition, TimesheetLocked
from payhub.services import timesheet_workflow as workflow
from payhub.services.audit import get_audit_logs
from payhub.services.permissions import Actor

WEEK = date(2024, 4, 1)


@pytest.fixture()
def timesheet(make_worker, make_timesheet):
    return make_timesheet(make_worker("hourly", hourlyRate=10), WEEK)


def test_subcon_admin_cannot_approve_draft(repos, timesheet, subcon_admin):
    with pytest.raises(InvalidTransition) as exc:
        workflow.approve(repos, timesheet.id, subcon_admin)
    assert exc.value.current == "draft"
    assert exc.value.required == "submitted"


def test_subcon_admin_approves_submitted(repos, timesheet, subcon_admin, agent):
    workflow.submit(repos, timesheet.id, agent)
    approved = workflow.approve(repos, timesheet.id, subcon_admin, comments="Checked on site")
    assert approved.status == "approved_subcon"
    entry = approved.approval_history[-1]
    assert entry["role"] == "subcon-admin"
    assert entry["status"] == "approved"
    assert entry["comments"] == "Checked on site"
    assert entry["approved_by"] == subcon_admin.user_id


def test_full_approval_chain(repos, timesheet, subcon_admin, admin):
    workflow.submit(repos, timesheet.id, subcon_admin)
    workflow.approve(repos, timesheet.id, subcon_admin)
    final = workflow.approve(repos, timesheet.id, admin)
    assert final.status == "approved_admin"
    assert [h["role"] for h in final.approval_history] == ["subcon-admin", "admin"]


def test_admin_cannot_skip_subcon_step(repos, timesheet, admin):
    workflow.submit(repos, timesheet.id, admin)
    with pytest.raises(InvalidTransition) as exc:
        workflow.approve(repos, timesheet.id, admin)
    assert exc.value.required == "approved_subcon"


def test_agent_cannot_approve(repos, timesheet, agent):
    workflow.submit(repos, timesheet.id, agent)
    with pytest.raises(Forbidden):
        workflow.approve(repos, timesheet.id, agent)


def test_other_tenant_cannot_touch_timesheet(repos, timesheet, other_company):
    outsider = Actor(user_id=str(uuid.uuid4()), role="subcon-admin", company_id=str(other_company.id))
    with pytest.raises(Forbidden):
        workflow.submit(repos, timesheet.id, outsider)


def test_reject_from_non_terminal_only(repos, timesheet, subcon_admin, admin):
    workflow.submit(repos, timesheet.id, subcon_admin)
    rejected = workflow.reject(repos, timesheet.id, admin, comments="Missing Friday")
    assert rejected.status == "rejected"
    assert rejected.approval_history[-1]["status"] == "rejected"

    with pytest.raises(InvalidTransition):
        workflow.reject(repos, timesheet.id, admin)
    with pytest.raises(InvalidTransition):
        workflow.cancel(repos, timesheet.id, admin)


def test_cancel_locks_timesheet(repos, timesheet, agent):
    cancelled = workflow.cancel(repos, timesheet.id, agent)
    assert cancelled.status == "cancelled"
    with pytest.raises(TimesheetLocked):
        workflow.ensure_editable(cancelled)


def test_submit_requires_draft(repos, timesheet, agent):
    workflow.submit(repos, timesheet.id, agent)
    with pytest.raises(InvalidTransition):
        workflow.submit(repos, timesheet.id, agent)


def test_transitions_are_audited(db, repos, timesheet, subcon_admin):
    workflow.submit(repos, timesheet.id, subcon_admin)
    workflow.approve(repos, timesheet.id, subcon_admin)
    actions = sorted(log.action for log in get_audit_logs(db, entity_type="timesheet", entity_id=timesheet.id))
    assert actions == ["APPROVE", "SUBMIT"]
