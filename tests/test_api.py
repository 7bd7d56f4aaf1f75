import uuid
from datetime import date

import pytest
from fastapi.testclient import TestClient

from payhub.auth.security import create_access_token
from payhub.db import get_db
from payhub.main import app
from payhub.models.models import LeaveType


@pytest.fixture()
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def bearer(role, company=None, **extra):
    token = create_access_token(
        str(uuid.uuid4()),
        role,
        company_id=str(company.id) if company is not None else None,
        **extra,
    )
    return {"Authorization": f"Bearer {token}"}


def test_healthz_and_request_id(client):
    response = client.get("/healthz", headers={"X-Request-ID": "abc-123"})
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"] == "abc-123"


def test_requires_bearer_token(client):
    response = client.get(f"/payroll/{uuid.uuid4()}")
    assert response.status_code == 401


def test_generate_payroll_then_duplicate(client, make_worker):
    worker = make_worker("monthly-salary", monthlySalary=3000)
    body = {"worker_id": str(worker.id), "period_start": "2024-04-01", "period_end": "2024-04-30"}

    created = client.post("/payroll/generate", json=body, headers=bearer("admin"))
    assert created.status_code == 201
    data = created.json()
    assert data["gross_pay"] == 3000.0
    assert data["net_pay"] == 2649.0
    assert data["status"] == "draft"

    again = client.post("/payroll/generate", json=body, headers=bearer("admin"))
    assert again.status_code == 409

    fetched = client.get(f"/payroll/{data['id']}", headers=bearer("admin"))
    assert fetched.json()["id"] == data["id"]


def test_missing_rate_is_a_client_error(client, make_worker):
    worker = make_worker("hourly")
    response = client.post(
        "/payroll/generate",
        json={"worker_id": str(worker.id), "period_start": "2024-04-01", "period_end": "2024-04-30"},
        headers=bearer("admin"),
    )
    assert response.status_code == 400
    assert "hourlyRate" in response.json()["detail"]


def test_payroll_status_endpoint(client, make_worker, company):
    worker = make_worker("monthly-salary", monthlySalary=3000)
    headers = bearer("subcon-admin", company)
    record = client.post(
        "/payroll/generate",
        json={"worker_id": str(worker.id), "period_start": "2024-04-01", "period_end": "2024-04-30"},
        headers=headers,
    ).json()

    skipped = client.post(f"/payroll/{record['id']}/status", json={"status": "paid"}, headers=headers)
    assert skipped.status_code == 409
    approved = client.post(f"/payroll/{record['id']}/status", json={"status": "approved"}, headers=headers)
    assert approved.json()["status"] == "approved"


def test_approval_flow_over_http(client, company, make_worker, make_timesheet):
    timesheet = make_timesheet(make_worker("hourly", hourlyRate=10), date(2024, 4, 1))
    subcon = bearer("subcon-admin", company)

    early = client.post(f"/timesheets/{timesheet.id}/approve", headers=subcon)
    assert early.status_code == 409
    assert early.json()["current_status"] == "draft"
    assert early.json()["required_status"] == "submitted"

    assert client.post(f"/timesheets/{timesheet.id}/submit", headers=subcon).json()["status"] == "submitted"
    approved = client.post(f"/timesheets/{timesheet.id}/approve", json={"comments": "ok"}, headers=subcon)
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved_subcon"

    agent_attempt = client.post(f"/timesheets/{timesheet.id}/approve", headers=bearer("agent", company_ids=[str(company.id)]))
    assert agent_attempt.status_code == 403


def test_attendance_edit_and_delete(client, company, make_worker, make_timesheet):
    timesheet = make_timesheet(make_worker("hourly", hourlyRate=10), date(2024, 4, 1))
    headers = bearer("subcon-admin", company)

    recorded = client.post(
        f"/timesheets/{timesheet.id}/attendance",
        json={"work_date": "2024-04-02", "clock_in": "2024-04-02T09:00:00", "clock_out": "2024-04-02T19:00:00"},
        headers=headers,
    )
    assert recorded.status_code == 200
    data = recorded.json()
    assert data["total_hours"] == 10.0
    assert data["total_ot1_5_hours"] == 2.0

    tuesday = next(e for e in data["entries"] if e["work_date"] == "2024-04-02")
    edited = client.patch(f"/timesheets/entries/{tuesday['id']}", json={"notes": "Overtime approved"}, headers=headers)
    assert edited.status_code == 200
    assert edited.json()["manually_edited"] is True

    assert client.delete(f"/timesheets/{timesheet.id}", headers=headers).status_code == 204
    assert client.get(f"/timesheets/{timesheet.id}", headers=headers).status_code == 404


def test_generate_week_and_holiday(client, company, make_worker):
    make_worker("hourly", hourlyRate=10)
    headers = bearer("admin")

    generated = client.post("/timesheets/generate-week", json={"company_id": str(company.id), "week_of": "2024-04-03"}, headers=headers)
    assert generated.json() == {"created": 1, "skipped": 0, "total": 1}

    holiday = client.post(
        "/holidays",
        json={"company_id": str(company.id), "name": "Hari Raya", "holiday_date": "2024-04-10"},
        headers=headers,
    )
    assert holiday.status_code == 201
    assert holiday.json()["is_active"] is True


def test_leave_request_lifecycle(client, db, company, make_worker):
    worker = make_worker("monthly-salary", monthlySalary=3000)
    leave_type = LeaveType(company_id=company.id, name="Sick Leave", is_paid=True)
    db.add(leave_type)
    db.commit()
    headers = bearer("subcon-admin", company)

    created = client.post(
        "/leave-requests",
        json={
            "worker_id": str(worker.id),
            "leave_type_id": str(leave_type.id),
            "start_date": "2024-04-02",
            "end_date": "2024-04-03",
        },
        headers=headers,
    )
    assert created.status_code == 201
    assert created.json()["total_days"] == 2.0

    approved = client.post(f"/leave-requests/{created.json()['id']}/approve", headers=headers)
    assert approved.json()["status"] == "approved"
    cancelled = client.post(f"/leave-requests/{created.json()['id']}/cancel", headers=headers)
    assert cancelled.json()["status"] == "cancelled"


def test_worker_cap_over_http(client, db, company, other_company):
    company.max_workers = 1
    db.commit()
    headers = bearer("subcon-admin", company)
    body = {"company_id": str(company.id), "first_name": "Ali", "payment_type": "hourly", "payroll_info": {"hourlyRate": 12}}

    first = client.post("/workers", json=body, headers=headers)
    assert first.status_code == 201
    assert first.json()["is_active"] is True

    over_cap = client.post("/workers", json={**body, "first_name": "Siti"}, headers=headers)
    assert over_cap.status_code == 409

    deactivated = client.post(f"/workers/{first.json()['id']}/deactivate", headers=headers)
    assert deactivated.status_code == 200
    assert deactivated.json()["is_active"] is False
    assert deactivated.json()["deactivated_at"] is not None
    assert client.post("/workers", json={**body, "first_name": "Siti"}, headers=headers).status_code == 201

    foreign = client.post("/workers", json={**body, "company_id": str(other_company.id)}, headers=headers)
    assert foreign.status_code == 403
