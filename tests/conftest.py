import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ENVIRONMENT", "test")

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from payhub.db import Base
from payhub.models.models import Company, Worker, LeaveType, Timesheet, UnitRecord
from payhub.repositories import Repositories
from payhub.services.permissions import Actor
from payhub.services.timesheet_service import build_week_timesheet


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def repos(db):
    return Repositories.from_session(db)


@pytest.fixture()
def company(db):
    company = Company(name="Acme Fabrication Sdn Bhd", payroll_settings={}, is_active=True)
    db.add(company)
    db.commit()
    return company


@pytest.fixture()
def other_company(db):
    company = Company(name="Other Works Sdn Bhd", payroll_settings={}, is_active=True)
    db.add(company)
    db.commit()
    return company


@pytest.fixture()
def make_worker(db, company):
    def _make(payment_type="hourly", company_obj=None, **payroll_info):
        worker = Worker(
            company_id=(company_obj or company).id,
            first_name="Aminah",
            last_name="Yusof",
            payment_type=payment_type,
            payroll_info=payroll_info,
            is_active=True,
        )
        db.add(worker)
        db.commit()
        return worker
    return _make


@pytest.fixture()
def make_timesheet(db):
    def _make(worker, week_of: date, status="draft"):
        timesheet = build_week_timesheet(worker, week_of)
        timesheet.status = status
        db.add(timesheet)
        db.commit()
        return timesheet
    return _make


@pytest.fixture()
def make_leave_type(db, company):
    def _make(name="Annual Leave", is_paid=True, code=None):
        leave_type = LeaveType(company_id=company.id, name=name, is_paid=is_paid, code=code)
        db.add(leave_type)
        db.commit()
        return leave_type
    return _make


@pytest.fixture()
def make_unit_record(db):
    def _make(worker, work_date, unit_type="panel", completed="100", rejected="0", rate="1.50", status="approved"):
        record = UnitRecord(
            company_id=worker.company_id,
            worker_id=worker.id,
            work_date=work_date,
            unit_type=unit_type,
            units_completed=Decimal(completed),
            units_rejected=Decimal(rejected),
            rate_per_unit=Decimal(rate),
            status=status,
        )
        db.add(record)
        db.commit()
        return record
    return _make


@pytest.fixture()
def admin():
    return Actor(user_id=str(uuid.uuid4()), role="admin")


@pytest.fixture()
def subcon_admin(company):
    return Actor(user_id=str(uuid.uuid4()), role="subcon-admin", company_id=str(company.id))


@pytest.fixture()
def agent(company):
    return Actor(user_id=str(uuid.uuid4()), role="agent", company_ids=frozenset({str(company.id)}))
