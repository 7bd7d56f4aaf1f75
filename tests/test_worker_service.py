import pytest

from payhub.errors import Conflict, Forbidden, InvalidInput
from payhub.services.worker_service import create_worker, deactivate_worker


def test_worker_cap_counts_active_workers_only(db, repos, company, admin):
    company.max_workers = 2
    db.commit()

    first = create_worker(repos, company.id, "Ali", "hourly", admin, payroll_info={"hourlyRate": 12})
    create_worker(repos, company.id, "Siti", "monthly-salary", admin, payroll_info={"monthlySalary": 3200})
    with pytest.raises(Conflict):
        create_worker(repos, company.id, "Raj", "unit-based", admin)

    deactivate_worker(repos, first.id, admin)
    assert create_worker(repos, company.id, "Raj", "unit-based", admin).is_active is True


def test_unknown_payment_type_rejected(repos, company, admin):
    with pytest.raises(InvalidInput):
        create_worker(repos, company.id, "Ali", "commission", admin)


def test_workers_added_within_tenant_only(repos, other_company, subcon_admin):
    with pytest.raises(Forbidden):
        create_worker(repos, other_company.id, "Ali", "hourly", subcon_admin)
