"""Worker onboarding and deactivation under the company's subscription cap."""
from datetime import datetime
from typing import Optional

import structlog

from ..errors import Conflict, Forbidden, InvalidInput, NotFound
from ..models.models import Worker
from .payroll_calculators import CALCULATORS
from .permissions import Actor, is_staff, in_tenant

logger = structlog.get_logger(__name__)


def create_worker(
    repos,
    company_id,
    first_name: str,
    payment_type: str,
    actor: Actor,
    last_name: Optional[str] = None,
    employee_code: Optional[str] = None,
    payroll_info: Optional[dict] = None,
) -> Worker:
    company = repos.companies.get(company_id)
    if company is None:
        raise NotFound(f"Company {company_id} not found")
    if not (is_staff(actor) and in_tenant(actor, company.id)):
        raise Forbidden("Not allowed to add workers to this company")
    if payment_type not in CALCULATORS:
        raise InvalidInput(f"Unknown payment type: {payment_type}")

    if company.max_workers is not None and repos.workers.count_active(company.id) >= company.max_workers:
        raise Conflict(f"Company {company.id} has reached its limit of {company.max_workers} active workers")

    worker = Worker(
        company_id=company.id,
        first_name=first_name,
        last_name=last_name,
        employee_code=employee_code,
        payment_type=payment_type,
        payroll_info=payroll_info or {},
        is_active=True,
    )
    repos.workers.add(worker)
    repos.db.commit()
    repos.db.refresh(worker)
    logger.info("worker_created", worker_id=str(worker.id), company_id=str(company.id))
    return worker


def deactivate_worker(repos, worker_id, actor: Actor) -> Worker:
    """Workers are never deleted; payroll and timesheet history keep pointing at them."""
    worker = repos.workers.get(worker_id)
    if worker is None:
        raise NotFound(f"Worker {worker_id} not found")
    if not (is_staff(actor) and in_tenant(actor, worker.company_id)):
        raise Forbidden("Not allowed to manage this worker")
    worker.is_active = False
    worker.deactivated_at = datetime.utcnow()
    repos.db.commit()
    repos.db.refresh(worker)
    logger.info("worker_deactivated", worker_id=str(worker.id))
    return worker
