import uuid

from fastapi import APIRouter, Depends

from ..auth.security import get_current_actor
from ..repositories import Repositories, get_repos
from ..schemas.workers import WorkerCreate, WorkerResponse
from ..services.permissions import Actor
from ..services import worker_service

router = APIRouter(prefix="/workers", tags=["workers"])


@router.post("", response_model=WorkerResponse, status_code=201)
def create_worker(
    payload: WorkerCreate,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    """Add a worker; fails with 409 once the company is at its active-worker cap."""
    return worker_service.create_worker(
        repos,
        payload.company_id,
        payload.first_name,
        payload.payment_type,
        actor,
        last_name=payload.last_name,
        employee_code=payload.employee_code,
        payroll_info=payload.payroll_info,
    )


@router.post("/{worker_id}/deactivate", response_model=WorkerResponse)
def deactivate_worker(
    worker_id: uuid.UUID,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return worker_service.deactivate_worker(repos, worker_id, actor)
