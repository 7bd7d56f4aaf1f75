import uuid

from fastapi import APIRouter, Depends

from ..auth.security import get_current_actor
from ..repositories import Repositories, get_repos
from ..schemas.payroll import PayrollGenerateRequest, PayrollStatusUpdate, PayrollRecordResponse
from ..services.permissions import Actor
from ..services import payroll_generator

router = APIRouter(prefix="/payroll", tags=["payroll"])


@router.post("/generate", response_model=PayrollRecordResponse, status_code=201)
def generate_payroll(
    payload: PayrollGenerateRequest,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return payroll_generator.generate_payroll(
        repos, payload.worker_id, payload.period_start, payload.period_end, actor
    )


@router.get("/{record_id}", response_model=PayrollRecordResponse)
def get_payroll(
    record_id: uuid.UUID,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return payroll_generator.get_payroll(repos, record_id, actor)


@router.post("/{record_id}/status", response_model=PayrollRecordResponse)
def update_payroll_status(
    record_id: uuid.UUID,
    payload: PayrollStatusUpdate,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return payroll_generator.update_payroll_status(repos, record_id, payload.status, actor)
