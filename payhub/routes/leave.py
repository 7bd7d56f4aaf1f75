import uuid

from fastapi import APIRouter, Depends

from ..auth.security import get_current_actor
from ..repositories import Repositories, get_repos
from ..schemas.leave import LeaveRequestCreate, LeaveRequestResponse
from ..services.permissions import Actor
from ..services import leave_service

router = APIRouter(prefix="/leave-requests", tags=["leave"])


@router.post("", response_model=LeaveRequestResponse, status_code=201)
def create_leave_request(
    payload: LeaveRequestCreate,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return leave_service.create_leave_request(
        repos,
        payload.worker_id,
        payload.leave_type_id,
        payload.start_date,
        payload.end_date,
        actor,
        total_days=payload.total_days,
        reason=payload.reason,
    )


@router.post("/{request_id}/approve", response_model=LeaveRequestResponse)
def approve_leave_request(
    request_id: uuid.UUID,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return leave_service.approve_leave(repos, request_id, actor)


@router.post("/{request_id}/reject", response_model=LeaveRequestResponse)
def reject_leave_request(
    request_id: uuid.UUID,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return leave_service.reject_leave(repos, request_id, actor)


@router.post("/{request_id}/cancel", response_model=LeaveRequestResponse)
def cancel_leave_request(
    request_id: uuid.UUID,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return leave_service.cancel_leave(repos, request_id, actor)
