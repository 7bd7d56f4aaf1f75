import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Body

from ..auth.security import get_current_actor
from ..repositories import Repositories, get_repos
from ..schemas.timesheets import (
    AttendanceCreate,
    EntryUpdate,
    GenerateWeekRequest,
    GenerateWeekResponse,
    TimesheetResponse,
    TransitionRequest,
)
from ..services.permissions import Actor
from ..services import timesheet_service, timesheet_workflow

router = APIRouter(prefix="/timesheets", tags=["timesheets"])


# Static paths first so they are not captured by /{timesheet_id}
@router.post("/generate-week", response_model=GenerateWeekResponse)
def generate_week(
    payload: GenerateWeekRequest,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return timesheet_service.generate_weekly_timesheets(repos, payload.company_id, payload.week_of, actor)


@router.patch("/entries/{entry_id}", response_model=TimesheetResponse)
def update_entry(
    entry_id: uuid.UUID,
    payload: EntryUpdate,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    changes = payload.model_dump(exclude_unset=True)
    return timesheet_service.update_entry(repos, entry_id, changes, actor)


@router.get("/{timesheet_id}", response_model=TimesheetResponse)
def get_timesheet(
    timesheet_id: uuid.UUID,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return timesheet_workflow.load_timesheet(repos, timesheet_id, actor)


@router.post("/{timesheet_id}/submit", response_model=TimesheetResponse)
def submit_timesheet(
    timesheet_id: uuid.UUID,
    payload: Optional[TransitionRequest] = Body(default=None),
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return timesheet_workflow.submit(repos, timesheet_id, actor, comments=payload.comments if payload else None)


@router.post("/{timesheet_id}/approve", response_model=TimesheetResponse)
def approve_timesheet(
    timesheet_id: uuid.UUID,
    payload: Optional[TransitionRequest] = Body(default=None),
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return timesheet_workflow.approve(repos, timesheet_id, actor, comments=payload.comments if payload else None)


@router.post("/{timesheet_id}/reject", response_model=TimesheetResponse)
def reject_timesheet(
    timesheet_id: uuid.UUID,
    payload: Optional[TransitionRequest] = Body(default=None),
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return timesheet_workflow.reject(repos, timesheet_id, actor, comments=payload.comments if payload else None)


@router.post("/{timesheet_id}/cancel", response_model=TimesheetResponse)
def cancel_timesheet(
    timesheet_id: uuid.UUID,
    payload: Optional[TransitionRequest] = Body(default=None),
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return timesheet_workflow.cancel(repos, timesheet_id, actor, comments=payload.comments if payload else None)


@router.post("/{timesheet_id}/attendance", response_model=TimesheetResponse)
def record_attendance(
    timesheet_id: uuid.UUID,
    payload: AttendanceCreate,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    return timesheet_service.record_attendance(
        repos,
        timesheet_id,
        payload.work_date,
        payload.clock_in,
        payload.clock_out,
        actor,
        lunch_out=payload.lunch_out,
        lunch_in=payload.lunch_in,
        check_in_method=payload.check_in_method,
        notes=payload.notes,
    )


@router.delete("/{timesheet_id}", status_code=204)
def delete_timesheet(
    timesheet_id: uuid.UUID,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    timesheet_service.delete_timesheet(repos, timesheet_id, actor)
