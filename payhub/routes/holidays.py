from fastapi import APIRouter, Depends

from ..auth.security import get_current_actor
from ..repositories import Repositories, get_repos
from ..schemas.timesheets import HolidayCreate, HolidayResponse
from ..services.permissions import Actor
from ..services import timesheet_service

router = APIRouter(prefix="/holidays", tags=["holidays"])


@router.post("", response_model=HolidayResponse, status_code=201)
def create_holiday(
    payload: HolidayCreate,
    repos: Repositories = Depends(get_repos),
    actor: Actor = Depends(get_current_actor),
):
    """Create a gazetted holiday and mark it on the company's open timesheets."""
    return timesheet_service.create_holiday(
        repos,
        payload.company_id,
        payload.name,
        payload.holiday_date,
        actor,
        holiday_type=payload.holiday_type,
        is_paid=payload.is_paid,
    )
