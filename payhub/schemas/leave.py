import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


class LeaveRequestCreate(BaseModel):
    worker_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    total_days: Optional[float] = Field(default=None, gt=0)  # defaults to weekdays in the range
    reason: Optional[str] = None


class LeaveRequestResponse(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    worker_id: uuid.UUID
    leave_type_id: Optional[uuid.UUID] = None
    start_date: date
    end_date: date
    total_days: float
    status: str
    reason: Optional[str] = None
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
