import uuid
from datetime import date, datetime
from typing import Optional, List, Dict, Any

from pydantic import BaseModel


class TransitionRequest(BaseModel):
    comments: Optional[str] = None


class AttendanceCreate(BaseModel):
    work_date: date
    clock_in: datetime
    clock_out: datetime
    lunch_out: Optional[datetime] = None
    lunch_in: Optional[datetime] = None
    check_in_method: str = "manual"  # manual|qr-code|gps|photo
    notes: Optional[str] = None


class EntryUpdate(BaseModel):
    clock_in: Optional[datetime] = None
    clock_out: Optional[datetime] = None
    lunch_out: Optional[datetime] = None
    lunch_in: Optional[datetime] = None
    normal_hours: Optional[float] = None
    ot1_5_hours: Optional[float] = None
    ot2_0_hours: Optional[float] = None
    is_absent: Optional[bool] = None
    leave_type: Optional[str] = None
    notes: Optional[str] = None
    check_in_method: Optional[str] = None


class GenerateWeekRequest(BaseModel):
    company_id: uuid.UUID
    week_of: date


class GenerateWeekResponse(BaseModel):
    created: int
    skipped: int
    total: int


class TimesheetEntryResponse(BaseModel):
    id: uuid.UUID
    work_date: date
    day_of_week: str
    clock_in: Optional[datetime] = None
    clock_out: Optional[datetime] = None
    lunch_out: Optional[datetime] = None
    lunch_in: Optional[datetime] = None
    normal_hours: float
    ot1_5_hours: float
    ot2_0_hours: float
    total_hours: float
    check_in_method: Optional[str] = None
    is_absent: bool
    leave_type: Optional[str] = None
    notes: Optional[str] = None
    is_conflict: bool
    conflict_with: Optional[List[str]] = None

    class Config:
        from_attributes = True


class TimesheetResponse(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    worker_id: uuid.UUID
    week_start_date: date
    week_end_date: date
    status: str
    total_normal_hours: float
    total_ot1_5_hours: float
    total_ot2_0_hours: float
    total_hours: float
    approval_history: Optional[List[Dict[str, Any]]] = None
    manually_edited: bool
    edit_history: Optional[List[Dict[str, Any]]] = None
    is_conflict: bool
    entries: List[TimesheetEntryResponse] = []
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class HolidayCreate(BaseModel):
    company_id: uuid.UUID
    name: str
    holiday_date: date
    holiday_type: str = "public"  # public|company|state-specific
    is_paid: bool = True


class HolidayResponse(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    name: str
    holiday_date: date
    holiday_type: str
    is_paid: bool
    is_active: bool

    class Config:
        from_attributes = True
