import uuid
from datetime import datetime
from typing import Optional, Dict, Any, Literal

from pydantic import BaseModel


class WorkerCreate(BaseModel):
    company_id: uuid.UUID
    first_name: str
    last_name: Optional[str] = None
    employee_code: Optional[str] = None
    payment_type: Literal["monthly-salary", "hourly", "unit-based"]
    payroll_info: Optional[Dict[str, Any]] = None


class WorkerResponse(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    first_name: str
    last_name: Optional[str] = None
    employee_code: Optional[str] = None
    payment_type: str
    payroll_info: Optional[Dict[str, Any]] = None
    is_active: bool
    created_at: datetime
    deactivated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
