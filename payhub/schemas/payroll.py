import uuid
from datetime import date, datetime
from typing import Optional, List, Dict, Any, Literal

from pydantic import BaseModel


class PayrollGenerateRequest(BaseModel):
    worker_id: uuid.UUID
    period_start: date
    period_end: date


class PayrollStatusUpdate(BaseModel):
    status: Literal["approved", "paid"]


class PayrollRecordResponse(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    worker_id: uuid.UUID
    period_start: date
    period_end: date
    payment_type: str

    # Hourly
    timesheet_ids: Optional[List[str]] = None
    total_normal_hours: Optional[float] = None
    total_ot1_5_hours: Optional[float] = None
    total_ot2_0_hours: Optional[float] = None
    total_hours: Optional[float] = None
    hourly_rate: Optional[float] = None
    ot1_5_rate: Optional[float] = None
    ot2_0_rate: Optional[float] = None
    normal_pay: Optional[float] = None
    ot1_5_pay: Optional[float] = None
    ot2_0_pay: Optional[float] = None

    # Monthly-salary
    monthly_salary: Optional[float] = None
    base_salary: Optional[float] = None
    working_days: Optional[int] = None
    paid_leave_days: Optional[float] = None
    unpaid_leave_days: Optional[float] = None
    actual_working_days: Optional[float] = None

    # Unit-based
    unit_record_ids: Optional[List[str]] = None
    unit_summary: Optional[Dict[str, Dict[str, Any]]] = None

    allowances: Optional[List[Dict[str, Any]]] = None
    total_allowances: float
    gross_pay: float

    statutory_wage: float
    epf_employee: float
    epf_employer: float
    epf_total: float
    socso_employee: float
    socso_employer: float
    socso_total: float
    eis_employee: float
    eis_employer: float
    eis_total: float
    statutory_employee_total: float
    statutory_employer_total: float

    deductions: Optional[List[Dict[str, Any]]] = None
    other_deductions: float
    loan_deductions: Optional[List[Dict[str, Any]]] = None
    total_loan_deductions: float
    total_deductions: float
    net_pay: float

    status: str
    payment_status: str
    created_at: datetime
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    class Config:
        from_attributes = True
