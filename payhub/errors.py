"""
Domain errors raised by the payroll and timesheet services.

Each error carries the HTTP status the API layer should answer with; the
services themselves never build HTTP responses.
"""
from typing import Optional


class PayHubError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(PayHubError):
    """Worker or company is missing configuration needed for the operation."""
    status_code = 400


class InvalidInput(PayHubError):
    """Request data is inconsistent (dates outside the week, clock out before clock in...)."""
    status_code = 400


class NotFound(PayHubError):
    status_code = 404


class Forbidden(PayHubError):
    status_code = 403


class TimesheetLocked(Forbidden):
    """Edit attempted on a timesheet whose status no longer allows edits."""


class InvalidTransition(PayHubError):
    status_code = 409

    def __init__(self, message: str, current: Optional[str] = None, required: Optional[str] = None):
        super().__init__(message)
        self.current = current
        self.required = required


class Conflict(PayHubError):
    status_code = 409


class DuplicatePayroll(Conflict):
    pass


class InsufficientLeaveBalance(PayHubError):
    status_code = 400
