"""Service layer encapsulating business logic for API routers."""

from .clients import ClientService, ClientServiceError
from .finances import FinanceService, FinanceServiceError, UNKNOWN_CLIENT
from .scheduling import (
    SLOT_TAKEN_MESSAGE,
    SchedulingConflict,
    SchedulingService,
    SchedulingServiceError,
)
from .sessions import SessionService, SessionServiceError, StaleSessionError

__all__ = [
    "ClientService",
    "ClientServiceError",
    "FinanceService",
    "FinanceServiceError",
    "UNKNOWN_CLIENT",
    "SLOT_TAKEN_MESSAGE",
    "SchedulingConflict",
    "SchedulingService",
    "SchedulingServiceError",
    "SessionService",
    "SessionServiceError",
    "StaleSessionError",
]
