"""Expose SQLAlchemy models for convenient imports."""

from .client import Client, ClientStatus, RecurrencePreference
from .payment import PaymentMethod, PaymentType
from .session import (
    DEFAULT_SESSION_DURATION,
    SessionFormat,
    SessionStatus,
    TherapySession,
)

__all__ = [
    "Client",
    "ClientStatus",
    "RecurrencePreference",
    "PaymentMethod",
    "PaymentType",
    "DEFAULT_SESSION_DURATION",
    "SessionFormat",
    "SessionStatus",
    "TherapySession",
]
