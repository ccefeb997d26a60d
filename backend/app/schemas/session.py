"""Pydantic schemas for therapy sessions."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.payment import PaymentMethod
from ..models.session import DEFAULT_SESSION_DURATION, SessionFormat, SessionStatus
from ..timeutils import to_practice_local
from .common import PaginatedResponse


class SessionCreate(BaseModel):
    """Payload used to book a new session."""

    client_id: UUID
    scheduled_at: datetime
    duration: int = Field(default=DEFAULT_SESSION_DURATION, gt=0, le=24 * 60)
    price: Optional[int] = Field(
        default=None, ge=0, description="Defaults to the client's session price"
    )
    status: SessionStatus = SessionStatus.SCHEDULED
    format: SessionFormat = SessionFormat.OFFLINE
    meeting_link: Optional[str] = Field(default=None, max_length=500)
    paid: bool = False
    payment_method: Optional[PaymentMethod] = None
    receipt_sent: bool = False
    note_encrypted: Optional[str] = None

    @field_validator("scheduled_at")
    @classmethod
    def _normalize_scheduled_at(cls, value: datetime) -> datetime:
        return to_practice_local(value)


class SessionRead(BaseModel):
    """Schema representing a stored session."""

    id: str
    client_id: str
    session_number: int
    scheduled_at: datetime
    duration: int
    status: SessionStatus
    price: int
    paid: bool
    payment_method: Optional[PaymentMethod] = None
    paid_at: Optional[datetime] = None
    receipt_sent: bool
    receipt_sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    format: SessionFormat
    meeting_link: Optional[str] = None
    note_encrypted: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SessionListResponse(PaginatedResponse[SessionRead]):
    """Paginated session listing."""

    pass


class SessionPaymentUpdate(BaseModel):
    method: PaymentMethod


class SessionRescheduleRequest(BaseModel):
    """Move a scheduled session to a new start time."""

    scheduled_at: datetime
    expected_version: Optional[int] = Field(
        default=None,
        ge=1,
        description="Version the caller last saw; the move is refused if it changed",
    )

    @field_validator("scheduled_at")
    @classmethod
    def _normalize_scheduled_at(cls, value: datetime) -> datetime:
        return to_practice_local(value)


class SessionUpdate(BaseModel):
    """Edit the details of a booked session.

    Start time is not editable here; ``scheduled_at`` is accepted only so the
    service can refuse it and point callers at the reschedule endpoint.
    """

    price: Optional[int] = Field(default=None, ge=0)
    duration: Optional[int] = Field(default=None, gt=0, le=24 * 60)
    format: Optional[SessionFormat] = None
    meeting_link: Optional[str] = Field(default=None, max_length=500)
    note_encrypted: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    expected_version: Optional[int] = Field(default=None, ge=1)
