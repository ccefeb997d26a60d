"""Pydantic schemas for the client resources."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.client import ClientStatus, RecurrencePreference
from ..models.payment import PaymentType
from .common import PaginatedResponse


class ClientBase(BaseModel):
    """Attributes shared by create and read operations."""

    name: str = Field(..., min_length=1, max_length=200)
    source: str = Field(default="private", max_length=32)
    payment_type: PaymentType = PaymentType.SELF_EMPLOYED
    need_receipt: bool = True
    schedule: Optional[str] = Field(
        default=None,
        max_length=32,
        description="Recurrence preference: 1x/week, 1x/2weeks, 2x/week or flexible",
    )
    session_price: Optional[int] = Field(default=None, ge=0)
    status: ClientStatus = ClientStatus.ACTIVE
    phone: Optional[str] = None
    email: Optional[str] = None
    telegram: Optional[str] = None
    notes_encrypted: Optional[str] = Field(
        default=None, description="Client-side encrypted notes, stored verbatim"
    )


class ClientCreate(ClientBase):
    """Schema used when creating a client."""

    client_code: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Display identifier; generated when omitted",
    )
    schedule: Optional[RecurrencePreference] = None


class ClientUpdate(BaseModel):
    """Schema used when updating an existing client."""

    client_code: Optional[str] = Field(default=None, max_length=64)
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    source: Optional[str] = Field(default=None, max_length=32)
    payment_type: Optional[PaymentType] = None
    need_receipt: Optional[bool] = None
    schedule: Optional[RecurrencePreference] = None
    session_price: Optional[int] = Field(default=None, ge=0)
    status: Optional[ClientStatus] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    telegram: Optional[str] = None
    notes_encrypted: Optional[str] = None


class ClientSessionStats(BaseModel):
    """Per-client totals derived from the client's non-cancelled sessions."""

    total_sessions: int = 0
    total_paid: int = 0
    debt: int = Field(default=0, description="Price of completed sessions not yet paid")
    last_session_at: Optional[datetime] = Field(
        default=None, description="Start of the most recent completed session"
    )
    next_session_at: Optional[datetime] = Field(
        default=None, description="Start of the earliest upcoming scheduled session"
    )


class ClientRead(ClientBase, ClientSessionStats):
    """Schema used when returning client data."""

    id: str
    client_code: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClientListResponse(PaginatedResponse[ClientRead]):
    """Paginated client listing."""

    pass
