"""Schemas for next-session proposals and booking conflict checks."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .session import SessionRead


class ProposedSlot(BaseModel):
    """Suggested follow-up appointment; accepting it pre-fills a booking."""

    client_id: str
    client_name: str
    scheduled_at: datetime
    duration: int = Field(..., gt=0)
    price: int = Field(..., ge=0)


class ConflictCheckResult(BaseModel):
    ok: bool
    conflicting_session_id: Optional[str] = None
    message: Optional[str] = None


class SessionCompletionResponse(BaseModel):
    """Completed session plus the optional follow-up suggestion."""

    session: SessionRead
    proposal: Optional[ProposedSlot] = None
