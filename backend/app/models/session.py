"""SQLAlchemy model definitions for therapy sessions."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timedelta

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID
from .payment import PAYMENT_METHOD_ENUM

DEFAULT_SESSION_DURATION = 50


class SessionStatus(str, enum.Enum):
    """Lifecycle status of an appointment."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SessionFormat(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"


def _string_enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        native_enum=False,
        validate_strings=True,
        length=16,
    )


class TherapySession(Base):
    """One scheduled, completed or cancelled appointment with a client."""

    __tablename__ = "sessions"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_sessions_price_non_negative"),
        CheckConstraint("duration > 0", name="ck_sessions_duration_positive"),
        CheckConstraint(
            "(paid AND paid_at IS NOT NULL) OR (NOT paid AND paid_at IS NULL)",
            name="ck_sessions_paid_at_matches_paid",
        ),
        CheckConstraint(
            "(receipt_sent AND receipt_sent_at IS NOT NULL)"
            " OR (NOT receipt_sent AND receipt_sent_at IS NULL)",
            name="ck_sessions_receipt_sent_at_matches_flag",
        ),
    )

    id = Column("session_id", GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False)
    client_id = Column(
        GUID(),
        ForeignKey("clients.client_id", ondelete="CASCADE"),
        nullable=False,
    )
    session_number = Column(Integer, nullable=False)
    scheduled_at = Column(DateTime(timezone=False), nullable=False)
    duration = Column(Integer, nullable=False, default=DEFAULT_SESSION_DURATION)
    status = Column(
        _string_enum(SessionStatus, "session_status_enum"),
        nullable=False,
        default=SessionStatus.SCHEDULED,
    )
    price = Column(Integer, nullable=False, default=0)
    paid = Column(Boolean, nullable=False, default=False)
    payment_method = Column(PAYMENT_METHOD_ENUM, nullable=True)
    paid_at = Column(DateTime(timezone=False), nullable=True)
    receipt_sent = Column(Boolean, nullable=False, default=False)
    receipt_sent_at = Column(DateTime(timezone=False), nullable=True)
    completed_at = Column(DateTime(timezone=False), nullable=True)
    format = Column(
        _string_enum(SessionFormat, "session_format_enum"),
        nullable=False,
        default=SessionFormat.OFFLINE,
    )
    meeting_link = Column(String(500), nullable=True)
    note_encrypted = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    client = relationship("Client", back_populates="sessions")

    __mapper_args__ = {"version_id_col": version}

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration or DEFAULT_SESSION_DURATION)


Index("sessions_user_scheduled_idx", TherapySession.user_id, TherapySession.scheduled_at)
Index("sessions_client_idx", TherapySession.client_id)
Index(
    "sessions_client_number_idx",
    TherapySession.client_id,
    TherapySession.session_number,
    unique=True,
)
