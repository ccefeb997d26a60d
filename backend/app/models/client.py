"""SQLAlchemy model definitions for clients."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID
from .payment import PAYMENT_TYPE_ENUM, PaymentType


class ClientStatus(str, enum.Enum):
    """Lifecycle of the therapeutic relationship."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class RecurrencePreference(str, enum.Enum):
    """How often a client prefers to meet."""

    WEEKLY = "1x/week"
    BIWEEKLY = "1x/2weeks"
    TWICE_WEEKLY = "2x/week"
    FLEXIBLE = "flexible"


class Client(Base):
    """A person receiving sessions from the practitioner."""

    __tablename__ = "clients"
    __table_args__ = (
        CheckConstraint(
            "session_price IS NULL OR session_price >= 0",
            name="ck_clients_session_price_non_negative",
        ),
    )

    id = Column("client_id", GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False)
    client_code = Column(String(64), nullable=False)
    name = Column(String(200), nullable=False)
    source = Column(String(32), nullable=False, default="private")
    payment_type = Column(
        PAYMENT_TYPE_ENUM, nullable=False, default=PaymentType.SELF_EMPLOYED
    )
    need_receipt = Column(Boolean, nullable=False, default=True)
    # Kept as free text: an unrecognised value just disables next-session proposals.
    schedule = Column(String(32), nullable=True)
    session_price = Column(Integer, nullable=True)
    status = Column(
        Enum(
            ClientStatus,
            name="client_status_enum",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            native_enum=False,
            validate_strings=True,
            length=16,
        ),
        nullable=False,
        default=ClientStatus.ACTIVE,
    )
    phone = Column(String(32), nullable=True)
    email = Column(String(200), nullable=True)
    telegram = Column(String(64), nullable=True)
    notes_encrypted = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    sessions = relationship("TherapySession", back_populates="client")

    @property
    def recurrence(self) -> RecurrencePreference | None:
        if not self.schedule:
            return None
        try:
            return RecurrencePreference(self.schedule.strip())
        except ValueError:
            return None

    @property
    def receipt_exempt(self) -> bool:
        return self.payment_type == PaymentType.CASH or self.need_receipt is False


Index("clients_user_idx", Client.user_id)
Index("clients_user_code_idx", Client.user_id, Client.client_code, unique=True)
