"""Business logic for booking sessions and moving them through their lifecycle."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from .. import models, schemas
from ..timeutils import day_bounds, practice_now, to_practice_local
from .clients import ClientService
from .scheduling import SchedulingConflict, SchedulingService

LOGGER = logging.getLogger(__name__)


class SessionServiceError(RuntimeError):
    """Raised when a session change cannot be persisted."""


class StaleSessionError(RuntimeError):
    """Raised when a session changed after the caller last read it."""


def _supports_for_update(db: Session) -> bool:
    dialect = getattr(getattr(db, "bind", None), "dialect", None)
    return bool(dialect is not None and getattr(dialect, "supports_for_update", False))


class SessionService:
    """Operations over a practitioner's therapy sessions."""

    @staticmethod
    def list_sessions(
        db: Session,
        user_id: str,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        client_id: Optional[str] = None,
        status: Optional[models.SessionStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[Iterable[models.TherapySession], int]:
        query = db.query(models.TherapySession).filter(
            models.TherapySession.user_id == user_id
        )
        if start is not None:
            query = query.filter(models.TherapySession.scheduled_at >= to_practice_local(start))
        if end is not None:
            query = query.filter(models.TherapySession.scheduled_at <= to_practice_local(end))
        if client_id:
            query = query.filter(models.TherapySession.client_id == client_id)
        if status is not None:
            query = query.filter(models.TherapySession.status == status)

        total = query.count()
        items = (
            query.order_by(models.TherapySession.scheduled_at, models.TherapySession.id)
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    @staticmethod
    def sessions_for_day(
        db: Session, user_id: str, day: date
    ) -> list[models.TherapySession]:
        start, end = day_bounds(day)
        return (
            db.query(models.TherapySession)
            .options(selectinload(models.TherapySession.client))
            .filter(
                models.TherapySession.user_id == user_id,
                models.TherapySession.scheduled_at >= start,
                models.TherapySession.scheduled_at <= end,
            )
            .order_by(models.TherapySession.scheduled_at)
            .all()
        )

    @staticmethod
    def get_session(
        db: Session, user_id: str, session_id: str
    ) -> Optional[models.TherapySession]:
        return (
            db.query(models.TherapySession)
            .options(selectinload(models.TherapySession.client))
            .filter(
                models.TherapySession.id == session_id,
                models.TherapySession.user_id == user_id,
            )
            .first()
        )

    @staticmethod
    def _next_session_number(db: Session, client_id: str) -> int:
        current = (
            db.query(func.max(models.TherapySession.session_number))
            .filter(models.TherapySession.client_id == client_id)
            .scalar()
        )
        return int(current or 0) + 1

    @staticmethod
    def _commit(db: Session, session: models.TherapySession, action: str) -> models.TherapySession:
        try:
            db.commit()
        except StaleDataError as exc:
            db.rollback()
            raise StaleSessionError(
                "Session was modified by another request; reload and retry"
            ) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.warning("Unable to %s session %s: %s", action, session.id, exc)
            raise SessionServiceError(f"Unable to {action} session") from exc
        db.refresh(session)
        return session

    @classmethod
    def create_session(
        cls, db: Session, user_id: str, data: schemas.SessionCreate
    ) -> models.TherapySession:
        client = ClientService.get_client(db, user_id, str(data.client_id))
        if client is None:
            raise ValueError("Client not found")

        if data.status == models.SessionStatus.CANCELLED and data.paid:
            raise ValueError("A cancelled session cannot be paid")
        if data.receipt_sent and not data.paid:
            raise ValueError("A receipt can only be sent for a paid session")

        price = data.price
        if price is None:
            price = client.session_price or 0

        now = practice_now()
        session = models.TherapySession(
            user_id=user_id,
            client_id=client.id,
            session_number=cls._next_session_number(db, client.id),
            scheduled_at=data.scheduled_at,
            duration=data.duration,
            status=data.status,
            price=price,
            paid=data.paid,
            payment_method=data.payment_method if data.paid else None,
            paid_at=now if data.paid else None,
            receipt_sent=data.receipt_sent,
            receipt_sent_at=now if data.receipt_sent else None,
            completed_at=now if data.status == models.SessionStatus.COMPLETED else None,
            format=data.format,
            meeting_link=(data.meeting_link or "").strip() or None,
            note_encrypted=data.note_encrypted,
        )
        db.add(session)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise SessionServiceError(
                "Session numbering collided with a concurrent booking"
            ) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise SessionServiceError("Unable to create session") from exc
        db.refresh(session)
        LOGGER.debug(
            "Booked session #%s for client %s at %s",
            session.session_number,
            client.id,
            session.scheduled_at,
        )
        return session

    @classmethod
    def mark_completed(
        cls, db: Session, session: models.TherapySession
    ) -> models.TherapySession:
        if session.status != models.SessionStatus.SCHEDULED:
            raise ValueError("Only scheduled sessions can be completed")
        session.status = models.SessionStatus.COMPLETED
        session.completed_at = practice_now()
        return cls._commit(db, session, "complete")

    @classmethod
    def mark_paid(
        cls,
        db: Session,
        session: models.TherapySession,
        method: models.PaymentMethod,
    ) -> models.TherapySession:
        if session.status == models.SessionStatus.CANCELLED:
            raise ValueError("A cancelled session cannot be paid")
        if not session.paid:
            session.paid = True
            session.paid_at = practice_now()
        session.payment_method = method
        return cls._commit(db, session, "mark paid")

    @classmethod
    def unmark_paid(
        cls, db: Session, session: models.TherapySession
    ) -> models.TherapySession:
        if session.receipt_sent:
            raise ValueError("Unmark the receipt before removing the payment")
        session.paid = False
        session.paid_at = None
        session.payment_method = None
        return cls._commit(db, session, "unmark paid")

    @classmethod
    def mark_receipt_sent(
        cls, db: Session, session: models.TherapySession
    ) -> models.TherapySession:
        if session.status == models.SessionStatus.CANCELLED:
            raise ValueError("A cancelled session does not need a receipt")
        if not session.paid:
            raise ValueError("A receipt can only be sent for a paid session")
        if not session.receipt_sent:
            session.receipt_sent = True
            session.receipt_sent_at = practice_now()
        return cls._commit(db, session, "mark receipt")

    @classmethod
    def unmark_receipt_sent(
        cls, db: Session, session: models.TherapySession
    ) -> models.TherapySession:
        session.receipt_sent = False
        session.receipt_sent_at = None
        return cls._commit(db, session, "unmark receipt")

    @classmethod
    def cancel(cls, db: Session, session: models.TherapySession) -> models.TherapySession:
        if session.status != models.SessionStatus.SCHEDULED:
            raise ValueError("Only scheduled sessions can be cancelled")
        if session.paid:
            raise ValueError("Remove the payment before cancelling the session")
        session.status = models.SessionStatus.CANCELLED
        return cls._commit(db, session, "cancel")

    @classmethod
    def reschedule(
        cls,
        db: Session,
        session: models.TherapySession,
        new_time: datetime,
        *,
        expected_version: Optional[int] = None,
    ) -> models.TherapySession:
        """Move a scheduled session after re-validating the target slot.

        Raises ``SchedulingConflict`` when the slot is taken and
        ``StaleSessionError`` when ``expected_version`` no longer matches.
        """

        if _supports_for_update(db):
            try:
                db.refresh(session, with_for_update=True)
            except SQLAlchemyError as exc:
                db.rollback()
                raise SessionServiceError("Unable to lock session") from exc

        if expected_version is not None and session.version != expected_version:
            raise StaleSessionError(
                f"Session is at version {session.version}, expected {expected_version}"
            )
        if session.status != models.SessionStatus.SCHEDULED:
            raise ValueError("Only scheduled sessions can be rescheduled")

        target = to_practice_local(new_time)
        result = SchedulingService.check_conflict(
            db,
            str(session.user_id),
            target,
            session.duration,
            exclude_session_id=str(session.id),
        )
        if not result.ok:
            raise SchedulingConflict(result)

        session.scheduled_at = target
        return cls._commit(db, session, "reschedule")

    @classmethod
    def update_session(
        cls,
        db: Session,
        session: models.TherapySession,
        data: schemas.SessionUpdate,
    ) -> models.TherapySession:
        """Edit price, duration, format, meeting link or note of a session.

        The start time only moves through ``reschedule``. A longer duration on
        a scheduled session is checked against the rest of its day.
        """

        changes = data.model_dump(exclude_unset=True)
        expected_version = changes.pop("expected_version", None)
        if "scheduled_at" in changes:
            raise ValueError("Use reschedule to change the start time of a session")
        for field in ("price", "duration", "format"):
            if field in changes and changes[field] is None:
                raise ValueError(f"{field} cannot be empty")
        if expected_version is not None and session.version != expected_version:
            raise StaleSessionError(
                f"Session is at version {session.version}, expected {expected_version}"
            )
        if "meeting_link" in changes:
            changes["meeting_link"] = (changes["meeting_link"] or "").strip() or None

        duration = changes.get("duration", session.duration)
        if session.status == models.SessionStatus.SCHEDULED and duration > session.duration:
            result = SchedulingService.check_conflict(
                db,
                str(session.user_id),
                session.scheduled_at,
                duration,
                exclude_session_id=str(session.id),
            )
            if not result.ok:
                raise SchedulingConflict(result)

        for key, value in changes.items():
            setattr(session, key, value)
        return cls._commit(db, session, "update")

    @staticmethod
    def delete_session(db: Session, session: models.TherapySession) -> None:
        try:
            db.delete(session)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise SessionServiceError("Unable to delete session") from exc
