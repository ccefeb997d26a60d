"""Next-session proposals and booking conflict detection."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..timeutils import day_bounds

LOGGER = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = "Это время уже занято!"

_RECURRENCE_INTERVALS = {
    models.RecurrencePreference.WEEKLY: timedelta(days=7),
    models.RecurrencePreference.BIWEEKLY: timedelta(days=14),
}


class SchedulingServiceError(RuntimeError):
    """Raised when existing bookings cannot be loaded to validate a slot."""


class SchedulingConflict(Exception):
    """Raised when a requested slot overlaps another session."""

    def __init__(self, result: schemas.ConflictCheckResult) -> None:
        super().__init__(result.message or SLOT_TAKEN_MESSAGE)
        self.result = result


def _duration_of(value: Optional[int]) -> timedelta:
    return timedelta(minutes=value or models.DEFAULT_SESSION_DURATION)


class SchedulingService:
    """Pure scheduling helpers; neither operation writes to the database."""

    @staticmethod
    def propose_next(
        completed_session: models.TherapySession,
        client: Optional[models.Client],
    ) -> Optional[schemas.ProposedSlot]:
        """Suggest the follow-up slot implied by the client's recurrence.

        Weekly clients get the same clock time seven days later, fortnightly
        clients fourteen days later. Other preferences produce no proposal.
        """

        if completed_session.status != models.SessionStatus.COMPLETED:
            return None
        if client is None:
            return None

        interval = _RECURRENCE_INTERVALS.get(client.recurrence)
        if interval is None:
            return None

        price = client.session_price
        if price is None:
            price = completed_session.price or 0

        return schemas.ProposedSlot(
            client_id=str(client.id),
            client_name=client.name,
            scheduled_at=completed_session.scheduled_at + interval,
            duration=completed_session.duration or models.DEFAULT_SESSION_DURATION,
            price=price,
        )

    @staticmethod
    def _sessions_on_day(
        db: Session,
        user_id: str,
        candidate: datetime,
        exclude_session_id: Optional[str],
    ) -> list[models.TherapySession]:
        start, end = day_bounds(candidate.date())
        query = db.query(models.TherapySession).filter(
            models.TherapySession.user_id == user_id,
            models.TherapySession.status != models.SessionStatus.CANCELLED,
            models.TherapySession.scheduled_at >= start,
            models.TherapySession.scheduled_at <= end,
        )
        if exclude_session_id:
            query = query.filter(models.TherapySession.id != exclude_session_id)
        return query.order_by(models.TherapySession.scheduled_at).all()

    @classmethod
    def check_conflict(
        cls,
        db: Session,
        user_id: str,
        candidate: datetime,
        duration_minutes: Optional[int] = None,
        exclude_session_id: Optional[str] = None,
    ) -> schemas.ConflictCheckResult:
        """Check whether ``candidate`` fits between the neighbouring sessions.

        Only sessions on the candidate's calendar day are considered. A slot
        that starts exactly when the previous session ends, or ends exactly
        when the next one starts, is accepted.
        """

        if duration_minutes is not None and duration_minutes <= 0:
            raise ValueError("Session duration must be positive")

        try:
            day_sessions = cls._sessions_on_day(db, user_id, candidate, exclude_session_id)
        except SQLAlchemyError as exc:
            LOGGER.warning("Unable to load sessions to check %s: %s", candidate, exc)
            raise SchedulingServiceError(
                "Could not reschedule: existing sessions are unavailable"
            ) from exc

        previous = None
        following = None
        for session in day_sessions:
            if session.scheduled_at <= candidate:
                previous = session
            if following is None and session.scheduled_at >= candidate:
                following = session

        if previous is not None and candidate < previous.scheduled_at + _duration_of(
            previous.duration
        ):
            return schemas.ConflictCheckResult(
                ok=False,
                conflicting_session_id=str(previous.id),
                message=SLOT_TAKEN_MESSAGE,
            )

        if following is not None and candidate + _duration_of(
            duration_minutes
        ) > following.scheduled_at:
            return schemas.ConflictCheckResult(
                ok=False,
                conflicting_session_id=str(following.id),
                message=SLOT_TAKEN_MESSAGE,
            )

        return schemas.ConflictCheckResult(ok=True)
