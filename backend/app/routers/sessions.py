"""Router exposing session booking, lifecycle transitions and conflict checks."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..security import CurrentUser, get_current_user
from ..services import (
    SchedulingConflict,
    SchedulingService,
    SchedulingServiceError,
    SessionService,
    SessionServiceError,
    StaleSessionError,
)
from ..timeutils import to_practice_local

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def _load_session(db: Session, user: CurrentUser, session_id: UUID) -> models.TherapySession:
    session = SessionService.get_session(db, user.id, str(session_id))
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


def _run_transition(action, *args, **kwargs) -> models.TherapySession:
    try:
        return action(*args, **kwargs)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StaleSessionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except SessionServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session could not be updated",
        ) from exc


def _slot_taken(exc: SchedulingConflict) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "message": str(exc),
            "conflicting_session_id": exc.result.conflicting_session_id,
        },
    )


@router.get("/", response_model=schemas.SessionListResponse)
def list_sessions(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    start: Optional[datetime] = Query(None, description="Sessions starting at or after"),
    end: Optional[datetime] = Query(None, description="Sessions starting at or before"),
    client_id: Optional[UUID] = Query(None),
    status_filter: Optional[models.SessionStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.SessionListResponse:
    if start and end and to_practice_local(start) > to_practice_local(end):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start cannot be after end",
        )

    items, total = SessionService.list_sessions(
        db,
        user.id,
        start=start,
        end=end,
        client_id=str(client_id) if client_id else None,
        status=status_filter,
        skip=skip,
        limit=limit,
    )
    return schemas.SessionListResponse(items=items, total=total, limit=limit, skip=skip)


@router.get("/day", response_model=List[schemas.SessionRead])
def sessions_for_day(
    day: date = Query(..., description="Calendar day on the practice clock"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> List[schemas.SessionRead]:
    return SessionService.sessions_for_day(db, user.id, day)


@router.get("/conflicts", response_model=schemas.ConflictCheckResult)
def check_conflict(
    scheduled_at: datetime = Query(..., description="Candidate start time"),
    duration: int = Query(models.DEFAULT_SESSION_DURATION, gt=0, le=24 * 60),
    exclude_session_id: Optional[UUID] = Query(
        None, description="Session being moved; ignored as a neighbour"
    ),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.ConflictCheckResult:
    """Report whether a slot is free; fails closed when bookings cannot be read."""
    try:
        return SchedulingService.check_conflict(
            db,
            user.id,
            to_practice_local(scheduled_at),
            duration,
            exclude_session_id=str(exclude_session_id) if exclude_session_id else None,
        )
    except SchedulingServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc


@router.post("/", response_model=schemas.SessionRead, status_code=status.HTTP_201_CREATED)
def create_session(
    session_in: schemas.SessionCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.SessionRead:
    return _run_transition(SessionService.create_session, db, user.id, session_in)


@router.get("/{session_id}", response_model=schemas.SessionRead)
def get_session(
    session_id: UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.SessionRead:
    return _load_session(db, user, session_id)


@router.patch("/{session_id}", response_model=schemas.SessionRead)
def update_session(
    session_id: UUID,
    session_in: schemas.SessionUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.SessionRead:
    """Edit price, duration, format, meeting link or note; use /reschedule to move."""
    session = _load_session(db, user, session_id)
    try:
        return _run_transition(SessionService.update_session, db, session, session_in)
    except SchedulingConflict as exc:
        raise _slot_taken(exc) from exc
    except SchedulingServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> None:
    session = _load_session(db, user, session_id)
    try:
        SessionService.delete_session(db, session)
    except SessionServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session could not be deleted",
        ) from exc


@router.post("/{session_id}/complete", response_model=schemas.SessionCompletionResponse)
def complete_session(
    session_id: UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.SessionCompletionResponse:
    """Complete the session and suggest the next one when the client's rhythm allows."""
    session = _load_session(db, user, session_id)
    completed = _run_transition(SessionService.mark_completed, db, session)

    proposal = None
    try:
        proposal = SchedulingService.propose_next(completed, completed.client)
    except Exception:
        LOGGER.exception("Unable to propose a follow-up for session %s", completed.id)

    return schemas.SessionCompletionResponse(
        session=schemas.SessionRead.model_validate(completed),
        proposal=proposal,
    )


@router.post("/{session_id}/payment", response_model=schemas.SessionRead)
def mark_paid(
    session_id: UUID,
    payment_in: schemas.SessionPaymentUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.SessionRead:
    session = _load_session(db, user, session_id)
    return _run_transition(SessionService.mark_paid, db, session, payment_in.method)


@router.delete("/{session_id}/payment", response_model=schemas.SessionRead)
def unmark_paid(
    session_id: UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.SessionRead:
    session = _load_session(db, user, session_id)
    return _run_transition(SessionService.unmark_paid, db, session)


@router.post("/{session_id}/receipt", response_model=schemas.SessionRead)
def mark_receipt_sent(
    session_id: UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.SessionRead:
    session = _load_session(db, user, session_id)
    return _run_transition(SessionService.mark_receipt_sent, db, session)


@router.delete("/{session_id}/receipt", response_model=schemas.SessionRead)
def unmark_receipt_sent(
    session_id: UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.SessionRead:
    session = _load_session(db, user, session_id)
    return _run_transition(SessionService.unmark_receipt_sent, db, session)


@router.post("/{session_id}/cancel", response_model=schemas.SessionRead)
def cancel_session(
    session_id: UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.SessionRead:
    session = _load_session(db, user, session_id)
    return _run_transition(SessionService.cancel, db, session)


@router.post("/{session_id}/reschedule", response_model=schemas.SessionRead)
def reschedule_session(
    session_id: UUID,
    reschedule_in: schemas.SessionRescheduleRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.SessionRead:
    session = _load_session(db, user, session_id)
    try:
        return _run_transition(
            SessionService.reschedule,
            db,
            session,
            reschedule_in.scheduled_at,
            expected_version=reschedule_in.expected_version,
        )
    except SchedulingConflict as exc:
        raise _slot_taken(exc) from exc
    except SchedulingServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
