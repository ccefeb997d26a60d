"""Business logic for client records."""

from __future__ import annotations

import logging
import time
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, case, func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..timeutils import practice_now

LOGGER = logging.getLogger(__name__)

_TRIMMED_FIELDS = (
    "client_code",
    "name",
    "source",
    "phone",
    "email",
    "telegram",
)


class ClientServiceError(RuntimeError):
    """Raised when client records cannot be read or persisted."""


class ClientService:
    """CRUD operations for a practitioner's clients."""

    @staticmethod
    def list_clients(
        db: Session,
        user_id: str,
        *,
        status: Optional[models.ClientStatus] = None,
        source: Optional[str] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[Iterable[models.Client], int]:
        query = db.query(models.Client).filter(models.Client.user_id == user_id)

        if status is not None:
            query = query.filter(models.Client.status == status)
        if source:
            query = query.filter(models.Client.source == source.strip())
        if search:
            normalized = f"%{search.strip().lower()}%"
            query = query.filter(
                or_(
                    func.lower(models.Client.name).like(normalized),
                    func.lower(models.Client.client_code).like(normalized),
                    func.lower(models.Client.phone).like(normalized),
                    func.lower(models.Client.email).like(normalized),
                )
            )

        total = query.count()
        items = (
            query.order_by(models.Client.name, models.Client.id)
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    @staticmethod
    def get_client(db: Session, user_id: str, client_id: str) -> Optional[models.Client]:
        return (
            db.query(models.Client)
            .filter(models.Client.id == client_id, models.Client.user_id == user_id)
            .first()
        )

    @staticmethod
    def lookup_many(
        db: Session, user_id: str, client_ids: Iterable[str]
    ) -> Dict[str, models.Client]:
        """Resolve many clients with a single query, keyed by id."""

        unique_ids = sorted({str(client_id) for client_id in client_ids if client_id})
        if not unique_ids:
            return {}
        clients = (
            db.query(models.Client)
            .filter(models.Client.user_id == user_id, models.Client.id.in_(unique_ids))
            .all()
        )
        return {str(client.id): client for client in clients}

    @staticmethod
    def session_stats(
        db: Session, user_id: str, client_ids: Iterable[str]
    ) -> Dict[str, schemas.ClientSessionStats]:
        """Aggregate the non-cancelled sessions of many clients in one grouped query.

        Clients without sessions are absent from the result.
        """

        unique_ids = sorted({str(client_id) for client_id in client_ids if client_id})
        if not unique_ids:
            return {}

        therapy = models.TherapySession
        completed = therapy.status == models.SessionStatus.COMPLETED
        upcoming = and_(
            therapy.status == models.SessionStatus.SCHEDULED,
            therapy.scheduled_at >= practice_now(),
        )
        try:
            rows = (
                db.query(
                    therapy.client_id,
                    func.count(therapy.id),
                    func.sum(case((therapy.paid.is_(True), therapy.price), else_=0)),
                    func.sum(
                        case((and_(completed, therapy.paid.is_(False)), therapy.price), else_=0)
                    ),
                    func.max(case((completed, therapy.scheduled_at), else_=None)),
                    func.min(case((upcoming, therapy.scheduled_at), else_=None)),
                )
                .filter(
                    therapy.user_id == user_id,
                    therapy.client_id.in_(unique_ids),
                    therapy.status != models.SessionStatus.CANCELLED,
                )
                .group_by(therapy.client_id)
                .all()
            )
        except SQLAlchemyError as exc:
            LOGGER.warning("Unable to aggregate sessions for %d clients: %s", len(unique_ids), exc)
            raise ClientServiceError("Unable to load client statistics") from exc

        return {
            str(client_id): schemas.ClientSessionStats(
                total_sessions=int(count or 0),
                total_paid=int(paid or 0),
                debt=int(debt or 0),
                last_session_at=last_at,
                next_session_at=next_at,
            )
            for client_id, count, paid, debt, last_at, next_at in rows
        }

    @classmethod
    def with_stats(
        cls, db: Session, user_id: str, clients: Iterable[models.Client]
    ) -> List[schemas.ClientRead]:
        clients = list(clients)
        stats = cls.session_stats(db, user_id, [client.id for client in clients])
        empty = schemas.ClientSessionStats()
        return [
            schemas.ClientRead.model_validate(client).model_copy(
                update=stats.get(str(client.id), empty).model_dump()
            )
            for client in clients
        ]

    @staticmethod
    def _normalize_payload(payload: dict) -> dict:
        for field in _TRIMMED_FIELDS:
            if field in payload and isinstance(payload[field], str):
                payload[field] = payload[field].strip() or None
        schedule = payload.get("schedule")
        if isinstance(schedule, models.RecurrencePreference):
            payload["schedule"] = schedule.value
        return payload

    @staticmethod
    def _generate_client_code() -> str:
        return f"auto_{int(time.time() * 1000)}"

    @classmethod
    def create_client(
        cls, db: Session, user_id: str, data: schemas.ClientCreate
    ) -> models.Client:
        payload = cls._normalize_payload(data.model_dump())
        if not payload.get("name"):
            raise ValueError("Client name cannot be blank")
        if not payload.get("source"):
            payload["source"] = "private"
        if not payload.get("client_code"):
            payload["client_code"] = cls._generate_client_code()

        client = models.Client(user_id=user_id, **payload)
        db.add(client)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ValueError(
                f"Client code {payload['client_code']} is already in use"
            ) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise ClientServiceError("Unable to create client") from exc
        db.refresh(client)
        LOGGER.debug("Created client %s for user %s", client.id, user_id)
        return client

    @classmethod
    def update_client(
        cls, db: Session, client: models.Client, data: schemas.ClientUpdate
    ) -> models.Client:
        update_data = cls._normalize_payload(data.model_dump(exclude_unset=True))
        if "name" in update_data and not update_data["name"]:
            raise ValueError("Client name cannot be blank")
        if "client_code" in update_data and not update_data["client_code"]:
            raise ValueError("Client code cannot be blank")
        for field in ("source", "payment_type", "need_receipt", "status"):
            if field in update_data and update_data[field] is None:
                update_data.pop(field)

        for key, value in update_data.items():
            setattr(client, key, value)

        db.add(client)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ValueError("Client code is already in use") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise ClientServiceError("Unable to update client") from exc
        db.refresh(client)
        return client

    @staticmethod
    def delete_client(db: Session, client: models.Client) -> None:
        has_sessions = (
            db.query(models.TherapySession.id)
            .filter(models.TherapySession.client_id == client.id)
            .first()
        )
        if has_sessions is not None:
            raise ValueError("Client has sessions and cannot be deleted")
        try:
            db.delete(client)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise ClientServiceError("Unable to delete client") from exc
