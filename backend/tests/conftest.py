from __future__ import annotations

import os
import sys
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

# Ensure the project root (which exposes the ``backend`` package) is on ``sys.path``
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret-with-enough-entropy")
os.environ.setdefault("ACCESS_TOKEN_EXPIRE_MINUTES", "60")
os.environ["PRACTICE_TIMEZONE"] = "Europe/Moscow"
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "0"

from backend.app import models  # noqa: E402
from backend.app.database import Base, create_practice_engine, get_db  # noqa: E402
from backend.app.main import app  # noqa: E402
from backend.app.security import create_access_token  # noqa: E402

engine = create_practice_engine("sqlite:///:memory:")
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="session", autouse=True)
def setup_database() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        if transaction.is_active:
            transaction.rollback()
        connection.close()


@pytest.fixture
def user_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def other_user_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def auth_headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def client(db_session: Session, auth_headers: dict[str, str]) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            db_session.expire_all()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        test_client.headers.update(auth_headers)
        yield test_client
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def make_client(db_session: Session, user_id: str) -> Callable[..., models.Client]:
    counter = {"value": 0}

    def factory(name: str = "Анна", *, owner: str | None = None, **fields) -> models.Client:
        counter["value"] += 1
        fields.setdefault("client_code", f"C-{counter['value']:03d}")
        record = models.Client(
            id=str(uuid.uuid4()),
            user_id=owner or user_id,
            name=name,
            **fields,
        )
        db_session.add(record)
        db_session.commit()
        return record

    return factory


@pytest.fixture
def make_session(db_session: Session) -> Callable[..., models.TherapySession]:
    def factory(
        client_record: models.Client,
        scheduled_at: datetime,
        *,
        price: int = 3000,
        status: models.SessionStatus = models.SessionStatus.SCHEDULED,
        paid: bool = False,
        payment_method: models.PaymentMethod | None = None,
        receipt_sent: bool = False,
        duration: int = models.DEFAULT_SESSION_DURATION,
    ) -> models.TherapySession:
        number = len(
            db_session.query(models.TherapySession)
            .filter(models.TherapySession.client_id == client_record.id)
            .all()
        )
        record = models.TherapySession(
            id=str(uuid.uuid4()),
            user_id=client_record.user_id,
            client_id=client_record.id,
            session_number=number + 1,
            scheduled_at=scheduled_at,
            duration=duration,
            status=status,
            price=price,
            paid=paid,
            payment_method=payment_method if paid else None,
            paid_at=scheduled_at if paid else None,
            receipt_sent=receipt_sent,
            receipt_sent_at=scheduled_at if receipt_sent else None,
            completed_at=scheduled_at if status == models.SessionStatus.COMPLETED else None,
        )
        db_session.add(record)
        db_session.commit()
        return record

    return factory
