from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from backend.app import models
from backend.app.services import (
    SLOT_TAKEN_MESSAGE,
    SchedulingService,
    SchedulingServiceError,
)


DAY = datetime(2024, 3, 4)


@pytest.fixture
def morning_session(make_client, make_session):
    client_record = make_client("Анна")
    return make_session(client_record, DAY.replace(hour=10))


@pytest.mark.parametrize(
    ("candidate", "duration", "ok"),
    [
        (DAY.replace(hour=10, minute=30), 50, False),
        (DAY.replace(hour=10, minute=30), 5, False),
        (DAY.replace(hour=10, minute=50), 50, True),
        (DAY.replace(hour=9), 65, False),
        (DAY.replace(hour=9, minute=10), 50, True),
        (DAY.replace(hour=10), 50, False),
    ],
)
def test_conflict_against_neighbours(db_session, user_id, morning_session, candidate, duration, ok):
    result = SchedulingService.check_conflict(db_session, user_id, candidate, duration)

    assert result.ok is ok
    if not ok:
        assert result.message == SLOT_TAKEN_MESSAGE
        assert result.conflicting_session_id == str(morning_session.id)


def test_conflict_ignores_excluded_and_cancelled_sessions(
    db_session, user_id, morning_session, make_session
):
    cancelled = make_session(
        morning_session.client,
        DAY.replace(hour=12),
        status=models.SessionStatus.CANCELLED,
    )

    moved_onto_itself = SchedulingService.check_conflict(
        db_session,
        user_id,
        DAY.replace(hour=10, minute=15),
        50,
        exclude_session_id=str(morning_session.id),
    )
    over_cancelled = SchedulingService.check_conflict(
        db_session, user_id, DAY.replace(hour=12), 50
    )

    assert moved_onto_itself.ok is True
    assert over_cancelled.ok is True
    assert cancelled.status == models.SessionStatus.CANCELLED


def test_conflict_only_considers_same_day(db_session, user_id, morning_session):
    result = SchedulingService.check_conflict(
        db_session, user_id, datetime(2024, 3, 5, 10, 0), 50
    )

    assert result.ok is True


def test_conflict_ignores_other_users(db_session, other_user_id, morning_session):
    result = SchedulingService.check_conflict(
        db_session, other_user_id, DAY.replace(hour=10, minute=30), 50
    )

    assert result.ok is True


def test_conflict_check_fails_closed(db_session, user_id, monkeypatch):
    def broken_fetch(*_args, **_kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(SchedulingService, "_sessions_on_day", staticmethod(broken_fetch))

    with pytest.raises(SchedulingServiceError):
        SchedulingService.check_conflict(db_session, user_id, DAY.replace(hour=10), 50)


def _completed(scheduled_at: datetime, *, price: int = 3000) -> models.TherapySession:
    return models.TherapySession(
        id="session-1",
        client_id="client-1",
        scheduled_at=scheduled_at,
        duration=50,
        price=price,
        status=models.SessionStatus.COMPLETED,
    )


@pytest.mark.parametrize(
    ("schedule", "expected"),
    [
        ("1x/week", datetime(2024, 3, 11, 10, 0)),
        ("1x/2weeks", datetime(2024, 3, 18, 10, 0)),
        ("2x/week", None),
        ("flexible", None),
        (None, None),
        ("каждый вторник", None),
    ],
)
def test_propose_next_follows_recurrence(schedule, expected):
    client_record = models.Client(id="client-1", name="Анна", schedule=schedule, session_price=3500)

    proposal = SchedulingService.propose_next(_completed(datetime(2024, 3, 4, 10, 0)), client_record)

    if expected is None:
        assert proposal is None
    else:
        assert proposal is not None
        assert proposal.scheduled_at == expected
        assert proposal.client_id == "client-1"
        assert proposal.client_name == "Анна"
        assert proposal.duration == 50
        assert proposal.price == 3500


def test_propose_next_requires_completed_session():
    session = _completed(datetime(2024, 3, 4, 10, 0))
    session.status = models.SessionStatus.SCHEDULED
    client_record = models.Client(id="client-1", name="Анна", schedule="1x/week")

    assert SchedulingService.propose_next(session, client_record) is None


def test_propose_next_falls_back_to_session_price():
    client_record = models.Client(id="client-1", name="Анна", schedule="1x/week")

    proposal = SchedulingService.propose_next(
        _completed(datetime(2024, 3, 4, 10, 0), price=2700), client_record
    )

    assert proposal is not None
    assert proposal.price == 2700


def test_conflict_endpoint(client, morning_session):
    taken = client.get(
        "/sessions/conflicts",
        params={"scheduled_at": "2024-03-04T10:30:00", "duration": 50},
    )
    free = client.get(
        "/sessions/conflicts",
        params={"scheduled_at": "2024-03-04T10:50:00", "duration": 50},
    )

    assert taken.status_code == 200
    assert taken.json()["ok"] is False
    assert taken.json()["message"] == SLOT_TAKEN_MESSAGE
    assert free.json() == {"ok": True, "conflicting_session_id": None, "message": None}


def test_conflict_endpoint_converts_aware_times(client, morning_session):
    # 07:30 UTC is 10:30 on the Moscow practice clock.
    response = client.get(
        "/sessions/conflicts",
        params={"scheduled_at": "2024-03-04T07:30:00+00:00", "duration": 50},
    )

    assert response.status_code == 200
    assert response.json()["ok"] is False
