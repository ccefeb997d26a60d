from __future__ import annotations

from datetime import datetime

import pytest

from backend.app import models, schemas
from backend.app.services import (
    SchedulingConflict,
    SessionService,
    StaleSessionError,
)


@pytest.fixture
def weekly_client(make_client):
    return make_client("Анна", schedule="1x/week", session_price=3500)


def test_create_session_numbers_sequentially(db_session, user_id, weekly_client):
    first = SessionService.create_session(
        db_session,
        user_id,
        schemas.SessionCreate(client_id=str(weekly_client.id), scheduled_at=datetime(2024, 3, 4, 10)),
    )
    second = SessionService.create_session(
        db_session,
        user_id,
        schemas.SessionCreate(
            client_id=str(weekly_client.id),
            scheduled_at=datetime(2024, 3, 11, 10),
            price=4000,
        ),
    )

    assert (first.session_number, second.session_number) == (1, 2)
    assert first.price == 3500
    assert second.price == 4000
    assert first.duration == models.DEFAULT_SESSION_DURATION
    assert first.paid is False and first.paid_at is None
    assert first.version == 1


def test_create_session_rejects_foreign_client(db_session, other_user_id, weekly_client):
    with pytest.raises(ValueError):
        SessionService.create_session(
            db_session,
            other_user_id,
            schemas.SessionCreate(client_id=str(weekly_client.id), scheduled_at=datetime(2024, 3, 4, 10)),
        )


def test_create_session_rejects_receipt_without_payment(db_session, user_id, weekly_client):
    with pytest.raises(ValueError):
        SessionService.create_session(
            db_session,
            user_id,
            schemas.SessionCreate(
                client_id=str(weekly_client.id),
                scheduled_at=datetime(2024, 3, 4, 10),
                receipt_sent=True,
            ),
        )


def test_payment_and_receipt_timestamps_follow_flags(db_session, weekly_client, make_session):
    session = make_session(weekly_client, datetime(2024, 3, 4, 10))

    SessionService.mark_paid(db_session, session, models.PaymentMethod.TRANSFER)
    assert session.paid is True
    assert session.paid_at is not None
    assert session.payment_method == models.PaymentMethod.TRANSFER

    SessionService.mark_receipt_sent(db_session, session)
    assert session.receipt_sent is True
    assert session.receipt_sent_at is not None

    with pytest.raises(ValueError):
        SessionService.unmark_paid(db_session, session)

    SessionService.unmark_receipt_sent(db_session, session)
    SessionService.unmark_paid(db_session, session)
    assert session.paid is False
    assert session.paid_at is None
    assert session.payment_method is None
    assert session.receipt_sent_at is None


def test_receipt_requires_payment(db_session, weekly_client, make_session):
    session = make_session(weekly_client, datetime(2024, 3, 4, 10))

    with pytest.raises(ValueError):
        SessionService.mark_receipt_sent(db_session, session)


def test_cancelled_session_cannot_be_paid(db_session, weekly_client, make_session):
    session = make_session(weekly_client, datetime(2024, 3, 4, 10))
    SessionService.cancel(db_session, session)

    with pytest.raises(ValueError):
        SessionService.mark_paid(db_session, session, models.PaymentMethod.CARD)
    with pytest.raises(ValueError):
        SessionService.mark_completed(db_session, session)


def test_reschedule_into_taken_slot_is_refused(db_session, weekly_client, make_session):
    make_session(weekly_client, datetime(2024, 3, 4, 10))
    moving = make_session(weekly_client, datetime(2024, 3, 4, 14))

    with pytest.raises(SchedulingConflict):
        SessionService.reschedule(db_session, moving, datetime(2024, 3, 4, 10, 30))

    db_session.expire_all()
    assert moving.scheduled_at == datetime(2024, 3, 4, 14)


def test_reschedule_back_to_back_bumps_version(db_session, weekly_client, make_session):
    make_session(weekly_client, datetime(2024, 3, 4, 10))
    moving = make_session(weekly_client, datetime(2024, 3, 4, 14))
    version_before = moving.version

    SessionService.reschedule(
        db_session, moving, datetime(2024, 3, 4, 10, 50), expected_version=version_before
    )

    assert moving.scheduled_at == datetime(2024, 3, 4, 10, 50)
    assert moving.version == version_before + 1


def test_reschedule_with_stale_version(db_session, weekly_client, make_session):
    moving = make_session(weekly_client, datetime(2024, 3, 4, 14))

    with pytest.raises(StaleSessionError):
        SessionService.reschedule(
            db_session, moving, datetime(2024, 3, 5, 14), expected_version=moving.version + 5
        )


def test_complete_endpoint_returns_proposal(client, weekly_client, make_session):
    session = make_session(weekly_client, datetime(2024, 3, 4, 10))

    response = client.post(f"/sessions/{session.id}/complete")

    assert response.status_code == 200
    payload = response.json()
    assert payload["session"]["status"] == "completed"
    assert payload["session"]["completed_at"] is not None
    assert payload["proposal"] == {
        "client_id": str(weekly_client.id),
        "client_name": "Анна",
        "scheduled_at": "2024-03-11T10:00:00",
        "duration": 50,
        "price": 3500,
    }


def test_complete_endpoint_suppresses_proposal_errors(client, weekly_client, make_session, monkeypatch):
    from backend.app.services import SchedulingService

    def broken_proposal(*_args, **_kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(SchedulingService, "propose_next", staticmethod(broken_proposal))
    session = make_session(weekly_client, datetime(2024, 3, 4, 10))

    response = client.post(f"/sessions/{session.id}/complete")

    assert response.status_code == 200
    assert response.json()["proposal"] is None


def test_complete_twice_is_rejected(client, weekly_client, make_session):
    session = make_session(weekly_client, datetime(2024, 3, 4, 10))

    assert client.post(f"/sessions/{session.id}/complete").status_code == 200
    assert client.post(f"/sessions/{session.id}/complete").status_code == 400


def test_create_and_list_sessions_via_api(client, weekly_client):
    created = client.post(
        "/sessions/",
        json={"client_id": str(weekly_client.id), "scheduled_at": "2024-03-04T07:00:00Z"},
    )

    assert created.status_code == 201
    assert created.json()["scheduled_at"] == "2024-03-04T10:00:00"
    assert created.json()["session_number"] == 1

    listing = client.get(
        "/sessions/",
        params={"start": "2024-03-04T00:00:00", "end": "2024-03-04T23:59:59"},
    )
    assert listing.status_code == 200
    assert listing.json()["total"] == 1

    day = client.get("/sessions/day", params={"day": "2024-03-04"})
    assert [item["id"] for item in day.json()] == [created.json()["id"]]


def test_payment_endpoints(client, weekly_client, make_session):
    session = make_session(weekly_client, datetime(2024, 3, 4, 10))

    paid = client.post(f"/sessions/{session.id}/payment", json={"method": "card"})
    assert paid.status_code == 200
    assert paid.json()["paid"] is True
    assert paid.json()["payment_method"] == "card"

    receipt = client.post(f"/sessions/{session.id}/receipt")
    assert receipt.status_code == 200
    assert receipt.json()["receipt_sent"] is True

    blocked = client.delete(f"/sessions/{session.id}/payment")
    assert blocked.status_code == 400

    assert client.delete(f"/sessions/{session.id}/receipt").status_code == 200
    unpaid = client.delete(f"/sessions/{session.id}/payment")
    assert unpaid.status_code == 200
    assert unpaid.json()["paid_at"] is None


def test_reschedule_endpoint_conflict_and_stale(client, weekly_client, make_session):
    make_session(weekly_client, datetime(2024, 3, 4, 10))
    moving = make_session(weekly_client, datetime(2024, 3, 4, 14))

    conflict = client.post(
        f"/sessions/{moving.id}/reschedule",
        json={"scheduled_at": "2024-03-04T10:30:00"},
    )
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["conflicting_session_id"] is not None

    stale = client.post(
        f"/sessions/{moving.id}/reschedule",
        json={"scheduled_at": "2024-03-04T16:00:00", "expected_version": 99},
    )
    assert stale.status_code == 409

    moved = client.post(
        f"/sessions/{moving.id}/reschedule",
        json={"scheduled_at": "2024-03-04T16:00:00", "expected_version": 1},
    )
    assert moved.status_code == 200
    assert moved.json()["scheduled_at"] == "2024-03-04T16:00:00"
    assert moved.json()["version"] == 2


def test_reschedule_endpoint_fails_closed(client, weekly_client, make_session, monkeypatch):
    from backend.app.services import SchedulingService, SchedulingServiceError

    def broken_check(*_args, **_kwargs):
        raise SchedulingServiceError("Could not reschedule")

    monkeypatch.setattr(SchedulingService, "check_conflict", staticmethod(broken_check))
    moving = make_session(weekly_client, datetime(2024, 3, 4, 14))

    response = client.post(
        f"/sessions/{moving.id}/reschedule",
        json={"scheduled_at": "2024-03-04T16:00:00"},
    )

    assert response.status_code == 503


def test_other_users_sessions_are_not_found(client, make_client, make_session, other_user_id):
    foreign_client = make_client("Чужой", owner=other_user_id)
    foreign = make_session(foreign_client, datetime(2024, 3, 4, 10))

    assert client.get(f"/sessions/{foreign.id}").status_code == 404
    assert client.post(f"/sessions/{foreign.id}/cancel").status_code == 404


def test_delete_session(client, weekly_client, make_session):
    session = make_session(weekly_client, datetime(2024, 3, 4, 10))

    assert client.delete(f"/sessions/{session.id}").status_code == 204
    assert client.get(f"/sessions/{session.id}").status_code == 404


def test_create_session_accepts_uppercase_client_id(client, weekly_client):
    response = client.post(
        "/sessions/",
        json={"client_id": str(weekly_client.id).upper(), "scheduled_at": "2024-03-04T10:00:00"},
    )

    assert response.status_code == 201
    assert response.json()["client_id"] == str(weekly_client.id)


def test_create_session_rejects_malformed_client_id(client):
    response = client.post(
        "/sessions/",
        json={"client_id": "not-a-uuid", "scheduled_at": "2024-03-04T10:00:00"},
    )

    assert response.status_code == 422


def test_update_session_edits_details(db_session, weekly_client, make_session):
    session = make_session(weekly_client, datetime(2024, 3, 4, 10))

    updated = SessionService.update_session(
        db_session,
        session,
        schemas.SessionUpdate(
            price=4000,
            duration=60,
            format=models.SessionFormat.ONLINE,
            meeting_link="  https://meet.example.com/anna ",
            note_encrypted="cipher",
        ),
    )

    assert updated.price == 4000
    assert updated.duration == 60
    assert updated.format == models.SessionFormat.ONLINE
    assert updated.meeting_link == "https://meet.example.com/anna"
    assert updated.note_encrypted == "cipher"
    assert updated.scheduled_at == datetime(2024, 3, 4, 10)
    assert updated.version == 2


def test_update_session_refuses_start_time(db_session, weekly_client, make_session):
    session = make_session(weekly_client, datetime(2024, 3, 4, 10))

    with pytest.raises(ValueError):
        SessionService.update_session(
            db_session, session, schemas.SessionUpdate(scheduled_at=datetime(2024, 3, 5, 10))
        )

    assert session.scheduled_at == datetime(2024, 3, 4, 10)


def test_update_session_longer_duration_is_conflict_checked(db_session, weekly_client, make_session):
    session = make_session(weekly_client, datetime(2024, 3, 4, 10))
    make_session(weekly_client, datetime(2024, 3, 4, 11))

    with pytest.raises(SchedulingConflict):
        SessionService.update_session(db_session, session, schemas.SessionUpdate(duration=90))

    fits = SessionService.update_session(db_session, session, schemas.SessionUpdate(duration=60))
    assert fits.duration == 60


def test_update_session_endpoint(client, weekly_client, make_session):
    session = make_session(weekly_client, datetime(2024, 3, 4, 10))
    make_session(weekly_client, datetime(2024, 3, 4, 11))

    edited = client.patch(f"/sessions/{session.id}", json={"price": 4000, "duration": 60})
    assert edited.status_code == 200
    assert edited.json()["price"] == 4000
    assert edited.json()["duration"] == 60
    assert edited.json()["version"] == 2

    moved = client.patch(f"/sessions/{session.id}", json={"scheduled_at": "2024-03-05T10:00:00"})
    assert moved.status_code == 400

    emptied = client.patch(f"/sessions/{session.id}", json={"price": None})
    assert emptied.status_code == 400

    overlapping = client.patch(f"/sessions/{session.id}", json={"duration": 90})
    assert overlapping.status_code == 409
    assert overlapping.json()["detail"]["conflicting_session_id"] is not None

    stale = client.patch(f"/sessions/{session.id}", json={"price": 5000, "expected_version": 1})
    assert stale.status_code == 409
    assert client.get(f"/sessions/{session.id}").json()["price"] == 4000
