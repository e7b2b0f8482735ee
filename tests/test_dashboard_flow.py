from datetime import date, datetime, timedelta

from src.db import get_db
from src.db.models import (
    ContactRequest,
    RankingHistory,
    Session as TherapySession,
    TherapistNotification,
    TherapistPayment,
)


def new_request(client, therapist):
    client.post(
        "/api/contact-requests",
        json={
            "therapist_id": therapist["user_id"],
            "client_name": "Karim",
            "client_email": "karim@example.com",
        },
    )
    with get_db() as session:
        return session.query(ContactRequest).one().id


def payment_for(therapist_id, start):
    with get_db() as session:
        return (
            session.query(TherapistPayment)
            .filter_by(therapist_id=therapist_id, payment_period_start=start)
            .one_or_none()
        )


def test_accept_and_reject(client, therapist, auth):
    request_id = new_request(client, therapist)
    accepted = client.post(f"/api/dashboard/requests/{request_id}/accept", headers=auth(therapist))
    assert accepted.status_code == 200
    assert accepted.get_json()["status"] == "accepted"

    rejected = client.post(
        f"/api/dashboard/requests/{request_id}/reject",
        json={"rejection_reason": "Fully booked"},
        headers=auth(therapist),
    )
    assert rejected.get_json()["rejection_reason"] == "Fully booked"


def test_requests_of_other_therapists_are_not_found(client, therapist, make_therapist, auth):
    request_id = new_request(client, therapist)
    other = make_therapist("other@example.com")
    response = client.post(f"/api/dashboard/requests/{request_id}/accept", headers=auth(other))
    assert response.status_code == 404


def test_schedule_creates_session_and_payment(client, therapist, auth):
    request_id = new_request(client, therapist)
    response = client.post(
        f"/api/dashboard/requests/{request_id}/schedule",
        json={"session_date": "2024-03-20T10:00:00Z"},
        headers=auth(therapist),
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["request"]["status"] == "scheduled"
    assert body["request"]["session_id"] == body["session"]["id"]
    assert (body["session"]["duration_minutes"], body["session"]["price"]) == (60, 100)
    assert body["session"]["session_date"] == "2024-03-20T10:00:00"

    payment = payment_for(therapist["user_id"], date(2024, 3, 16))
    assert (payment.total_sessions, payment.commission_amount) == (1, 6.0)
    assert payment.payment_due_date == date(2024, 4, 4)


def test_reschedule_moves_commission_between_periods(client, therapist, auth):
    request_id = new_request(client, therapist)
    client.post(
        f"/api/dashboard/requests/{request_id}/schedule",
        json={"session_date": "2024-03-20T10:00:00Z"},
        headers=auth(therapist),
    )

    response = client.post(
        f"/api/dashboard/requests/{request_id}/reschedule",
        json={"session_date": "2024-04-02T10:00:00+03:00"},
        headers=auth(therapist),
    )
    assert response.status_code == 200
    replacement = response.get_json()["session"]
    assert replacement["session_date"] == "2024-04-02T07:00:00"

    with get_db() as session:
        original = session.get(TherapySession, replacement["rescheduled_from"])
        assert original.status == "rescheduled"
        assert session.get(ContactRequest, request_id).session_id == replacement["id"]

    march = payment_for(therapist["user_id"], date(2024, 3, 16))
    april = payment_for(therapist["user_id"], date(2024, 4, 1))
    assert (march.total_sessions, march.commission_amount) == (0, 0)
    assert (april.total_sessions, april.commission_amount) == (1, 6.0)


def test_session_reschedule_requires_scheduled_status(client, therapist, auth):
    created = client.post(
        "/api/dashboard/sessions",
        json={"session_date": "2024-05-05T09:00:00Z", "client_email": "a@example.com"},
        headers=auth(therapist),
    ).get_json()
    first = client.post(
        f"/api/dashboard/sessions/{created['id']}/reschedule",
        json={"session_date": "2024-05-06T09:00:00Z"},
        headers=auth(therapist),
    )
    assert first.status_code == 200
    second = client.post(
        f"/api/dashboard/sessions/{created['id']}/reschedule",
        json={"session_date": "2024-05-07T09:00:00Z"},
        headers=auth(therapist),
    )
    assert second.status_code == 400


def test_dashboard_overview(client, therapist, auth):
    soon = datetime.utcnow() + timedelta(days=2)
    for offset in (0, 1):
        client.post(
            "/api/dashboard/sessions",
            json={
                "session_date": (soon + timedelta(hours=24 * offset)).isoformat() + "Z",
                "client_email": "repeat@example.com",
            },
            headers=auth(therapist),
        )
    client.post(
        "/api/dashboard/sessions",
        json={"session_date": "2020-01-01T10:00:00Z", "client_email": "old@example.com"},
        headers=auth(therapist),
    )
    with get_db() as session:
        session.add(TherapistNotification(therapist_id=therapist["user_id"], title="Hello"))

    response = client.get("/api/dashboard", headers=auth(therapist))
    assert response.status_code == 200
    body = response.get_json()

    assert body["profile"]["email"] == therapist["email"]
    assert len(body["upcoming_sessions"]) == 2
    assert all(s["is_too_close"] for s in body["upcoming_sessions"])
    assert [n["title"] for n in body["notifications"]] == ["Hello"]
    assert body["has_green_dot"] is False
    assert {"period_start", "period_end", "commission_amount"} <= set(body["current_period"])
    # the 2020 session opened a payment that is long overdue
    overdue = body["payment_status"]["payments"]
    assert overdue and overdue[0]["suspension_risk"] is True


def test_notifications_can_be_marked_read(client, therapist, auth):
    with get_db() as session:
        first = TherapistNotification(therapist_id=therapist["user_id"], title="One")
        session.add(first)
        session.add(TherapistNotification(therapist_id=therapist["user_id"], title="Two"))
        session.add(TherapistNotification(therapist_id=therapist["user_id"], title="Three"))

    single = client.post(f"/api/dashboard/notifications/{first.id}/read", headers=auth(therapist))
    assert single.status_code == 200

    rest = client.post("/api/dashboard/notifications/read-all", headers=auth(therapist))
    assert rest.get_json()["updated"] == 2
    assert client.get("/api/dashboard", headers=auth(therapist)).get_json()["notifications"] == []


def test_green_dot_after_recent_payment_bonus(client, therapist, auth):
    with get_db() as session:
        session.add(
            RankingHistory(
                therapist_id=therapist["user_id"],
                previous_points=50,
                new_points=55,
                change_type="payment_bonus",
            )
        )
    assert client.get("/api/dashboard", headers=auth(therapist)).get_json()["has_green_dot"] is True
