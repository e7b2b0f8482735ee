from datetime import date, datetime

from src.db import get_db
from src.db.models import (
    AdminAuditLog,
    RankingHistory,
    Session as TherapySession,
    Therapist,
    TherapistPayment,
    TherapistPaymentAction,
)


def add_sessions(therapist_id, *dates, status="scheduled"):
    with get_db() as session:
        for when in dates:
            session.add(
                TherapySession(
                    therapist_id=therapist_id,
                    client_name="Client",
                    client_email="client@example.com",
                    session_date=when,
                    status=status,
                )
            )


def recalc(client, admin, auth, therapist_id, session_date):
    return client.post(
        "/api/admin/payments/recalc",
        json={"therapist_id": therapist_id, "session_date": session_date},
        headers=auth(admin),
    )


def test_recalc_counts_sessions_in_the_period(client, admin, therapist, auth):
    add_sessions(
        therapist["user_id"],
        datetime(2024, 2, 16, 9),
        datetime(2024, 2, 20, 9),
        datetime(2024, 2, 29, 23, 59),
        datetime(2024, 3, 1, 0, 0),  # next period
        datetime(2024, 2, 15, 23, 59),  # previous period
    )
    add_sessions(therapist["user_id"], datetime(2024, 2, 21, 9), status="cancelled")

    response = recalc(client, admin, auth, therapist["user_id"], "2024-02-20T10:00:00Z")
    assert response.status_code == 200
    body = response.get_json()
    assert body["ok"] is True
    assert body["total_sessions"] == 3
    assert body["commission_amount"] == 18.0
    assert (body["period_start"], body["period_end"]) == ("2024-02-16", "2024-02-29")

    with get_db() as session:
        payment = session.get(TherapistPayment, body["payment_id"])
        assert payment.status == "pending"
        assert payment.payment_due_date == date(2024, 3, 4)


def test_recalc_is_idempotent_and_uses_commission_override(client, admin, therapist, auth):
    with get_db() as session:
        session.get(Therapist, therapist["user_id"]).commission_per_session = 10
    add_sessions(therapist["user_id"], datetime(2024, 5, 2, 9), datetime(2024, 5, 3, 9))

    first = recalc(client, admin, auth, therapist["user_id"], "2024-05-10").get_json()
    second = recalc(client, admin, auth, therapist["user_id"], "2024-05-01T00:00:00Z").get_json()
    assert first["payment_id"] == second["payment_id"]
    assert second["commission_amount"] == 20.0

    with get_db() as session:
        assert session.query(TherapistPayment).count() == 1


def test_recalc_rejects_invalid_date(client, admin, therapist, auth):
    response = recalc(client, admin, auth, therapist["user_id"], "not-a-date")
    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid session_date"


def test_recalc_unknown_therapist(client, admin, auth):
    response = recalc(client, admin, auth, "00000000-0000-0000-0000-000000000000", "2024-05-10")
    assert response.status_code == 404


def make_payment(therapist_id, **fields):
    with get_db() as session:
        payment = TherapistPayment(
            therapist_id=therapist_id,
            payment_period_start=fields.pop("start", date(2024, 1, 1)),
            payment_period_end=fields.pop("end", date(2024, 1, 15)),
            payment_due_date=fields.pop("due", date(2024, 1, 19)),
            total_sessions=fields.pop("total_sessions", 2),
            commission_amount=fields.pop("commission_amount", 12),
            status=fields.pop("status", "pending"),
            **fields,
        )
        session.add(payment)
    return payment.id


def action(client, admin, auth, **body):
    return client.post("/api/admin/payments", json=body, headers=auth(admin))


def test_mark_complete_awards_bonus(client, admin, therapist, auth):
    with get_db() as session:
        session.get(Therapist, therapist["user_id"]).status = "warning"
    payment_id = make_payment(therapist["user_id"])

    response = action(
        client, admin, auth, action="mark_complete", payment_id=payment_id,
        therapist_id=therapist["user_id"],
    )
    assert response.status_code == 200

    with get_db() as session:
        payment = session.get(TherapistPayment, payment_id)
        t = session.get(Therapist, therapist["user_id"])
        assert payment.status == "completed"
        assert payment.payment_completed_date is not None
        assert t.ranking_points == 55
        assert t.status == "active"
        history = session.query(RankingHistory).one()
        assert (history.previous_points, history.new_points) == (50, 55)
        assert history.change_type == "payment_bonus"


def test_mark_paid_again_records_action_and_resets_accrual(client, admin, therapist, auth):
    payment_id = make_payment(therapist["user_id"])

    response = action(
        client, admin, auth, action="mark_paid_again", payment_id=payment_id,
        therapist_id=therapist["user_id"], amount=12, payment_method="cash", notes="paid at office",
    )
    assert response.status_code == 200

    with get_db() as session:
        payment = session.get(TherapistPayment, payment_id)
        assert payment.last_paid_action_at is not None
        recorded = session.query(TherapistPaymentAction).one()
        assert (recorded.action, recorded.amount, recorded.payment_method) == ("paid_again", 12, "cash")
        audit = session.query(AdminAuditLog).filter_by(action="payments.mark_paid_again").one()
        assert audit.actor_user_id == admin["user_id"]


def test_mark_overdue_penalizes(client, admin, therapist, auth):
    payment_id = make_payment(therapist["user_id"])
    action(
        client, admin, auth, action="mark_overdue", payment_id=payment_id,
        therapist_id=therapist["user_id"],
    )
    with get_db() as session:
        assert session.get(TherapistPayment, payment_id).status == "overdue"
        t = session.get(Therapist, therapist["user_id"])
        assert (t.ranking_points, t.status) == (40, "warning")


def test_payment_actions_refresh_the_directory(client, admin, therapist, auth):
    payment_id = make_payment(therapist["user_id"])
    assert client.get("/api/therapists").get_json()["count"] == 1

    action(
        client, admin, auth, action="mark_overdue", payment_id=payment_id,
        therapist_id=therapist["user_id"],
    )
    assert client.get("/api/therapists").get_json()["count"] == 0

    action(
        client, admin, auth, action="mark_complete", payment_id=payment_id,
        therapist_id=therapist["user_id"],
    )
    listed = client.get("/api/therapists").get_json()["therapists"]
    assert [(t["user_id"], t["ranking_points"]) for t in listed] == [(therapist["user_id"], 45)]


def test_update_notes_only_needs_payment_id(client, admin, therapist, auth):
    payment_id = make_payment(therapist["user_id"])
    response = action(client, admin, auth, action="update_notes", payment_id=payment_id, notes="call Friday")
    assert response.status_code == 200
    with get_db() as session:
        assert session.get(TherapistPayment, payment_id).admin_notes == "call Friday"


def test_action_validation(client, admin, therapist, auth):
    payment_id = make_payment(therapist["user_id"])
    assert action(client, admin, auth, action="refund", payment_id=payment_id).get_json() == {
        "error": "Unknown action"
    }
    assert action(client, admin, auth, action="mark_complete").get_json() == {
        "error": "Missing payment_id"
    }
    response = action(client, admin, auth, action="mark_complete", payment_id=payment_id)
    assert response.status_code == 400
    assert response.get_json() == {"error": "Missing fields"}


def test_list_payments_by_month(client, admin, therapist, auth):
    make_payment(therapist["user_id"], start=date(2024, 1, 1), end=date(2024, 1, 15))
    make_payment(therapist["user_id"], start=date(2024, 1, 16), end=date(2024, 1, 31), due=date(2024, 2, 4))
    make_payment(therapist["user_id"], start=date(2024, 2, 1), end=date(2024, 2, 15), due=date(2024, 2, 19))

    body = client.get("/api/admin/payments/list?month=2024-01", headers=auth(admin)).get_json()
    assert body["count"] == 2
    assert {p["payment_period_start"] for p in body["payments"]} == {"2024-01-01", "2024-01-16"}
    assert body["payments"][0]["therapist_name"]

    assert client.get("/api/admin/payments/list", headers=auth(admin)).get_json()["count"] == 3
    assert client.get("/api/admin/payments/list?month=Jan", headers=auth(admin)).status_code == 400


def test_delete_payment(client, admin, therapist, auth):
    payment_id = make_payment(therapist["user_id"])
    action(
        client, admin, auth, action="mark_paid_again", payment_id=payment_id,
        therapist_id=therapist["user_id"], amount=12,
    )

    response = client.post("/api/admin/payments/delete", json={"payment_id": payment_id}, headers=auth(admin))
    assert response.status_code == 200

    with get_db() as session:
        assert session.get(TherapistPayment, payment_id) is None
        assert session.query(TherapistPaymentAction).count() == 0
        assert session.query(AdminAuditLog).filter_by(action="payments.delete").count() == 1


def test_backfill_counts_completed_sessions_only(client, admin, therapist, auth):
    payment_id = make_payment(therapist["user_id"], total_sessions=0, commission_amount=0)
    add_sessions(therapist["user_id"], datetime(2024, 1, 3), datetime(2024, 1, 4), status="completed")
    add_sessions(therapist["user_id"], datetime(2024, 1, 5), status="scheduled")

    body = client.post("/api/admin/backfill-commissions", headers=auth(admin)).get_json()
    assert body == {"ok": True, "updated": 1}

    with get_db() as session:
        payment = session.get(TherapistPayment, payment_id)
        assert (payment.total_sessions, payment.commission_amount) == (2, 12.0)
