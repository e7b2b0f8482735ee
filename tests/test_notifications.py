from datetime import date, datetime

from src.db import get_db
from src.db.models import (
    PaymentNotification,
    RankingHistory,
    Therapist,
    TherapistNotification,
    TherapistPayment,
)
from src.services.email_service import email_service
from src.services.notification_service import (
    DEADLINE,
    REMINDER,
    SUSPENSION,
    WARNING,
    due_stages,
    notification_service,
)


def open_payment(therapist_id, created_at=datetime(2024, 1, 1), status="pending"):
    with get_db() as session:
        payment = TherapistPayment(
            therapist_id=therapist_id,
            payment_period_start=date(2024, 1, 1),
            payment_period_end=date(2024, 1, 15),
            payment_due_date=date(2024, 1, 19),
            total_sessions=4,
            commission_amount=24,
            status=status,
            created_at=created_at,
        )
        session.add(payment)
    return payment.id


def dispatch(now):
    with get_db() as session:
        return notification_service.dispatch_due_notifications(session, now=now)


def stages_sent(payment_id):
    with get_db() as session:
        return {
            row.stage
            for row in session.query(PaymentNotification).filter_by(payment_id=payment_id)
        }


def test_due_stages_respects_time_and_creation():
    payment = TherapistPayment(payment_due_date=date(2024, 1, 19), created_at=datetime(2024, 1, 1))
    assert due_stages(payment, datetime(2024, 1, 15, 23), set()) == []
    assert due_stages(payment, datetime(2024, 1, 16), set()) == [REMINDER]
    assert due_stages(payment, datetime(2024, 1, 25), {REMINDER}) == [DEADLINE, WARNING, SUSPENSION]

    late = TherapistPayment(payment_due_date=date(2024, 1, 19), created_at=datetime(2024, 1, 20))
    assert due_stages(late, datetime(2024, 1, 22), set()) == [WARNING]


def test_full_stage_progression(therapist, sent_emails):
    payment_id = open_payment(therapist["user_id"])

    assert dispatch(datetime(2024, 1, 16, 10))["processed"] == 1
    assert stages_sent(payment_id) == {REMINDER}
    assert sent_emails[-1]["to"] == [therapist["email"]]
    assert "3 days" in sent_emails[-1]["subject"]

    # same run again sends nothing
    assert dispatch(datetime(2024, 1, 16, 11))["processed"] == 0
    assert len(sent_emails) == 1

    assert dispatch(datetime(2024, 1, 22, 1))["processed"] == 2
    assert stages_sent(payment_id) == {REMINDER, DEADLINE, WARNING}
    with get_db() as session:
        t = session.get(Therapist, therapist["user_id"])
        assert session.get(TherapistPayment, payment_id).status == "overdue"
        assert (t.ranking_points, t.status) == (40, "warning")

    assert dispatch(datetime(2024, 1, 25, 1))["processed"] == 1
    with get_db() as session:
        t = session.get(Therapist, therapist["user_id"])
        assert session.get(TherapistPayment, payment_id).status == "suspended"
        assert (t.ranking_points, t.status) == (0, "suspended")
        assert session.query(TherapistNotification).filter_by(therapist_id=t.user_id).count() == 4

    assert len(sent_emails) == 4
    assert dispatch(datetime(2024, 2, 1))["processed"] == 0


def test_completed_payments_are_skipped(therapist, sent_emails):
    payment_id = open_payment(therapist["user_id"], status="completed")
    assert dispatch(datetime(2024, 1, 30))["processed"] == 0
    assert stages_sent(payment_id) == set()
    assert sent_emails == []


def test_stages_before_payment_creation_are_not_sent(therapist):
    payment_id = open_payment(therapist["user_id"], created_at=datetime(2024, 1, 20))
    assert dispatch(datetime(2024, 1, 21))["processed"] == 0
    assert dispatch(datetime(2024, 1, 22, 1))["processed"] == 1
    assert stages_sent(payment_id) == {WARNING}


def test_email_failure_still_records_stage(therapist, failing_email):
    payment_id = open_payment(therapist["user_id"])
    assert dispatch(datetime(2024, 1, 16, 10))["processed"] == 1
    assert dispatch(datetime(2024, 1, 16, 12))["processed"] == 0
    assert stages_sent(payment_id) == {REMINDER}


def test_already_suspended_therapist_is_skipped(therapist):
    with get_db() as session:
        session.get(Therapist, therapist["user_id"]).status = "suspended"
    open_payment(therapist["user_id"])
    result = dispatch(datetime(2024, 1, 16, 10))
    assert (result["processed"], result["skipped"]) == (0, 1)


def test_admin_can_trigger_a_run(client, admin, therapist, auth):
    open_payment(therapist["user_id"])
    response = client.post("/api/admin/payments/notifications/run", headers=auth(admin))
    assert response.status_code == 200
    # every stage of a 2024 payment is in the past by now
    assert response.get_json()["processed"] == 4


def test_failed_stage_rolls_back_and_retries_once(therapist, monkeypatch):
    payment_id = open_payment(therapist["user_id"])
    assert dispatch(datetime(2024, 1, 19, 1))["processed"] == 2

    def broken(*args, **kwargs):
        raise RuntimeError("template error")

    monkeypatch.setattr(email_service, "send_payment_warning", broken)
    result = dispatch(datetime(2024, 1, 22, 1))
    assert (result["processed"], result["failed"]) == (0, 1)
    with get_db() as session:
        t = session.get(Therapist, therapist["user_id"])
        assert session.get(TherapistPayment, payment_id).status == "pending"
        assert (t.ranking_points, t.status) == (50, "active")
    assert stages_sent(payment_id) == {REMINDER, DEADLINE}

    monkeypatch.undo()
    monkeypatch.setattr(email_service, "send", lambda *a: {"success": True, "email_id": "retry"})
    assert dispatch(datetime(2024, 1, 22, 2))["processed"] == 1
    with get_db() as session:
        t = session.get(Therapist, therapist["user_id"])
        assert session.get(TherapistPayment, payment_id).status == "overdue"
        assert (t.ranking_points, t.status) == (40, "warning")
        assert session.query(RankingHistory).filter_by(therapist_id=t.user_id).count() == 1
