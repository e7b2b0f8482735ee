from src.db import get_db
from src.db.models import ContactRequest


def payload(therapist_id, **overrides):
    data = {
        "therapist_id": therapist_id,
        "client_name": "Maya",
        "client_email": "Maya@Example.com",
        "client_phone": "+961 70 000 000",
        "message": "I'd like to <b>talk</b>",
    }
    data.update(overrides)
    return data


def test_contact_request_is_stored_and_therapist_notified(client, therapist, sent_emails):
    response = client.post("/api/contact-requests", json=payload(therapist["user_id"]))
    assert response.status_code == 201

    with get_db() as session:
        request = session.query(ContactRequest).one()
        assert request.status == "new"
        assert request.client_email == "maya@example.com"

    assert sent_emails[0]["to"] == [therapist["email"]]
    assert "&lt;b&gt;talk&lt;/b&gt;" in sent_emails[0]["html"]


def test_email_failure_does_not_fail_the_request(client, therapist, failing_email):
    response = client.post("/api/contact-requests", json=payload(therapist["user_id"]))
    assert response.status_code == 201


def test_unknown_or_inactive_therapist(client, make_therapist):
    pending = make_therapist("pending@example.com", status="pending")
    missing = client.post(
        "/api/contact-requests", json=payload("00000000-0000-0000-0000-000000000000")
    )
    assert missing.status_code == 404
    inactive = client.post("/api/contact-requests", json=payload(pending["user_id"]))
    assert inactive.status_code == 404


def test_invalid_payload(client, therapist):
    bad_email = client.post(
        "/api/contact-requests", json=payload(therapist["user_id"], client_email="nope")
    )
    assert bad_email.status_code == 400
    assert bad_email.get_json()["error"].startswith("Invalid input: client_email")

    no_body = client.post("/api/contact-requests", data="not json", content_type="text/plain")
    assert no_body.status_code == 400


def test_rate_limited_after_five_requests(client, therapist):
    for _ in range(5):
        assert client.post("/api/contact-requests", json=payload(therapist["user_id"])).status_code == 201
    blocked = client.post("/api/contact-requests", json=payload(therapist["user_id"]))
    assert blocked.status_code == 429
    assert blocked.get_json()["error"] == "Too many requests"

    other_ip = client.post(
        "/api/contact-requests",
        json=payload(therapist["user_id"]),
        headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
    )
    assert other_ip.status_code == 201


def test_admin_lists_contact_requests(client, admin, therapist, auth):
    client.post("/api/contact-requests", json=payload(therapist["user_id"]))
    body = client.get("/api/admin/contact-requests", headers=auth(admin)).get_json()
    assert body["count"] == 1
    assert body["requests"][0]["therapist_name"].startswith("Dr.")
