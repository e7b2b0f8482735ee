from datetime import timedelta

from src.auth import create_access_token
from src.db import get_db
from src.db.models import Profile


def test_protected_routes_require_a_token(client):
    assert client.get("/api/dashboard").status_code == 401
    assert client.get("/api/admin/therapists").status_code == 401
    assert client.get("/api/admin/payments/list").status_code == 401


def test_garbage_token_is_unauthorized(client):
    response = client.get("/api/admin/therapists", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.get_json() == {"error": "Unauthorized"}


def test_therapist_cannot_use_admin_routes(client, therapist, auth):
    response = client.get("/api/admin/therapists", headers=auth(therapist))
    assert response.status_code == 403
    assert response.get_json() == {"error": "Forbidden"}


def test_admin_cannot_use_therapist_dashboard(client, admin, auth):
    assert client.get("/api/dashboard", headers=auth(admin)).status_code == 403


def test_expired_token_is_rejected(app, client, admin):
    with get_db() as session:
        profile = session.get(Profile, admin["user_id"])
    with app.app_context():
        token = create_access_token(profile, expires_delta=timedelta(seconds=-10))
    response = client.get("/api/admin/therapists", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_role_change_takes_effect_immediately(client, therapist, auth):
    with get_db() as session:
        session.query(Profile).filter(Profile.user_id == therapist["user_id"]).update(
            {Profile.role: "admin"}
        )
    # role is re-read from the database on every request
    assert client.get("/api/dashboard", headers=auth(therapist)).status_code == 403


def test_login_issues_a_usable_token(client, admin):
    response = client.post(
        "/api/auth/login",
        json={"email": admin["email"], "password": "correct horse battery"},
    )
    assert response.status_code == 200
    token = response.get_json()["access_token"]

    listed = client.get("/api/admin/therapists", headers={"Authorization": f"Bearer {token}"})
    assert listed.status_code == 200


def test_login_with_wrong_password(client, admin):
    response = client.post(
        "/api/auth/login", json={"email": admin["email"], "password": "wrong password"}
    )
    assert response.status_code == 401


def test_login_is_rate_limited(client, admin):
    for _ in range(10):
        client.post("/api/auth/login", json={"email": admin["email"], "password": "bad"})
    response = client.post("/api/auth/login", json={"email": admin["email"], "password": "bad"})
    assert response.status_code == 429
    assert "reset_at" in response.get_json()
