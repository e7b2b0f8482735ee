import os

os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_ENABLED"] = "false"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["AUTO_MIGRATE"] = "true"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["RESEND_API_KEY"] = ""
os.environ["SITE_URL"] = "https://linktherapy.test"

from datetime import datetime  # noqa: E402

import pytest  # noqa: E402

from src import create_app  # noqa: E402
from src.auth import create_access_token, hash_password  # noqa: E402
from src.config import TestingConfig  # noqa: E402
from src.db import get_db  # noqa: E402
from src.db.models import Profile, Therapist  # noqa: E402
from src.services.cache_service import cache_service  # noqa: E402
from src.services.email_service import email_service  # noqa: E402
from src.utils.rate_limit import reset_rate_limits  # noqa: E402


@pytest.fixture
def app():
    """Fresh app with an empty in-memory database per test."""
    return create_app(TestingConfig())


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def isolate_process_state():
    reset_rate_limits()
    cache_service.memory_cache.clear()
    yield
    cache_service.memory_cache.clear()


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Capture outgoing email instead of calling Resend."""
    sent = []

    def fake_send(to, subject, html_body, text_body):
        sent.append({"to": to, "subject": subject, "html": html_body, "text": text_body})
        return {"success": True, "error": None, "email_id": f"email-{len(sent)}"}

    monkeypatch.setattr(email_service, "send", fake_send)
    return sent


@pytest.fixture
def failing_email(monkeypatch):
    def fail(to, subject, html_body, text_body):
        return {"success": False, "error": "mailbox unavailable", "email_id": None}

    monkeypatch.setattr(email_service, "send", fail)


def _make_profile(session, email, role, password="correct horse battery", confirmed=True):
    profile = Profile(
        email=email,
        role=role,
        full_name=email.split("@")[0],
        password_hash=hash_password(password),
        email_confirmed_at=datetime.utcnow() if confirmed else None,
    )
    session.add(profile)
    session.flush()
    return profile


@pytest.fixture
def make_admin(app):
    def factory(email="admin@linktherapy.org"):
        with get_db() as session:
            profile = _make_profile(session, email, "admin")
        with app.app_context():
            token = create_access_token(profile)
        return {"user_id": profile.user_id, "email": email, "token": token}

    return factory


@pytest.fixture
def make_therapist(app):
    def factory(email="therapist@linktherapy.org", status="active", **fields):
        with get_db() as session:
            profile = _make_profile(session, email, "therapist")
            defaults = {
                "full_name": fields.pop("full_name", "Dr. " + email.split("@")[0].title()),
                "title": "Clinical Psychologist",
                "bio_short": "Helping adults with anxiety.",
                "gender": "female",
                "religion": "Other",
                "age_range": "29-36",
                "years_of_experience": 5,
                "languages": ["English"],
                "interests": ["Anxiety"],
                "session_price_45_min": 50,
                "ranking_points": 50,
            }
            defaults.update(fields)
            session.add(Therapist(user_id=profile.user_id, status=status, **defaults))
        with app.app_context():
            token = create_access_token(profile)
        return {"user_id": profile.user_id, "email": email, "token": token}

    return factory


@pytest.fixture
def admin(make_admin):
    return make_admin()


@pytest.fixture
def therapist(make_therapist):
    return make_therapist()


@pytest.fixture
def auth():
    """Bearer header for a user made by one of the factories."""

    def headers(user):
        return {"Authorization": f"Bearer {user['token']}"}

    return headers
