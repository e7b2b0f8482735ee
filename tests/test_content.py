import pytest

from src.services.content_service import validate_content
from src.services.errors import ServiceError


def test_hero_defaults_fill_missing_fields():
    data = validate_content("home.hero", {"h1": "Find your therapist"})
    assert data["h1"] == "Find your therapist"
    assert data["intro"] == ""
    assert len(data["stats"]) == 3


def test_quiz_nested_defaults():
    data = validate_content("match.quiz", {"options": {"problems": ["Anxiety"]}})
    assert data["options"]["problems"] == ["Anxiety"]
    assert data["options"]["locations"] == {"cities": [], "subLocations": {}}
    assert data["questions"]["budget"] == ""


def test_errors_are_keyed_by_field_path():
    with pytest.raises(ServiceError) as exc:
        validate_content("home.hero", {"stats": [{"value": 12}]})
    assert exc.value.message == "Validation failed"
    assert "stats.0.value" in exc.value.details


def test_unknown_keys_accept_any_object():
    assert validate_content("blog.settings", {"anything": [1, 2]}) == {"anything": [1, 2]}
    with pytest.raises(ServiceError):
        validate_content("blog.settings", ["not", "an", "object"])


def test_public_read_returns_defaults_for_missing_key(client):
    response = client.get("/api/content/directory.labels")
    assert response.status_code == 200
    assert response.get_json()["content"] == {"interestsLabel": ""}


def test_admin_update_then_public_read(client, admin, auth):
    client.get("/api/content/home.hero")  # warm cache

    response = client.put(
        "/api/admin/content/home.hero",
        json={"title": "Homepage Hero", "content": {"h1": "Hello"}},
        headers=auth(admin),
    )
    assert response.status_code == 200

    body = client.get("/api/content/home.hero").get_json()
    assert body["content"]["h1"] == "Hello"
    assert body["title"] == "Homepage Hero"


def test_admin_update_rejects_invalid_content(client, admin, auth):
    response = client.put(
        "/api/admin/content/home.hero",
        json={"content": {"h1": ["wrong"]}},
        headers=auth(admin),
    )
    assert response.status_code == 400
    assert "h1" in response.get_json()["details"]


def test_admin_list_includes_default_keys(client, admin, auth):
    body = client.get("/api/admin/content", headers=auth(admin)).get_json()
    assert {"home.hero", "directory.intro", "match.quiz"} <= set(body["content"])


def test_content_writes_require_admin(client, therapist, auth):
    response = client.put(
        "/api/admin/content/home.hero", json={"content": {}}, headers=auth(therapist)
    )
    assert response.status_code == 403
