from src.db import get_db
from src.db.models import AdminAuditLog, Location, Profile, Therapist


def form(**overrides):
    data = {
        "full_name": "Dr. Lina Khoury",
        "title": "Clinical Psychologist",
        "bio_short": "CBT for anxiety and depression.",
        "bio_long": "Ten years of practice in Beirut.",
        "religion": "Other",
        "age_range": "37-45",
        "years_of_experience": 10,
        "languages": ["English", "Arabic"],
        "interests": ["Anxiety", "Depression"],
        "session_price_45_min": 60,
        "gender": "female",
        "lgbtq_friendly": True,
        "locations": ["Beirut", "Online"],
        "profile_image_url": "https://cdn.example.com/lina.jpg",
        "accept_tos": True,
    }
    data.update(overrides)
    return data


def test_onboarding_activates_the_therapist(client, make_therapist, auth):
    user = make_therapist("lina@example.com", status="pending", ranking_points=0)

    response = client.post("/api/onboarding/therapist/complete", json=form(), headers=auth(user))
    assert response.status_code == 200
    assert response.get_json() == {"ok": True}

    with get_db() as session:
        therapist = session.get(Therapist, user["user_id"])
        assert therapist.status == "active"
        assert therapist.ranking_points == 50
        assert therapist.total_sessions == 0
        assert sorted(therapist.location_names) == ["Beirut", "Online"]
        assert therapist.profile_image_url == "https://cdn.example.com/lina.jpg"
        profile = session.get(Profile, user["user_id"])
        assert profile.full_name == "Dr. Lina Khoury"
        assert profile.terms_accepted_at is not None
        assert session.query(AdminAuditLog).filter_by(action="therapist.complete_onboarding").count() == 1

    directory = client.get("/api/therapists?city=Beirut").get_json()
    assert [t["full_name"] for t in directory["therapists"]] == ["Dr. Lina Khoury"]


def test_onboarding_again_replaces_locations(client, make_therapist, auth):
    user = make_therapist("lina@example.com", status="pending")
    client.post("/api/onboarding/therapist/complete", json=form(), headers=auth(user))
    response = client.post(
        "/api/onboarding/therapist/complete",
        json=form(locations=["Jounieh"]),
        headers=auth(user),
    )
    assert response.status_code == 200

    with get_db() as session:
        assert session.get(Therapist, user["user_id"]).location_names == ["Jounieh"]
        assert session.query(Location).count() == 3


def test_terms_must_be_accepted(client, therapist, auth):
    response = client.post(
        "/api/onboarding/therapist/complete", json=form(accept_tos=False), headers=auth(therapist)
    )
    assert response.status_code == 400
    assert "accept_tos" in response.get_json()["details"]


def test_enum_and_list_validation(client, therapist, auth):
    bad_religion = client.post(
        "/api/onboarding/therapist/complete", json=form(religion="Pastafarian"), headers=auth(therapist)
    )
    assert bad_religion.status_code == 400

    too_many_locations = client.post(
        "/api/onboarding/therapist/complete",
        json=form(locations=["A", "B", "C"]),
        headers=auth(therapist),
    )
    assert too_many_locations.status_code == 400

    blank_language = client.post(
        "/api/onboarding/therapist/complete", json=form(languages=[" "]), headers=auth(therapist)
    )
    assert blank_language.status_code == 400


def test_image_upload_url_unavailable_without_s3(client, therapist, auth):
    response = client.post(
        "/api/dashboard/profile/image-upload-url",
        json={"content_type": "image/png"},
        headers=auth(therapist),
    )
    assert response.status_code == 503

    bad_type = client.post(
        "/api/dashboard/profile/image-upload-url",
        json={"content_type": "image/gif"},
        headers=auth(therapist),
    )
    assert bad_type.status_code == 400
