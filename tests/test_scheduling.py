from datetime import datetime, timedelta

from src.services.scheduling import (
    annotate_sessions,
    client_key,
    find_too_close_sessions,
    to_utc,
)


def make(id, date, therapist="t1", patient=None, email=None):
    return {
        "id": id,
        "therapist_id": therapist,
        "patient_id": patient,
        "client_email": email,
        "session_date": date,
    }


def test_sessions_34_hours_apart_are_both_flagged():
    sessions = [
        make("a", "2024-01-10T10:00:00Z", patient="p1"),
        make("b", "2024-01-11T20:00:00Z", patient="p1"),
    ]
    assert find_too_close_sessions(sessions) == {"a", "b"}


def test_sessions_more_than_48_hours_apart_are_not_flagged():
    sessions = [
        make("a", "2024-01-10T10:00:00Z", patient="p1"),
        make("b", "2024-01-13T00:00:00Z", patient="p1"),
    ]
    assert find_too_close_sessions(sessions) == set()


def test_exactly_48_hours_is_not_too_close():
    sessions = [
        make("a", "2024-01-10T10:00:00Z", patient="p1"),
        make("b", "2024-01-12T10:00:00Z", patient="p1"),
    ]
    assert find_too_close_sessions(sessions) == set()


def test_result_does_not_depend_on_input_order():
    sessions = [
        make("c", "2024-03-05T09:00:00Z", patient="p1"),
        make("a", "2024-03-01T09:00:00Z", patient="p1"),
        make("b", "2024-03-02T08:00:00Z", patient="p1"),
    ]
    assert find_too_close_sessions(sessions) == find_too_close_sessions(list(reversed(sessions)))
    assert find_too_close_sessions(sessions) == {"a", "b"}


def test_different_clients_or_therapists_are_independent():
    sessions = [
        make("a", "2024-01-10T10:00:00Z", patient="p1"),
        make("b", "2024-01-10T12:00:00Z", patient="p2"),
        make("c", "2024-01-10T14:00:00Z", therapist="t2", patient="p1"),
    ]
    assert find_too_close_sessions(sessions) == set()


def test_client_email_is_used_when_there_is_no_patient_id():
    sessions = [
        make("a", "2024-01-10T10:00:00Z", email="Client@Example.com"),
        make("b", "2024-01-11T10:00:00Z", email="client@example.com "),
    ]
    assert find_too_close_sessions(sessions) == {"a", "b"}


def test_sessions_without_identity_or_date_are_ignored():
    sessions = [
        make("a", "2024-01-10T10:00:00Z"),
        make("b", "2024-01-10T11:00:00Z"),
        make("c", "not a date", patient="p1"),
        make("d", None, patient="p1"),
        make("e", "2024-01-10T10:00:00Z", patient="p1"),
    ]
    assert find_too_close_sessions(sessions) == set()


def test_garbage_input_never_raises():
    assert find_too_close_sessions(None) == set()
    assert find_too_close_sessions([]) == set()
    assert find_too_close_sessions([{"id": "x"}]) == set()


def test_timezone_offsets_are_normalized():
    sessions = [
        make("a", "2024-01-10T10:00:00+02:00", patient="p1"),
        make("b", datetime(2024, 1, 12, 7, 59), patient="p1"),
    ]
    # 08:00Z vs 07:59Z two days later: one minute under the threshold
    assert find_too_close_sessions(sessions) == {"a", "b"}


def test_custom_threshold():
    sessions = [
        make("a", "2024-01-10T10:00:00Z", patient="p1"),
        make("b", "2024-01-11T20:00:00Z", patient="p1"),
    ]
    assert find_too_close_sessions(sessions, threshold=timedelta(hours=24)) == set()


def test_client_key_prefers_patient_id():
    assert client_key(make("a", None, patient="p1", email="x@y.z")) == "t1|p:p1"
    assert client_key(make("a", None, email="X@Y.z")) == "t1|e:x@y.z"
    assert client_key(make("a", None)) is None


def test_to_utc_treats_naive_values_as_utc():
    assert to_utc("2024-01-10T10:00:00").isoformat() == "2024-01-10T10:00:00+00:00"
    assert to_utc("garbage") is None


def test_annotate_sessions_adds_flag():
    rows = annotate_sessions(
        [
            make("a", "2024-01-10T10:00:00Z", patient="p1"),
            make("b", "2024-01-11T10:00:00Z", patient="p1"),
            make("c", "2024-02-11T10:00:00Z", patient="p1"),
        ]
    )
    assert [r["is_too_close"] for r in rows] == [True, True, False]
