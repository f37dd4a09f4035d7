import datetime as dt

import pytest

from conftest import add_subscription, add_workouts, auth_headers, utc


@pytest.fixture
def subscribed(session_factory):
    session = session_factory()
    add_workouts(session)
    add_subscription(session)
    session.close()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_requires_bearer_token(client):
    r = client.get("/api/workouts/current-week")
    assert r.status_code == 401


def test_rejects_bad_token(client):
    r = client.get("/api/workouts/current-week", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_current_week_without_subscription(client):
    r = client.get("/api/workouts/current-week", headers=auth_headers())
    assert r.status_code == 404
    assert r.json() == {"error": "No active subscription found."}


def test_log_then_cooldown(client, clock, subscribed):
    clock.now = utc(2024, 1, 1, 10, 0)
    r = client.post("/api/workout-logs", json={"workout_id": "v1-legs"}, headers=auth_headers())
    assert r.status_code == 201
    body = r.json()
    assert body["workout_id"] == "v1-legs"
    assert body["week_number"] == 1

    clock.now = utc(2024, 1, 2, 3, 59)
    r = client.post("/api/workout-logs", json={"workout_id": "v1-push"}, headers=auth_headers())
    assert r.status_code == 429
    assert r.json()["hours_remaining"] == pytest.approx(1 / 60)

    r = client.get("/api/workout-logs/cooldown-status", headers=auth_headers())
    assert r.status_code == 200
    status = r.json()
    assert status["cooldown_active"] is True
    assert dt.datetime.fromisoformat(status["unlocks_at"].replace("Z", "+00:00")) == utc(2024, 1, 2, 4, 0)

    clock.now = utc(2024, 1, 2, 4, 0)
    r = client.get("/api/workout-logs/cooldown-status", headers=auth_headers())
    assert r.json() == {"cooldown_active": False, "unlocks_at": None, "hours_remaining": 0.0}


def test_log_client_timestamp_is_not_accepted(client, subscribed):
    r = client.post(
        "/api/workout-logs",
        json={"workout_id": "v1-legs", "logged_at": "2020-01-01T00:00:00Z"},
        headers=auth_headers(),
    )
    assert r.status_code == 422


def test_log_requires_workout_id(client, subscribed):
    r = client.post("/api/workout-logs", json={}, headers=auth_headers())
    assert r.status_code == 422


def test_log_without_subscription(client):
    r = client.post("/api/workout-logs", json={"workout_id": "v1-legs"}, headers=auth_headers("stranger"))
    assert r.status_code == 403


def test_log_unknown_workout(client, subscribed):
    r = client.post("/api/workout-logs", json={"workout_id": "nope"}, headers=auth_headers())
    assert r.status_code == 404


def test_current_week_payload(client, clock, subscribed):
    clock.now = utc(2024, 1, 8, 6, 0)
    client.post("/api/workout-logs", json={"workout_id": "v1-legs"}, headers=auth_headers())
    clock.now = utc(2024, 1, 8, 12, 0)

    r = client.get("/api/workouts/current-week", headers=auth_headers())
    assert r.status_code == 200
    body = r.json()
    assert body["week_number"] == 2
    assert body["variation"] == 1
    assert body["amount_paid"] == 80.0
    assert body["cooldown_active"] is True
    assert body["hours_remaining"] == pytest.approx(12.0)
    assert body["completed_count"] == 1
    assert body["required"] == 4
    assert dt.datetime.fromisoformat(body["week_ends_at"].replace("Z", "+00:00")) == utc(2024, 1, 15)
    assert [(w["id"], w["status"]) for w in body["workouts"]] == [
        ("v1-legs", "completed"),
        ("v1-push", "next"),
        ("v1-pull", "locked"),
        ("v1-burn", "locked"),
    ]
    assert body["workouts"][0]["logged_date"] == "2024-01-08"
    assert body["workouts"][1]["logged_date"] is None


def test_eligibility_over_weeks(client, clock, subscribed):
    # week 1: two workouts, covered by the grace week
    for day in (0, 2):
        clock.now = utc(2024, 1, 1, 7) + dt.timedelta(days=day)
        assert client.post("/api/workout-logs", json={"workout_id": "v1-legs"}, headers=auth_headers()).status_code == 201

    clock.now = utc(2024, 1, 9)
    r = client.get("/api/eligibility", headers=auth_headers())
    assert r.status_code == 200
    body = r.json()
    assert body["refund_eligible"] is True
    assert body["grace_weeks_remaining"] == 0
    assert body["grace_used"] is True
    assert body["current_week"] == 2
    assert body["program_status"] == "in_progress"
    assert body["weeks"][0]["outcome"] == "missed_graced"
    assert body["weeks"][0]["met_requirement"] is False

    # weeks 2 and 3 untouched
    clock.now = utc(2024, 1, 22, 1)
    body = client.get("/api/eligibility", headers=auth_headers()).json()
    assert body["refund_eligible"] is False
    assert body["program_status"] == "forfeited"
    assert [w["outcome"] for w in body["weeks"]] == ["missed_graced", "missed_penalized", "missed_penalized"]


def test_eligibility_without_subscription(client):
    r = client.get("/api/eligibility", headers=auth_headers("stranger"))
    assert r.status_code == 404


@pytest.mark.parametrize("state", ["forfeited", "completed", "refunded"])
def test_inactive_subscription_reads_as_not_subscribed(client, session_factory, state):
    session = session_factory()
    add_workouts(session)
    add_subscription(session, status=state)
    session.close()

    assert client.get("/api/workouts/current-week", headers=auth_headers()).status_code == 404
    assert client.get("/api/eligibility", headers=auth_headers()).status_code == 404
    r = client.post("/api/workout-logs", json={"workout_id": "v1-legs"}, headers=auth_headers())
    assert r.status_code == 403


def test_ops_alert_only_for_accepted_logs(client, clock, subscribed, monkeypatch):
    import main

    sent = []
    monkeypatch.setattr(main, "send_telegram_message", lambda text, settings: sent.append(text))

    clock.now = utc(2024, 1, 1, 10, 0)
    assert client.post("/api/workout-logs", json={"workout_id": "v1-legs"}, headers=auth_headers()).status_code == 201
    assert len(sent) == 1
    assert "`user-1`" in sent[0]
    assert "*Week 1:* 1/4 workouts" in sent[0]

    clock.now = utc(2024, 1, 1, 12, 0)
    assert client.post("/api/workout-logs", json={"workout_id": "v1-push"}, headers=auth_headers()).status_code == 429
    assert len(sent) == 1
