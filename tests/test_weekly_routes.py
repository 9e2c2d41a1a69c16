"""Tests for the /weekly JSON routes."""

from sqlalchemy import text

from otj_portal.models import db

from conftest import login_as, make_user


def _submit(client, **overrides):
    body = {"total_hours": 3, "week_date": "2024-06-12", "notes": "Reading week", **overrides}
    return client.post("/weekly/", json=body)


# ---------------------------------------------------------------------------
# Current week / lookup
# ---------------------------------------------------------------------------


def test_current_week_without_record(learner_id, client):
    """Nothing logged yet is a normal state: zero progress, reminder on."""
    resp = client.get("/weekly/current")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["record"] is None
    assert data["percentage"] == 0
    assert data["met"] is False
    assert data["minimum_required_hours"] == 6.0
    assert data["needs_reminder"] is True
    assert " - " in data["week_range"]


def test_week_lookup_absent_is_200(learner_id, client):
    resp = client.get(f"/weekly/learner/{learner_id}/week/2024-06-12")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["record"] is None
    assert data["week_start_date"] == "2024-06-10"
    assert data["week_end_date"] == "2024-06-16"
    assert data["week_range"] == "10 Jun - 16 Jun 2024"


def test_week_lookup_bad_date(learner_id, client):
    resp = client.get(f"/weekly/learner/{learner_id}/week/not-a-date")
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "week_date"


# ---------------------------------------------------------------------------
# Submit (upsert)
# ---------------------------------------------------------------------------


def test_submit_creates_then_updates(learner_id, client):
    first = _submit(client)
    assert first.status_code == 201
    data = first.get_json()
    assert data["total_hours"] == 3
    assert data["percentage"] == 50
    assert data["met"] is False
    assert data["week_start_date"] == "2024-06-10"

    second = _submit(client, total_hours=9, week_date="2024-06-15")
    assert second.status_code == 200
    data = second.get_json()
    assert data["id"] == first.get_json()["id"]
    assert data["percentage"] == 100
    assert data["met"] is True
    assert data["status"] == "complete"

    listing = client.get(f"/weekly/learner/{learner_id}").get_json()
    assert listing["total"] == 1


def test_submit_accepts_form_post(learner_id, client):
    resp = client.post("/weekly/", data={"total_hours": "2.5", "week_date": "2024-06-12"})
    assert resp.status_code == 201
    assert resp.get_json()["total_hours"] == 2.5


def test_submit_negative_hours_rejected(learner_id, client):
    resp = _submit(client, total_hours=-1)
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "total_hours"
    assert client.get(f"/weekly/learner/{learner_id}").get_json()["total"] == 0


def test_submit_missing_hours_rejected(learner_id, client):
    resp = client.post("/weekly/", json={"week_date": "2024-06-12"})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "total_hours"


def test_submit_over_weekly_cap_rejected(learner_id, client):
    resp = _submit(client, total_hours=41)
    assert resp.status_code == 400


def test_submit_bad_week_date(learner_id, client):
    resp = _submit(client, week_date="12/06/2024")
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "week_date"


def test_learner_cannot_submit_for_someone_else(learner_id, client, app):
    other = make_user(app, "other@example.com")
    resp = _submit(client, learner_id=other)
    assert resp.status_code == 403


def test_tutor_can_submit_for_learner(learner_id, client, tutor_id):
    login_as(client, tutor_id)
    resp = _submit(client, learner_id=learner_id)
    assert resp.status_code == 201
    assert resp.get_json()["learner_id"] == learner_id


# ---------------------------------------------------------------------------
# Listing and detail
# ---------------------------------------------------------------------------


def test_list_filters_and_paging(learner_id, client):
    for day, hours in (("2024-06-03", 1), ("2024-06-10", 2), ("2024-06-17", 3)):
        _submit(client, week_date=day, total_hours=hours)

    data = client.get(f"/weekly/learner/{learner_id}").get_json()
    assert [r["total_hours"] for r in data["records"]] == [3, 2, 1]

    data = client.get(f"/weekly/learner/{learner_id}?start=2024-06-10&limit=1").get_json()
    assert data["total"] == 2
    assert [r["week_start_date"] for r in data["records"]] == ["2024-06-17"]


def test_list_bad_filter_date(learner_id, client):
    resp = client.get(f"/weekly/learner/{learner_id}?start=yesterday")
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "start"


def test_learner_cannot_list_other_learner(learner_id, client, app):
    other = make_user(app, "other@example.com")
    resp = client.get(f"/weekly/learner/{other}")
    assert resp.status_code == 403


def test_detail_and_missing_record(learner_id, client):
    record_id = _submit(client).get_json()["id"]
    assert client.get(f"/weekly/{record_id}").status_code == 200
    resp = client.get("/weekly/99999")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "RecordNotFound"


def test_put_updates_hours_and_notes(learner_id, client):
    record_id = _submit(client).get_json()["id"]
    resp = client.put(f"/weekly/{record_id}", json={"total_hours": 6, "notes": "Caught up"})
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["total_hours"] == 6
    assert data["notes"] == "Caught up"
    assert data["met"] is True


def test_put_notes_only_keeps_hours(learner_id, client):
    record_id = _submit(client).get_json()["id"]
    data = client.put(f"/weekly/{record_id}", json={"notes": "Edited"}).get_json()
    assert data["total_hours"] == 3
    assert data["notes"] == "Edited"


def test_history(learner_id, client):
    resp = client.get("/weekly/history?weeks=4")
    assert resp.status_code == 200
    weeks = resp.get_json()["weeks"]
    assert len(weeks) == 4
    assert weeks[0]["week_start_date"] < weeks[-1]["week_start_date"]


# ---------------------------------------------------------------------------
# Tutor review
# ---------------------------------------------------------------------------


def test_tutor_review_overrides_status(learner_id, client, tutor_id):
    record_id = _submit(client).get_json()["id"]

    login_as(client, tutor_id)
    resp = client.post(f"/weekly/{record_id}/review", json={"notes": "Agreed absence", "outcome": "complete"})
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["status"] == "complete"
    assert data["computed_status"] == "incomplete"
    assert data["status_override"] == "complete"
    assert data["reviewed_by_id"] == tutor_id
    assert data["tutor_notes"] == "Agreed absence"
    assert data["tutor_review_date"] is not None


def test_learner_cannot_review(learner_id, client):
    record_id = _submit(client).get_json()["id"]
    resp = client.post(f"/weekly/{record_id}/review", json={"notes": "Looks fine"})
    assert resp.status_code == 403


def test_review_invalid_outcome(learner_id, client, tutor_id):
    record_id = _submit(client).get_json()["id"]
    login_as(client, tutor_id)
    resp = client.post(f"/weekly/{record_id}/review", json={"outcome": "pending"})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "outcome"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def test_unauthenticated_request_is_401(client):
    login_as(client, 99999)  # session points at a user that doesn't exist
    resp = client.get("/weekly/current")
    assert resp.status_code == 401


def test_storage_failure_is_503(learner_id, client, app):
    """A broken database surfaces as an error, never as an empty week."""
    with app.app_context():
        db.session.execute(text("DROP TABLE weekly_otj_record"))
        db.session.commit()
    resp = client.get("/weekly/current")
    assert resp.status_code == 503
    assert resp.get_json()["error"] == "StorageFailure"


def test_negative_paging_rejected(learner_id, client):
    for name in ("limit", "offset"):
        resp = client.get(f"/weekly/learner/{learner_id}?{name}=-1")
        assert resp.status_code == 400
        assert resp.get_json()["field"] == name


def test_non_numeric_limit_rejected(learner_id, client):
    resp = client.get(f"/weekly/learner/{learner_id}?limit=ten")
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "limit"
