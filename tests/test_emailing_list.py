from fastapi.testclient import TestClient

from feedback360.main import app
from feedback360.models.subject_evaluator_survey import SubjectEvaluatorSurvey
from feedback360.services import emailing_list_cache
from feedback360.services.emailing_list_cache import compute_emailing_list
from tests.helpers import (
    create_assignment,
    create_completed_submission,
    create_edge,
    create_survey,
    create_tenant,
    person,
)


def _setup(db):
    """Evaluator Eve owes feedback on Sam and Tom; Tom's is already done."""
    tenant = create_tenant(db)
    survey = create_survey(db, tenant, "Q4 Feedback")
    _, sam, _ = person(db, tenant, "S1", "Sam", "Stone")
    _, tom, _ = person(db, tenant, "S2", "Tom", "Todd")
    _, _, eve = person(db, tenant, "E1", "Eve", "Evans")
    sam_edge = create_edge(db, sam, eve, "Peer")
    a1 = create_assignment(db, sam_edge, survey)
    a2 = create_assignment(db, create_edge(db, tom, eve, "Peer"), survey)
    return tenant, survey, sam, eve, a1, a2


def test_compute_groups_by_survey_and_evaluator(db_session):
    tenant, survey, _, eve, a1, a2 = _setup(db_session)

    items = compute_emailing_list(db_session, tenant.id)
    assert len(items) == 1
    item = items[0]
    assert item.survey_id == survey.id
    assert item.evaluator_id == eve.id
    assert item.subject_names == ("Sam Stone", "Tom Todd")
    assert item.subject_count == 2

    create_completed_submission(db_session, a2, {"q1": "Good"})
    item = compute_emailing_list(db_session, tenant.id)[0]
    assert item.subject_names == ("Sam Stone",)
    assert item.assignment_ids == (a1.id,)


def test_cache_hit_until_invalidated(db_session, cache, monkeypatch):
    tenant, *_ = _setup(db_session)
    calls = []

    def counting(db, tenant_id):
        calls.append(tenant_id)
        return compute_emailing_list(db, tenant_id)

    monkeypatch.setattr(emailing_list_cache, "compute_emailing_list", counting)
    cache.get(db_session, tenant.id)
    cache.get(db_session, tenant.id)
    assert len(calls) == 1
    assert tenant.id in cache

    cache.invalidate(tenant.id)
    assert tenant.id not in cache
    cache.get(db_session, tenant.id)
    assert len(calls) == 2


def test_sliding_expiry_is_extended_by_reads(db_session, cache, clock):
    tenant, *_ = _setup(db_session)
    cache.get(db_session, tenant.id)

    clock.advance(250)
    assert tenant.id in cache
    cache.get(db_session, tenant.id)  # slides the window
    clock.advance(250)
    assert tenant.id in cache

    clock.advance(301)
    assert tenant.id not in cache


def test_absolute_expiry_caps_sliding(db_session, cache, clock):
    tenant, *_ = _setup(db_session)
    cache.get(db_session, tenant.id)

    for _ in range(7):
        clock.advance(250)
        cache.get(db_session, tenant.id)
    # 1750s since the entry was computed; the next read crosses the 1800s cap
    clock.advance(60)
    assert tenant.id not in cache


def test_removing_relationship_refreshes_list(db_session, cache):
    tenant, _, sam, eve, *_ = _setup(db_session)
    client = TestClient(app)

    before = client.get("/acme/emailing-list").json()
    assert before[0]["subject_count"] == 2
    assert tenant.id in cache

    r = client.delete(f"/acme/subjects/{sam.id}/evaluators/{eve.id}")
    assert r.status_code == 204
    assert tenant.id not in cache

    after = client.get("/acme/emailing-list").json()
    assert after[0]["subject_names"] == ["Tom Todd"]


def test_submission_refreshes_list(db_session, cache):
    _, _, _, _, a1, a2 = _setup(db_session)
    client = TestClient(app)
    assert client.get("/acme/emailing-list").json()[0]["subject_count"] == 2

    client.post(f"/acme/assignments/{a1.id}/submit", json={"response_data": {"q1": "Good"}})
    client.post(f"/acme/assignments/{a2.id}/submit", json={"response_data": {"q1": "Good"}})
    assert client.get("/acme/emailing-list").json() == []


def test_emailing_list_search(db_session):
    _setup(db_session)
    client = TestClient(app)
    assert len(client.get("/acme/emailing-list", params={"search": "eve"}).json()) == 1
    assert client.get("/acme/emailing-list", params={"search": "nobody"}).json() == []


def test_send_reminders_stamps_delivered_assignments(db_session, dispatcher):
    _, survey, *_ = _setup(db_session)
    client = TestClient(app)

    r = client.post("/acme/emailing-list/reminders", json={"survey_id": str(survey.id)})
    assert r.status_code == 200
    assert r.json() == {"sent": 1, "failed": 0}
    assert dispatcher.reminders[0].subject_names == ["Sam Stone", "Tom Todd"]

    stamped = db_session.query(SubjectEvaluatorSurvey).filter(SubjectEvaluatorSurvey.survey_id == survey.id).all()
    assert all(a.last_reminder_sent_at is not None for a in stamped)
    assert client.get("/acme/emailing-list").json()[0]["last_reminder_sent_at"] is not None


def test_failed_reminder_is_counted_not_raised(db_session, dispatcher):
    _, survey, *_ = _setup(db_session)
    dispatcher.fail_for = {"e1@acme.test"}
    client = TestClient(app)

    r = client.post("/acme/emailing-list/reminders")
    assert r.status_code == 200
    assert r.json() == {"sent": 0, "failed": 1}

    rows = db_session.query(SubjectEvaluatorSurvey).filter(SubjectEvaluatorSurvey.survey_id == survey.id).all()
    assert all(a.last_reminder_sent_at is None for a in rows)
