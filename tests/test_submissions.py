import pytest
from fastapi.testclient import TestClient

from feedback360.core.results import ErrorKind, ServiceException
from feedback360.main import app
from feedback360.models.survey_submission import COMPLETED, IN_PROGRESS, NOT_STARTED, STATUS_RANK
from feedback360.services import assignment_resolver
from tests.helpers import create_assignment, create_edge, create_survey, create_tenant, person


@pytest.fixture()
def assignment(db_session):
    tenant = create_tenant(db_session)
    _, subject, _ = person(db_session, tenant, "S1")
    _, _, evaluator = person(db_session, tenant, "E1")
    edge = create_edge(db_session, subject, evaluator, "Peer")
    return create_assignment(db_session, edge, create_survey(db_session, tenant))


def test_draft_then_submit(db_session, assignment):
    client = TestClient(app)
    base = f"/acme/assignments/{assignment.id}"

    assert client.get(f"{base}/submission").status_code == 404

    r = client.post(f"{base}/draft", json={"response_data": {"q1": "Good"}})
    assert r.status_code == 200, r.text
    draft = r.json()
    assert draft["status"] == IN_PROGRESS
    assert draft["started_at"] is not None
    assert draft["completed_at"] is None
    assert r.headers["ETag"] == f'"{draft["version"]}"'

    r = client.post(f"{base}/submit", json={"response_data": {"q1": "Great"}})
    assert r.status_code == 200
    done = r.json()
    assert done["id"] == draft["id"]
    assert done["status"] == COMPLETED
    assert done["started_at"] == draft["started_at"]
    assert done["completed_at"] is not None
    assert done["version"] > draft["version"]

    r = client.get(f"{base}/submission")
    assert r.json()["response_data"] == {"q1": "Great"}


def test_repeated_drafts_keep_first_start(db_session, assignment, cache):
    first = assignment_resolver.save_draft(db_session, assignment.tenant_id, assignment.id, {"q1": "Poor"}, cache=cache)
    started_at = first.started_at

    again = assignment_resolver.save_draft(db_session, assignment.tenant_id, assignment.id, {"q1": "Good"}, cache=cache)
    assert again.id == first.id
    assert again.status == IN_PROGRESS
    assert again.started_at == started_at
    assert again.completed_at is None
    assert STATUS_RANK[NOT_STARTED] < STATUS_RANK[IN_PROGRESS] < STATUS_RANK[COMPLETED]


def test_completed_submission_cannot_go_back(db_session, assignment):
    client = TestClient(app)
    base = f"/acme/assignments/{assignment.id}"
    client.post(f"{base}/submit", json={"response_data": {"q1": "Good"}})

    r = client.post(f"{base}/draft", json={"response_data": {"q1": "Poor"}})
    assert r.status_code == 409
    r = client.post(f"{base}/submit", json={"response_data": {"q1": "Poor"}})
    assert r.status_code == 409

    r = client.get(f"{base}/submission")
    assert r.json()["status"] == COMPLETED
    assert r.json()["response_data"] == {"q1": "Good"}


def test_edit_after_completion_when_allowed(db_session, assignment, cache):
    first = assignment_resolver.submit(db_session, assignment.tenant_id, assignment.id, {"q1": "Good"}, cache=cache)
    completed_at = first.completed_at

    edited = assignment_resolver.save_draft(
        db_session,
        assignment.tenant_id,
        assignment.id,
        {"q1": "Great"},
        cache=cache,
        allow_edit_after_completion=True,
    )
    assert edited.id == first.id
    assert edited.status == COMPLETED
    assert edited.completed_at == completed_at
    assert edited.response_data == {"q1": "Great"}


def test_edit_after_completion_rejected_by_default(db_session, assignment, cache):
    assignment_resolver.submit(db_session, assignment.tenant_id, assignment.id, {"q1": "Good"}, cache=cache)
    with pytest.raises(ServiceException) as exc:
        assignment_resolver.submit(db_session, assignment.tenant_id, assignment.id, {"q1": "Poor"}, cache=cache)
    assert exc.value.error.kind == ErrorKind.CONFLICT


def test_stale_if_match_is_rejected(db_session, assignment):
    client = TestClient(app)
    base = f"/acme/assignments/{assignment.id}"
    r = client.post(f"{base}/draft", json={"response_data": {"q1": "Good"}})
    etag = r.headers["ETag"]

    r = client.post(f"{base}/draft", json={"response_data": {"q1": "Great"}}, headers={"If-Match": etag})
    assert r.status_code == 200
    assert r.headers["ETag"] != etag

    r = client.post(f"{base}/submit", json={"response_data": {"q1": "Poor"}}, headers={"If-Match": etag})
    assert r.status_code == 409

    r = client.post(f"{base}/draft", json={"response_data": {}}, headers={"If-Match": "abc"})
    assert r.status_code == 400


def test_inactive_or_foreign_assignment_is_404(db_session, assignment):
    create_tenant(db_session, slug="other")
    client = TestClient(app)
    r = client.post(f"/other/assignments/{assignment.id}/draft", json={"response_data": {}})
    assert r.status_code == 404

    assignment.is_active = False
    db_session.commit()
    r = client.post(f"/acme/assignments/{assignment.id}/draft", json={"response_data": {}})
    assert r.status_code == 404
