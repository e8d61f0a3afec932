from fastapi.testclient import TestClient

from feedback360.core.audit import EMPLOYEE_CREATED, RELATIONSHIP_ASSIGNED, RELATIONSHIP_REMOVED
from feedback360.main import app
from tests.helpers import create_tenant, person


def test_audit_trail_is_tenant_scoped(db_session):
    tenant = create_tenant(db_session)
    create_tenant(db_session, slug="other")
    _, subject, _ = person(db_session, tenant, "S1")
    _, _, evaluator = person(db_session, tenant, "E1")

    client = TestClient(app)
    client.post("/acme/employees", json={"employee_code": "N1", "first_name": "Nia", "email": "n1@acme.test"})
    client.post(
        f"/acme/subjects/{subject.id}/evaluators",
        json={"evaluator_ids": [str(evaluator.id)], "relationship": "Peer"},
    )
    client.delete(f"/acme/subjects/{subject.id}/evaluators/{evaluator.id}")

    r = client.get("/acme/audit")
    assert r.status_code == 200
    actions = {e["action"] for e in r.json()}
    assert {EMPLOYEE_CREATED, RELATIONSHIP_ASSIGNED, RELATIONSHIP_REMOVED} <= actions

    r = client.get("/acme/audit", params={"action": RELATIONSHIP_ASSIGNED})
    events = r.json()
    assert len(events) == 1
    assert events[0]["metadata"]["relationship"] == "Peer"

    assert client.get("/other/audit").json() == []
