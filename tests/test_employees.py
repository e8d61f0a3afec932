from fastapi.testclient import TestClient

from feedback360.main import app
from feedback360.models.evaluator import Evaluator
from tests.helpers import create_employee, create_evaluator, create_subject, create_tenant


def _payload(code, first_name="Alice", **extra):
    return {"employee_code": code, "first_name": first_name, "email": f"{code}@acme.test", **extra}


def test_list_employees_empty(db_session):
    create_tenant(db_session)
    client = TestClient(app)
    r = client.get("/acme/employees")
    assert r.status_code == 200
    assert r.json() == []


def test_create_employee(db_session):
    create_tenant(db_session)
    client = TestClient(app)
    r = client.post("/acme/employees", json=_payload("E100", last_name="Smith", designation="Engineer"))
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["employee_code"] == "E100"
    assert body["full_name"] == "Alice Smith"
    assert body["is_active"] is True


def test_create_employee_duplicate_code_conflicts(db_session):
    tenant = create_tenant(db_session)
    create_employee(db_session, tenant, "E100")
    client = TestClient(app)
    r = client.post("/acme/employees", json=_payload("e100"))
    assert r.status_code == 409
    assert r.json()["error"] == "conflict"


def test_same_code_allowed_in_another_tenant(db_session):
    other = create_tenant(db_session, slug="other")
    create_employee(db_session, other, "E100")
    create_tenant(db_session)
    client = TestClient(app)
    r = client.post("/acme/employees", json=_payload("E100"))
    assert r.status_code == 201


def test_bulk_create_partial_success(db_session):
    tenant = create_tenant(db_session)
    create_employee(db_session, tenant, "E2")
    client = TestClient(app)
    r = client.post(
        "/acme/employees/bulk",
        json={"employees": [_payload("E1"), _payload("E2"), _payload("E3", "Carol")]},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["success_count"] == 2
    assert body["failure_count"] == 1
    assert body["status"] == "partial_success"
    assert body["errors"][0].startswith("Row 2:")
    assert [e["employee_code"] for e in body["items"]] == ["E1", "E3"]


def test_list_employees_search_and_pagination(db_session):
    tenant = create_tenant(db_session)
    create_employee(db_session, tenant, "E100", "Alice", "Smith")
    create_employee(db_session, tenant, "E200", "Bob", "Jones")
    create_employee(db_session, tenant, "E300", "Alice", "Wonder")

    client = TestClient(app)
    r = client.get("/acme/employees?search=alice")
    assert [e["employee_code"] for e in r.json()] == ["E100", "E300"]

    r = client.get("/acme/employees?search=E200")
    assert [e["first_name"] for e in r.json()] == ["Bob"]

    r = client.get("/acme/employees?limit=2&include_pagination=true")
    body = r.json()
    assert len(body["items"]) == 2
    assert body["pagination"]["total"] == 3
    assert body["pagination"]["has_more"] is True


def test_delete_employee_deactivates_wrappers(db_session):
    tenant = create_tenant(db_session)
    e = create_employee(db_session, tenant, "E100")
    create_evaluator(db_session, e)

    client = TestClient(app)
    r = client.delete(f"/acme/employees/{e.id}")
    assert r.status_code == 204

    r = client.get("/acme/employees")
    assert r.json() == []
    r = client.get("/acme/employees?include_inactive=true")
    assert r.json()[0]["is_active"] is False

    db_session.expire_all()
    assert db_session.query(Evaluator).filter(Evaluator.employee_id == e.id).one().is_active is False

    r = client.delete(f"/acme/employees/{e.id}")
    assert r.status_code == 404


def test_get_employee_from_other_tenant_is_404(db_session):
    other = create_tenant(db_session, slug="other")
    e = create_employee(db_session, other, "E1")
    create_tenant(db_session)
    client = TestClient(app)
    assert client.get(f"/acme/employees/{e.id}").status_code == 404
    assert client.get(f"/other/employees/{e.id}").status_code == 200


def test_validate_single_invalid_code_is_404(db_session):
    create_tenant(db_session)
    client = TestClient(app)
    r = client.post("/acme/employees/validate", json={"codes": ["NOPE"], "role": "subject"})
    assert r.status_code == 404
    assert "NOPE" in r.json()["detail"]


def test_validate_single_valid_code(db_session):
    tenant = create_tenant(db_session)
    e = create_employee(db_session, tenant, "E100", "Alice", "Smith")
    s = create_subject(db_session, e)
    client = TestClient(app)
    r = client.post("/acme/employees/validate", json={"codes": [" e100 "], "role": "subject"})
    assert r.status_code == 200
    result = r.json()["results"][0]
    assert result["is_valid"] is True
    assert result["full_name"] == "Alice Smith"
    assert result["wrapper_id"] == str(s.id)


def test_validate_batch_reports_per_code_in_order(db_session):
    tenant = create_tenant(db_session)
    create_employee(db_session, tenant, "E1")
    create_employee(db_session, tenant, "E2", is_active=False)
    inactive_wrapper_emp = create_employee(db_session, tenant, "E3")
    create_evaluator(db_session, inactive_wrapper_emp, is_active=False)

    client = TestClient(app)
    r = client.post(
        "/acme/employees/validate",
        json={"codes": ["E1", "E2", "E3", "missing", ""], "role": "evaluator"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["total_requested"] == 5
    assert body["valid_count"] == 2
    assert body["invalid_count"] == 3
    assert [x["code"] for x in body["results"]] == ["E1", "E2", "E3", "missing", ""]
    assert [x["is_valid"] for x in body["results"]] == [True, False, True, False, False]
    assert "inactive" in body["results"][1]["message"]
    assert "reactivated" in body["results"][2]["message"]
