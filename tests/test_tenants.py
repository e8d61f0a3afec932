from fastapi.testclient import TestClient

from feedback360.main import app
from feedback360.models.tenant import Tenant
from tests.helpers import create_employee, create_tenant


def test_create_tenant(db_session):
    client = TestClient(app)
    r = client.post("/tenants", json={"slug": "globex", "name": "Globex"})
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["slug"] == "globex"
    assert body["is_active"] is True

    assert db_session.query(Tenant).filter(Tenant.slug == "globex").one()


def test_create_tenant_duplicate_slug_conflicts(db_session):
    create_tenant(db_session, slug="globex")
    client = TestClient(app)
    r = client.post("/tenants", json={"slug": "globex", "name": "Globex again"})
    assert r.status_code == 409


def test_create_tenant_rejects_bad_slug(db_session):
    client = TestClient(app)
    r = client.post("/tenants", json={"slug": "Not A Slug", "name": "Bad"})
    assert r.status_code == 422


def test_unknown_tenant_is_404(db_session):
    client = TestClient(app)
    r = client.get("/nobody/employees")
    assert r.status_code == 404


def test_deactivated_tenant_is_404(db_session):
    create_tenant(db_session, slug="initech")
    client = TestClient(app)

    r = client.post("/tenants/initech/deactivate")
    assert r.status_code == 200
    assert r.json()["is_active"] is False

    r = client.get("/initech/employees")
    assert r.status_code == 404


def test_tenants_do_not_see_each_other(db_session):
    a = create_tenant(db_session, slug="alpha")
    b = create_tenant(db_session, slug="beta")
    create_employee(db_session, a, "E1", "Ann")
    create_employee(db_session, b, "E1", "Ben")

    client = TestClient(app)
    r = client.get("/alpha/employees")
    assert [e["first_name"] for e in r.json()] == ["Ann"]
    r = client.get("/beta/employees")
    assert [e["first_name"] for e in r.json()] == ["Ben"]
