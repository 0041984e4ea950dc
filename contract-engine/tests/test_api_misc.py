from fastapi.testclient import TestClient

from contract_engine.main import create_app


def test_health_and_version():
    client = TestClient(create_app())
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    v = client.get("/version")
    assert v.status_code == 200
    assert v.json()["service"] == "contract-engine"
    assert v.json()["version"]


def test_products_endpoints(client: TestClient):
    r = client.get("/api/products")
    assert r.status_code == 200
    assert [p["id"] for p in r.json()] == [9, 10]
    assert client.get("/api/products/9").json()["name"] == "GEM Visa"
    assert client.get("/api/products/404").status_code == 404


def test_provider_states_can_be_disabled(monkeypatch):
    monkeypatch.setenv("PROVIDER_STATES_ENABLED", "false")
    client = TestClient(create_app())
    assert client.post("/provider-states", json={"state": "products exist"}).status_code in (404, 405)
    assert client.get("/api/products").status_code == 200


def test_strict_states_from_environment(monkeypatch):
    monkeypatch.setenv("STRICT_PROVIDER_STATES", "true")
    client = TestClient(create_app())
    assert client.post("/provider-states", json={"state": "unknown"}).status_code == 400
