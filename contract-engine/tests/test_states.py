import threading
import time
from contextlib import contextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from contract_engine.core.exceptions import UnknownStateError
from contract_engine.demo.api import create_provider_app
from contract_engine.demo.products import DEFAULT_PRODUCTS
from contract_engine.provider.states import ProviderStateDispatcher, build_state_router


def test_dispatch_runs_registered_hook():
    dispatcher = ProviderStateDispatcher()
    calls = []

    @dispatcher.state("products exist")
    def seed():
        calls.append("seed")

    dispatcher.dispatch("products exist")
    assert calls == ["seed"]
    assert dispatcher.states() == ["products exist"]


def test_dispatch_unknown_state():
    with pytest.raises(UnknownStateError) as excinfo:
        ProviderStateDispatcher().dispatch("missing")
    assert excinfo.value.state == "missing"


def test_hooks_run_under_store_lock():
    events = []

    class Store:
        @contextmanager
        def exclusive(self):
            events.append("lock")
            yield self
            events.append("unlock")

    dispatcher = ProviderStateDispatcher(Store())
    dispatcher.register("seed", lambda: events.append("hook"))
    dispatcher.dispatch("seed")
    assert events == ["lock", "hook", "unlock"]


def test_state_endpoint_reseeds_repository(client, repository):
    r = client.post("/provider-states", json={"state": "only product 9 exists"})
    assert r.status_code == 200
    assert r.json()["status"] == "success"
    assert [p.id for p in repository.list()] == [9]

    assert client.get("/api/products/10").status_code == 404
    client.post("/provider-states", json={"state": "products exist"})
    assert client.get("/api/products/10").json()["name"] == "28 Degrees"


def test_no_products_state(client):
    client.post("/provider-states", json={"state": "no products exist"})
    assert client.get("/api/products").json() == []


def test_empty_state_is_skipped(client):
    r = client.post("/provider-states", json={})
    assert r.status_code == 200
    assert r.json()["status"] == "skipped"


def test_unknown_state_is_lenient_by_default(client):
    r = client.post("/provider-states", json={"state": "a state nobody wrote"})
    assert r.status_code == 200
    assert r.json()["status"] == "unknown"


def test_unknown_state_rejected_when_strict(repository, dispatcher):
    client = TestClient(create_provider_app(repository, dispatcher, strict_states=True))
    r = client.post("/provider-states", json={"state": "a state nobody wrote"})
    assert r.status_code == 400
    assert r.json()["detail"]["title"] == "Invalid Provider State"


def test_failing_hook_returns_500():
    dispatcher = ProviderStateDispatcher()

    def broken():
        raise RuntimeError("database unavailable")

    dispatcher.register("broken", broken)
    app = FastAPI()
    app.include_router(build_state_router(dispatcher, strict=False))
    r = TestClient(app).post("/provider-states", json={"state": "broken"})
    assert r.status_code == 500
    assert "database unavailable" in r.json()["detail"]["detail"]


def test_list_states(client):
    body = client.get("/provider-states").json()
    assert body["total_states"] == len(body["available_states"])
    assert "products exist" in body["available_states"]


def test_register_rejects_empty_name():
    with pytest.raises(ValueError):
        ProviderStateDispatcher().register("", lambda: None)


def test_readers_never_see_a_half_applied_state(repository):
    dispatcher = ProviderStateDispatcher(repository)
    seed = list(DEFAULT_PRODUCTS)

    @dispatcher.state("reseed in steps")
    def reseed():
        repository.set_state([])
        time.sleep(0.001)
        repository.set_state(seed[:1])
        time.sleep(0.001)
        repository.set_state(seed)

    observed = set()
    done = threading.Event()

    def reader():
        while not done.is_set():
            observed.add(tuple(p.id for p in repository.list()))

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for t in readers:
        t.start()
    try:
        for _ in range(25):
            dispatcher.dispatch("reseed in steps")
    finally:
        done.set()
        for t in readers:
            t.join()

    assert observed == {(9, 10)}
