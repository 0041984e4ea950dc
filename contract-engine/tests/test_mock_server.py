from fastapi.testclient import TestClient

from contract_engine.consumer.mock_server import MockState, RecordedRequest, create_mock_app, match_request
from contract_engine.core.interaction import Interaction, InteractionRequest, InteractionResponse
from contract_engine.core.matchers import EachLike, Like, Term

PRODUCT = {"id": 10, "type": "CREDIT_CARD", "name": "28 Degrees", "version": "v1"}


def interactions():
    return [
        Interaction(
            description="A request for product 10",
            provider_state="product with ID 10 exists",
            request=InteractionRequest(method="GET", path=Term(r"/api/products/\d+", "/api/products/10")),
            response=InteractionResponse(
                status=200,
                headers={"Content-Type": "application/json; charset=utf-8"},
                body=Like(PRODUCT),
            ),
        ),
        Interaction(
            description="A search for products",
            request=InteractionRequest(method="GET", path="/api/products", query={"type": "CREDIT_CARD"}),
            response=InteractionResponse(status=200, body=EachLike(PRODUCT)),
        ),
        Interaction(
            description="A request to create a product",
            request=InteractionRequest(
                method="POST",
                path="/api/products",
                headers={"Content-Type": "application/json"},
                body={"name": Like("New card")},
            ),
            response=InteractionResponse(status=201),
        ),
    ]


def make_client():
    state = MockState()
    state.reset(interactions())
    return state, TestClient(create_mock_app(state))


def test_matching_request_returns_example_response():
    state, client = make_client()
    r = client.get("/api/products/42")
    assert r.status_code == 200
    assert r.json() == PRODUCT
    assert r.headers["content-type"] == "application/json; charset=utf-8"
    assert state.hits()["A request for product 10"] == 1
    assert state.unexpected() == []


def test_query_must_match():
    state, client = make_client()
    assert client.get("/api/products", params={"type": "CREDIT_CARD"}).json() == [PRODUCT]
    r = client.get("/api/products", params={"type": "DEBIT"})
    assert r.status_code == 500


def test_body_matched_by_type():
    state, client = make_client()
    r = client.post("/api/products", json={"name": "Another card"})
    assert r.status_code == 201
    assert r.content == b""
    assert client.post("/api/products", json={"name": 5}).status_code == 500


def test_unexpected_request_gets_problem_document():
    state, client = make_client()
    r = client.delete("/api/products/10")
    assert r.status_code == 500
    assert r.headers["content-type"].startswith("application/problem+json")
    problem = r.json()
    assert problem["title"] == "Unexpected Request"
    assert "DELETE /api/products/10" in problem["detail"]
    closest = problem["closestMatches"]
    assert closest[0]["description"] == "A request for product 10"
    assert closest[0]["mismatches"][0]["path"] == "$.method"

    unexpected = state.unexpected()
    assert len(unexpected) == 1
    assert unexpected[0]["message"] == "Unexpected request DELETE /api/products/10"


def test_reset_clears_session():
    state, client = make_client()
    client.get("/api/unknown")
    state.reset(interactions()[:1])
    assert state.unexpected() == []
    assert state.hits() == {"A request for product 10": 0}


def test_match_request_reports_each_part():
    expected = interactions()[2].request
    actual = RecordedRequest(method="PUT", path="/api/items", headers={}, body={"name": "x"})
    outcome = match_request(expected, actual)
    assert sorted(m.path for m in outcome.mismatches) == ["$.headers.Content-Type", "$.method", "$.path"]
