import asyncio
import json
import socket

import httpx
import pytest
import requests

from contract_engine.consumer import ContractBuilder
from contract_engine.core.contract import ContractDocument
from contract_engine.core.exceptions import (
    RepeatedRequestError,
    UnexpectedRequestError,
    UnmatchedInteractionError,
)
from contract_engine.core.matchers import EachLike, Like
from contract_engine.demo.client import ProductApiClient

PRODUCT = {"id": 9, "type": "CREDIT_CARD", "name": "GEM Visa", "version": "v2"}


@pytest.fixture()
def builder(tmp_path):
    return ContractBuilder("ApiClient", "ProductService", contract_dir=tmp_path)


def declare_all_products(builder):
    return (builder
            .upon_receiving("A valid request for all products")
            .given("products exist")
            .with_request("GET", "/api/products")
            .will_respond_with(200, body=EachLike(PRODUCT)))


def port_is_free(port):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind(("127.0.0.1", port))
        except OSError:
            return False
        return True


def test_successful_session_writes_contract(builder, tmp_path):
    declare_all_products(builder)
    response = builder.verify(lambda url: ProductApiClient(url).get_all_products())
    assert response.status_code == 200
    assert response.json() == [PRODUCT]

    path = tmp_path / "ApiClient-ProductService.json"
    assert builder.contract_path == path
    data = json.loads(path.read_text(encoding="utf-8"))
    assert [i["description"] for i in data["interactions"]] == ["A valid request for all products"]
    assert data["interactions"][0]["response"]["matchingRules"]["body"]["$"]["matchers"] == [{"match": "type", "min": 1}]
    assert builder.pending == []


def test_sessions_accumulate_into_one_document(builder):
    declare_all_products(builder)
    builder.verify(lambda url: ProductApiClient(url).get_all_products())

    (builder
     .upon_receiving("A request for a missing product")
     .given("no products exist")
     .with_request("GET", "/api/products/99")
     .will_respond_with(404))
    builder.verify(lambda url: ProductApiClient(url).get_product(99))

    document = ContractDocument.load(builder.contract_path)
    assert [i.description for i in document.interactions] == [
        "A valid request for all products",
        "A request for a missing product",
    ]


def test_unexpected_request_fails_session(builder):
    declare_all_products(builder)

    def call(url):
        client = ProductApiClient(url)
        client.get_all_products()
        return client.get_product(1)

    with pytest.raises(UnexpectedRequestError) as excinfo:
        builder.verify(call)
    assert "GET /api/products/1" in str(excinfo.value)
    assert not builder.contract_path.exists()


def test_unused_interaction_fails_session(builder):
    declare_all_products(builder)
    (builder
     .upon_receiving("A request for product 9")
     .with_request("GET", "/api/products/9")
     .will_respond_with(200, body=Like(PRODUCT)))

    with pytest.raises(UnmatchedInteractionError) as excinfo:
        builder.verify(lambda url: ProductApiClient(url).get_all_products())
    assert excinfo.value.problems[0]["description"] == "A request for product 9"
    assert not builder.contract_path.exists()


def test_repeated_request_fails_session(builder):
    declare_all_products(builder)

    def call(url):
        client = ProductApiClient(url)
        client.get_all_products()
        client.get_all_products()

    with pytest.raises(RepeatedRequestError):
        builder.verify(call)


def test_callback_exception_propagates_and_releases_port(tmp_path):
    builder = ContractBuilder("ApiClient", "ProductService", contract_dir=tmp_path)
    declare_all_products(builder)
    seen = {}

    def boom(url):
        seen["port"] = int(url.rsplit(":", 1)[1])
        raise RuntimeError("client blew up")

    with pytest.raises(RuntimeError, match="client blew up"):
        builder.verify(boom)
    assert builder.uri is None
    assert builder.pending == []
    assert port_is_free(seen["port"])


def test_chained_response_builder(builder):
    (builder
     .upon_receiving("A request for product 9")
     .given("products exist")
     .with_request("GET", "/api/products/9", headers={"Accept": "application/json"})
     .will_respond()
     .with_status(200)
     .with_header("Content-Type", "application/json")
     .with_json_body(Like(PRODUCT)))

    assert len(builder.pending) == 1
    interaction = builder.pending[0]
    assert interaction.response.status == 200
    assert interaction.response.headers == {"Content-Type": "application/json"}

    def call(url):
        return requests.get(f"{url}/api/products/9", headers={"Accept": "application/json"}, timeout=5)

    assert builder.verify(call).json() == PRODUCT


def test_response_requires_request(builder):
    with pytest.raises(ValueError):
        builder.upon_receiving("Incomplete").will_respond_with(200)


def test_verify_async_with_httpx(builder):
    declare_all_products(builder)

    async def call(url):
        async with httpx.AsyncClient() as client:
            return await client.get(f"{url}/api/products")

    response = asyncio.run(builder.verify_async(call))
    assert response.json() == [PRODUCT]
    assert builder.contract_path.exists()


def test_coroutine_callback_is_awaited_by_verify(builder):
    declare_all_products(builder)

    async def call(url):
        async with httpx.AsyncClient() as client:
            return (await client.get(f"{url}/api/products")).status_code

    assert builder.verify(call) == 200


def test_default_mode_extends_existing_contract_file(tmp_path):
    first = ContractBuilder("ApiClient", "ProductService", contract_dir=tmp_path)
    declare_all_products(first)
    first.verify(lambda url: ProductApiClient(url).get_all_products())

    second = ContractBuilder("ApiClient", "ProductService", contract_dir=tmp_path)
    (second
     .upon_receiving("A request for product 9")
     .with_request("GET", "/api/products/9")
     .will_respond_with(200, body=Like(PRODUCT)))
    second.verify(lambda url: ProductApiClient(url).get_product(9))

    descriptions = [i.description for i in ContractDocument.load(second.contract_path).interactions]
    assert descriptions == ["A valid request for all products", "A request for product 9"]


def test_overwrite_mode_replaces_existing_file(tmp_path):
    first = ContractBuilder("ApiClient", "ProductService", contract_dir=tmp_path)
    declare_all_products(first)
    first.verify(lambda url: ProductApiClient(url).get_all_products())

    second = ContractBuilder("ApiClient", "ProductService", contract_dir=tmp_path, write_mode="overwrite")
    (second
     .upon_receiving("A request for product 9")
     .with_request("GET", "/api/products/9")
     .will_respond_with(200, body=Like(PRODUCT)))
    second.verify(lambda url: ProductApiClient(url).get_product(9))

    descriptions = [i.description for i in ContractDocument.load(second.contract_path).interactions]
    assert descriptions == ["A request for product 9"]


def test_unknown_write_mode(tmp_path):
    with pytest.raises(ValueError):
        ContractBuilder("ApiClient", "ProductService", contract_dir=tmp_path, write_mode="append")


def test_context_manager_keeps_one_server_across_sessions(tmp_path):
    with ContractBuilder("ApiClient", "ProductService", contract_dir=tmp_path) as builder:
        uri = builder.start()
        declare_all_products(builder)
        builder.verify(lambda url: ProductApiClient(url).get_all_products())
        assert builder.uri == uri
    assert builder.uri is None
    assert builder.contract_path.exists()


def test_builders_created_together_both_land_in_file(tmp_path):
    first = ContractBuilder("ApiClient", "ProductService", contract_dir=tmp_path)
    second = ContractBuilder("ApiClient", "ProductService", contract_dir=tmp_path)

    declare_all_products(first)
    first.verify(lambda url: ProductApiClient(url).get_all_products())
    (second
     .upon_receiving("A request for product 9")
     .with_request("GET", "/api/products/9")
     .will_respond_with(200, body=Like(PRODUCT)))
    second.verify(lambda url: ProductApiClient(url).get_product(9))

    descriptions = [i.description for i in ContractDocument.load(tmp_path / "ApiClient-ProductService.json").interactions]
    assert descriptions == ["A valid request for all products", "A request for product 9"]


def test_verify_async_keeps_event_loop_running(builder):
    declare_all_products(builder)

    async def scenario():
        ticks = 0
        done = asyncio.Event()

        async def ticker():
            nonlocal ticks
            while not done.is_set():
                ticks += 1
                await asyncio.sleep(0.001)

        task = asyncio.create_task(ticker())
        seen = {}

        async def call(url):
            seen["ticks"] = ticks
            async with httpx.AsyncClient() as client:
                return await client.get(f"{url}/api/products")

        try:
            await builder.verify_async(call)
        finally:
            done.set()
            await task
        return seen["ticks"]

    assert asyncio.run(scenario()) >= 1
