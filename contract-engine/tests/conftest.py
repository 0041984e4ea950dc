import os

import pytest
from fastapi.testclient import TestClient

from contract_engine.core.server import BackgroundServer
from contract_engine.demo.api import create_provider_app, register_default_states
from contract_engine.demo.products import ProductRepository
from contract_engine.provider.states import ProviderStateDispatcher


@pytest.fixture(scope="session", autouse=True)
def set_env(tmp_path_factory):
    os.environ.setdefault("LOG_LEVEL", "INFO")
    os.environ.setdefault("CONTRACT_DIR", str(tmp_path_factory.mktemp("pacts")))
    os.environ.setdefault("MOCK_SERVER_HOST", "127.0.0.1")
    os.environ.setdefault("MOCK_SERVER_PORT", "0")
    os.environ.setdefault("REQUEST_TIMEOUT", "5")


@pytest.fixture()
def repository():
    return ProductRepository()


@pytest.fixture()
def dispatcher(repository):
    d = ProviderStateDispatcher(repository)
    register_default_states(d, repository)
    return d


@pytest.fixture()
def provider_app(repository, dispatcher):
    return create_provider_app(repository, dispatcher, strict_states=False)


@pytest.fixture()
def client(provider_app):
    return TestClient(provider_app)


@pytest.fixture()
def live_provider(provider_app):
    """The sample provider listening on a real ephemeral port."""
    with BackgroundServer(provider_app) as server:
        yield server


def pytest_configure(config):
    config.addinivalue_line("markers", "consumer: mark test as a consumer contract test")
    config.addinivalue_line("markers", "provider: mark test as a provider verification test")
