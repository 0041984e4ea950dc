"""
Consumer-side contract builder.

Consumer tests declare the interactions they rely on, exercise their real
client code against an in-process mock provider, and on success the
interactions are recorded into the contract file shared with the provider.

    builder = ContractBuilder("ApiClient", "ProductService", contract_dir="pacts")
    (builder
     .upon_receiving("A valid request for all products")
     .given("products exist")
     .with_request("GET", "/api/products")
     .will_respond_with(200, body=EachLike({"id": 9, "name": "GEM Visa"})))
    builder.verify(lambda url: ProductApiClient(url).get_all_products())
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..config import get_settings
from ..core.contract import ContractDocument
from ..core.exceptions import (
    RepeatedRequestError,
    UnexpectedRequestError,
    UnmatchedInteractionError,
)
from ..core.interaction import HttpMethod, Interaction, InteractionRequest, InteractionResponse
from .mock_server import MockServer, MockState

logger = logging.getLogger(__name__)

Callback = Callable[[str], Any]
AsyncCallback = Callable[[str], Awaitable[Any]]


@dataclass(frozen=True)
class ResponseBuilder:
    """Immutable response step; every call yields a complete interaction and registers it."""
    owner: "ContractBuilder" = field(repr=False, compare=False)
    description: str
    provider_state: Optional[str]
    request: InteractionRequest
    response: InteractionResponse

    def build(self) -> Interaction:
        return Interaction(
            description=self.description,
            provider_state=self.provider_state,
            request=self.request,
            response=self.response,
        )

    def _next(self, response: InteractionResponse) -> "ResponseBuilder":
        step = replace(self, response=response)
        self.owner.register(step.build())
        return step

    def with_status(self, status: int) -> "ResponseBuilder":
        return self._next(replace(self.response, status=status))

    def with_header(self, name: str, value: Any) -> "ResponseBuilder":
        headers = dict(self.response.headers or {})
        headers[name] = value
        return self._next(replace(self.response, headers=headers))

    def with_json_body(self, body: Any) -> "ResponseBuilder":
        return self._next(replace(self.response, body=body))


@dataclass(frozen=True)
class InteractionBuilder:
    owner: "ContractBuilder" = field(repr=False, compare=False)
    description: str
    provider_state: Optional[str] = None
    request: Optional[InteractionRequest] = None

    def given(self, provider_state: str) -> "InteractionBuilder":
        return replace(self, provider_state=provider_state)

    def with_request(
        self,
        method: Union[HttpMethod, str],
        path: Any,
        headers: Optional[Dict[str, Any]] = None,
        body: Any = None,
        query: Optional[Dict[str, Any]] = None,
    ) -> "InteractionBuilder":
        request = InteractionRequest(method=method, path=path, query=query, headers=headers, body=body)
        return replace(self, request=request)

    def _require_request(self) -> InteractionRequest:
        if self.request is None:
            raise ValueError(f"Interaction '{self.description}' needs with_request() before its response")
        return self.request

    def will_respond(self) -> ResponseBuilder:
        """Start a chained response definition that defaults to ``200`` with no body."""
        step = ResponseBuilder(
            owner=self.owner,
            description=self.description,
            provider_state=self.provider_state,
            request=self._require_request(),
            response=InteractionResponse(status=200),
        )
        self.owner.register(step.build())
        return step

    def will_respond_with(self, status: int, headers: Optional[Dict[str, Any]] = None, body: Any = None) -> Interaction:
        interaction = Interaction(
            description=self.description,
            provider_state=self.provider_state,
            request=self._require_request(),
            response=InteractionResponse(status=status, headers=headers, body=body),
        )
        self.owner.register(interaction)
        return interaction


class ContractBuilder:
    """
    Accumulates interactions for one consumer/provider pair.

    Interactions registered since the last ``verify()`` form the pending
    session. ``verify()`` runs the caller's code against the mock provider
    and, on success, merges the session into the contract document and
    writes it to ``contract_dir``.
    """

    def __init__(
        self,
        consumer: str,
        provider: str,
        contract_dir: Optional[Union[str, Path]] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        write_mode: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self.contract_dir = Path(contract_dir) if contract_dir is not None else settings.contract_dir()
        self.host = host or settings.MOCK_SERVER_HOST
        self.port = settings.MOCK_SERVER_PORT if port is None else port
        self.write_mode = write_mode or settings.CONTRACT_WRITE_MODE
        if self.write_mode not in ("overwrite", "merge"):
            raise ValueError(f"Unknown contract write mode: {self.write_mode!r}")

        self.document = ContractDocument(consumer, provider)

        self._pending: List[Interaction] = []
        self._state = MockState()
        self._server: Optional[MockServer] = None
        self.uri: Optional[str] = None

    @property
    def contract_path(self) -> Path:
        return self.contract_dir / self.document.filename

    @property
    def pending(self) -> List[Interaction]:
        return list(self._pending)

    def upon_receiving(self, description: str) -> InteractionBuilder:
        if not description or not description.strip():
            raise ValueError("Interaction description must not be empty")
        return InteractionBuilder(owner=self, description=description)

    def register(self, interaction: Interaction) -> None:
        """Add or replace (by description) an interaction in the pending session."""
        for index, existing in enumerate(self._pending):
            if existing.description == interaction.description:
                self._pending[index] = interaction
                return
        self._pending.append(interaction)

    def start(self) -> str:
        if self._server is None:
            server = MockServer(self._state, host=self.host, port=self.port)
            server.start()
            self._server = server
            self.uri = self._server.url
            logger.info(f"Mock provider for {self.document.provider} listening on {self.uri}")
        return self.uri

    def stop(self) -> None:
        if self._server is not None:
            try:
                self._server.stop()
            finally:
                self._server = None
                self.uri = None

    def verify(self, callback: Callback) -> Any:
        """
        Run ``callback(base_url)`` against the mock provider and check the session.

        Raises:
            UnexpectedRequestError: a request matched no registered interaction
            UnmatchedInteractionError: a registered interaction received no request
            RepeatedRequestError: an interaction was requested more than once
        """
        self._state.reset(self._pending)
        started_here = self._server is None
        uri = self.start()
        try:
            result = callback(uri)
            if inspect.iscoroutine(result):
                result = asyncio.run(result)
        finally:
            self._pending = []
            if started_here:
                self.stop()
        self._check_session()
        return result

    async def verify_async(self, callback: AsyncCallback) -> Any:
        """Async form of :meth:`verify`; server start and stop run off the event loop."""
        self._state.reset(self._pending)
        started_here = self._server is None
        uri = await asyncio.to_thread(self.start)
        try:
            result = callback(uri)
            if inspect.isawaitable(result):
                result = await result
        finally:
            self._pending = []
            if started_here:
                await asyncio.to_thread(self.stop)
        self._check_session()
        return result

    def _check_session(self) -> None:
        session = self._state.interactions
        unexpected = self._state.unexpected()
        hits = self._state.hits()

        if unexpected:
            raise UnexpectedRequestError(
                f"Mock provider received {len(unexpected)} unexpected request(s)", problems=unexpected
            )

        missing = [
            {"description": i.description, "message": f"No matching request received for '{i.description}'"}
            for i in session if hits.get(i.description, 0) == 0
        ]
        if missing:
            raise UnmatchedInteractionError(
                f"{len(missing)} interaction(s) received no matching request", problems=missing
            )

        repeated = [
            {"description": i.description, "message": f"'{i.description}' was requested {hits[i.description]} times"}
            for i in session if hits.get(i.description, 0) > 1
        ]
        if repeated:
            raise RepeatedRequestError(
                f"{len(repeated)} interaction(s) expected exactly one request", problems=repeated
            )

        self.document.merge(session)
        self.write_contract()

    def write_contract(self) -> Path:
        """
        Write the document to ``contract_path``.

        In ``merge`` mode (the default) the file on disk is re-read and this
        builder's interactions are merged into it by description.
        ``overwrite`` replaces the file with this builder's document.
        """
        document = self.document
        if self.write_mode == "merge" and self.contract_path.exists():
            document = ContractDocument.load(self.contract_path)
            document.merge(self.document.interactions)
            logger.info(f"Merging into existing contract {self.contract_path}")
        return document.save(self.contract_path)

    def finalize(self) -> Path:
        """Stop the mock provider if it is still running and write the accumulated contract."""
        self.stop()
        return self.write_contract()

    def __enter__(self) -> "ContractBuilder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.finalize()
        else:
            self.stop()
