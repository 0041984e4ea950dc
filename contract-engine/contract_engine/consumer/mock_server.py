"""
In-process mock provider used while consumer tests run.

Requests are matched against the interactions registered for the current
``verify()`` session. A matching request is answered with the example
response; anything else gets an HTTP 500 problem document describing the
closest candidates, and is remembered so the session can fail afterwards.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from ..core.interaction import HttpMethod, Interaction, InteractionRequest, InteractionResponse
from ..core.matchers import example_of, match, match_headers
from ..core.results import MatchOutcome, Mismatch
from ..core.schemas import ProblemDetails
from ..core.server import BackgroundServer
from ..logging_setup import request_id

logger = logging.getLogger(__name__)


@dataclass
class RecordedRequest:
    method: str
    path: str
    query: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None

    def summary(self) -> str:
        return f"{self.method} {self.path}"


def match_request(expected: InteractionRequest, actual: RecordedRequest) -> MatchOutcome:
    mismatches: List[Mismatch] = []
    if expected.method.value != actual.method.upper():
        mismatches.append(Mismatch(
            path="$.method",
            message=f"Expected method {expected.method.value} but received {actual.method}",
            expected=expected.method.value,
            actual=actual.method,
        ))
    outcome = MatchOutcome(mismatches=mismatches)
    outcome = outcome.merge(match(expected.path, actual.path, "$.path"))
    if expected.query or actual.query:
        outcome = outcome.merge(match(expected.query or {}, actual.query, "$.query"))
    outcome = outcome.merge(match_headers(expected.headers, actual.headers))
    if expected.body is not None:
        outcome = outcome.merge(match(expected.body, actual.body, "$.body"))
    return outcome


class MockState:
    """Thread-safe bookkeeping for one verify() session."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._interactions: List[Interaction] = []
        self._hits: Dict[str, int] = {}
        self._unexpected: List[Dict[str, Any]] = []

    def reset(self, interactions: List[Interaction]) -> None:
        with self._lock:
            self._interactions = list(interactions)
            self._hits = {i.description: 0 for i in self._interactions}
            self._unexpected = []

    @property
    def interactions(self) -> List[Interaction]:
        with self._lock:
            return list(self._interactions)

    def hits(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._hits)

    def unexpected(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._unexpected)

    def handle(self, request: RecordedRequest) -> Tuple[Optional[Interaction], List[Dict[str, Any]]]:
        """Return the matched interaction, or ``None`` plus the closest candidates."""
        with self._lock:
            candidates: List[Tuple[int, Interaction, MatchOutcome]] = []
            for interaction in self._interactions:
                outcome = match_request(interaction.request, request)
                if outcome.matched:
                    self._hits[interaction.description] += 1
                    return interaction, []
                candidates.append((len(outcome.mismatches), interaction, outcome))

            candidates.sort(key=lambda c: c[0])
            closest = [
                {
                    "description": interaction.description,
                    "mismatches": [m.model_dump(mode="json") for m in outcome.mismatches],
                }
                for _, interaction, outcome in candidates[:3]
            ]
            self._unexpected.append({
                "message": f"Unexpected request {request.summary()}",
                "request": {"method": request.method, "path": request.path, "query": request.query},
                "closestMatches": closest,
            })
            return None, closest


def render_response(response: InteractionResponse) -> Response:
    body = example_of(response.body)
    content = b"" if body is None else json.dumps(body).encode("utf-8")
    return Response(
        content=content,
        status_code=response.status,
        headers=response.example_headers,
        media_type="application/json" if body is not None else None,
    )


def create_mock_app(state: MockState) -> FastAPI:
    app = FastAPI(title="Contract mock provider", docs_url=None, redoc_url=None, openapi_url=None)

    @app.api_route("/{full_path:path}", methods=[m.value for m in HttpMethod], include_in_schema=False)
    async def handle(request: Request, full_path: str) -> Response:
        raw = await request.body()
        body: Any = None
        if raw:
            try:
                body = json.loads(raw)
            except ValueError:
                body = raw.decode("utf-8", errors="replace")

        recorded = RecordedRequest(
            method=request.method,
            path=request.url.path,
            query=dict(request.query_params),
            headers=dict(request.headers),
            body=body,
        )
        interaction, closest = state.handle(recorded)
        if interaction is not None:
            logger.debug(f"Mock matched {recorded.summary()} to '{interaction.description}'")
            return render_response(interaction.response)

        rid = request_id()
        logger.warning(
            f"Mock provider received unexpected request {recorded.summary()}",
            extra={"request_id": rid, "headers": recorded.headers},
        )
        problem = ProblemDetails(
            title="Unexpected Request",
            status=500,
            detail=f"No registered interaction matches {recorded.summary()}",
            instance=rid,
            closestMatches=closest,
        )
        return JSONResponse(
            status_code=500,
            content=problem.model_dump(),
            headers={"Content-Type": "application/problem+json"},
        )

    return app


class MockServer(BackgroundServer):
    """Mock provider bound to a local port for the duration of a ``with`` block."""

    def __init__(self, state: MockState, host: str = "127.0.0.1", port: int = 0) -> None:
        super().__init__(create_mock_app(state), host=host, port=port)
        self.state = state
