"""
Provider verification.

Replays every interaction of a contract against a running provider, in
document order and one at a time: each state-setup call mutates provider
data that the very next request reads. A failing interaction never stops
the run; every interaction produces exactly one ``VerificationResult``.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import httpx

from ..config import get_settings
from ..core.contract import ContractDocument
from ..core.interaction import Interaction, InteractionResponse
from ..core.matchers import example_of, match, match_headers
from ..core.results import Mismatch, Outcome, VerificationReport, VerificationResult

logger = logging.getLogger(__name__)

ContractSource = Union[ContractDocument, Path, str]

_MAX_DETAIL_MISMATCHES = 3


class Verifier:
    def __init__(
        self,
        provider_base_url: str,
        state_setup_url: Optional[str] = None,
        timeout: Optional[float] = None,
        allow_unexpected_keys: Optional[bool] = None,
        client: Optional[httpx.Client] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        settings = get_settings()
        self.provider_base_url = provider_base_url.rstrip("/")
        self.state_setup_url = state_setup_url
        self.timeout = settings.REQUEST_TIMEOUT if timeout is None else timeout
        self.allow_unexpected_keys = (
            settings.ALLOW_UNEXPECTED_KEYS if allow_unexpected_keys is None else allow_unexpected_keys
        )
        self.headers = headers or {}
        self._client = client

    @contextmanager
    def _http(self) -> Iterator[httpx.Client]:
        if self._client is not None:
            yield self._client
            return
        with httpx.Client(timeout=self.timeout) as client:
            yield client

    def verify(self, contract_source: ContractSource) -> VerificationReport:
        document = (
            contract_source if isinstance(contract_source, ContractDocument)
            else ContractDocument.load(contract_source)
        )
        logger.info(
            f"Verifying {len(document.interactions)} interactions between "
            f"{document.consumer} and {document.provider} against {self.provider_base_url}"
        )

        results: List[VerificationResult] = []
        with self._http() as client:
            for interaction in document.interactions:
                results.append(self.verify_interaction(client, interaction))

        report = VerificationReport(consumer=document.consumer, provider=document.provider, results=results)
        logger.info(
            "Verification finished",
            extra={"total": report.total, "passed": report.passed, "failed": report.failed},
        )
        return report

    def verify_interaction(self, client: httpx.Client, interaction: Interaction) -> VerificationResult:
        started = time.perf_counter()
        result = self._replay(client, interaction)
        result.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        if result.passed:
            logger.info(f"Interaction '{interaction.description}' passed")
        else:
            logger.warning(
                f"Interaction '{interaction.description}' failed: {result.failure_detail}",
                extra={"outcome": result.outcome.value},
            )
        return result

    def _replay(self, client: httpx.Client, interaction: Interaction) -> VerificationResult:
        def failed(outcome: Outcome, detail: str, mismatches: Optional[List[Mismatch]] = None) -> VerificationResult:
            return VerificationResult(
                description=interaction.description,
                provider_state=interaction.provider_state,
                outcome=outcome,
                failure_detail=detail,
                mismatches=mismatches or [],
            )

        if interaction.provider_state:
            error = self._setup_state(client, interaction.provider_state)
            if error:
                return failed(Outcome.SETUP_FAILED, error)

        request = interaction.request
        kwargs: Dict[str, Any] = {}
        if request.body is not None:
            kwargs["json"] = example_of(request.body)
        url = f"{self.provider_base_url}{request.example_path}"
        try:
            response = client.request(
                request.method.value,
                url,
                params=request.example_query or None,
                headers={**self.headers, **request.example_headers},
                **kwargs,
            )
        except httpx.TimeoutException:
            return failed(Outcome.CONNECTION_FAILURE, f"{request.method.value} {url} timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            return failed(Outcome.CONNECTION_FAILURE, f"{request.method.value} {url} failed: {type(e).__name__}: {e}")

        mismatches = self.compare(interaction.response, response)
        if mismatches:
            shown = "; ".join(m.describe() for m in mismatches[:_MAX_DETAIL_MISMATCHES])
            more = len(mismatches) - _MAX_DETAIL_MISMATCHES
            if more > 0:
                shown += f"; and {more} more"
            return failed(Outcome.MISMATCH, f"{len(mismatches)} mismatch(es): {shown}", mismatches)

        return VerificationResult(
            description=interaction.description,
            provider_state=interaction.provider_state,
            outcome=Outcome.PASSED,
        )

    def _setup_state(self, client: httpx.Client, state: str) -> Optional[str]:
        if not self.state_setup_url:
            logger.warning(f"Interaction requires provider state '{state}' but no state setup URL is configured")
            return None
        try:
            response = client.post(self.state_setup_url, json={"state": state})
        except httpx.HTTPError as e:
            return f"State setup call for '{state}' failed: {type(e).__name__}: {e}"
        if not response.is_success:
            return f"State setup call for '{state}' returned HTTP {response.status_code}"
        return None

    def compare(self, expected: InteractionResponse, response: httpx.Response) -> List[Mismatch]:
        mismatches: List[Mismatch] = []
        if response.status_code != expected.status:
            mismatches.append(Mismatch(
                path="$.status",
                message=f"Expected status {expected.status} but received {response.status_code}",
                expected=expected.status,
                actual=response.status_code,
            ))

        mismatches.extend(match_headers(expected.headers, response.headers).mismatches)

        if expected.body is not None:
            try:
                actual_body = response.json()
            except ValueError:
                mismatches.append(Mismatch(
                    path="$.body",
                    message="Expected a JSON body but the response could not be parsed",
                    expected=example_of(expected.body),
                    actual=response.text[:500],
                ))
            else:
                outcome = match(expected.body, actual_body, "$.body", allow_unexpected_keys=self.allow_unexpected_keys)
                mismatches.extend(outcome.mismatches)
        return mismatches


def verify_contract(
    contract_source: ContractSource,
    provider_base_url: str,
    state_setup_url: Optional[str] = None,
    **kwargs: Any,
) -> VerificationReport:
    return Verifier(provider_base_url, state_setup_url, **kwargs).verify(contract_source)
