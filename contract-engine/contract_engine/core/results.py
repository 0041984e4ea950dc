"""
Structured outcomes for contract matching and provider verification.

Every failure the Verifier can observe is reported as a value, not raised,
so a single run always produces one result per interaction.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field


class Outcome(str, Enum):
    """Per-interaction verification outcome."""
    PASSED = "passed"
    MISMATCH = "mismatch"
    SETUP_FAILED = "setup_failed"
    CONNECTION_FAILURE = "connection_failure"


class Mismatch(BaseModel):
    """
    One discrepancy found while matching an actual value against an expectation.

    ``path`` is a JSONPath-style location rooted at the compared part of the
    exchange, e.g. ``$.body[0].id`` or ``$.headers.Content-Type``.
    """
    path: str
    message: str
    expected: Any = None
    actual: Any = None

    def describe(self) -> str:
        return f"{self.path}: {self.message}"


class MatchOutcome(BaseModel):
    mismatches: List[Mismatch] = Field(default_factory=list)

    @property
    def matched(self) -> bool:
        return not self.mismatches

    def merge(self, other: "MatchOutcome") -> "MatchOutcome":
        return MatchOutcome(mismatches=[*self.mismatches, *other.mismatches])


class VerificationResult(BaseModel):
    """Result of replaying one interaction against a live provider."""
    description: str
    provider_state: Optional[str] = None
    outcome: Outcome
    failure_detail: Optional[str] = None
    mismatches: List[Mismatch] = Field(default_factory=list)
    duration_ms: Optional[float] = None

    @computed_field  # type: ignore[misc]
    @property
    def passed(self) -> bool:
        return self.outcome == Outcome.PASSED

    def summary_line(self) -> str:
        state = f" given '{self.provider_state}'" if self.provider_state else ""
        status = "PASS" if self.passed else f"FAIL [{self.outcome.value}]"
        line = f"{status} {self.description}{state}"
        if self.failure_detail:
            line += f" - {self.failure_detail}"
        return line


class VerificationReport(BaseModel):
    consumer: str
    provider: str
    results: List[VerificationResult] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def total(self) -> int:
        return len(self.results)

    @computed_field  # type: ignore[misc]
    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @computed_field  # type: ignore[misc]
    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def success(self) -> bool:
        return self.failed == 0

    def summary_lines(self) -> List[str]:
        lines = [f"Verifying contract between {self.consumer} and {self.provider}"]
        for result in self.results:
            lines.append(f"  {result.summary_line()}")
            for mismatch in result.mismatches:
                lines.append(f"      {mismatch.describe()}")
        lines.append(f"{self.total} interactions, {self.passed} passed, {self.failed} failed")
        return lines

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
