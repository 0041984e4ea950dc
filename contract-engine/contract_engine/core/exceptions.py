from __future__ import annotations

from typing import Any, Dict, List


class ContractError(Exception):
    pass


class ContractFormatError(ContractError):
    """Raised when a contract document cannot be built, read or validated."""

    def __init__(self, detail: str, issues: list[str] | None = None):
        super().__init__(detail)
        self.detail = detail
        self.issues = issues or []


class UnknownStateError(ContractError):
    def __init__(self, state: str):
        super().__init__(f"No provider state hook registered for '{state}'")
        self.state = state


class ProviderConnectionError(ContractError):
    pass


class MockVerificationError(ContractError):
    """A consumer-side verify() session did not exchange exactly the declared requests."""

    def __init__(self, detail: str, problems: List[Dict[str, Any]] | None = None):
        self.detail = detail
        self.problems = problems or []
        lines = [detail] + [f"  - {p.get('message', p)}" for p in self.problems]
        super().__init__("\n".join(lines))


class UnmatchedInteractionError(MockVerificationError):
    pass


class UnexpectedRequestError(MockVerificationError):
    pass


class RepeatedRequestError(MockVerificationError):
    pass
