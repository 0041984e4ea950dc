from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .matchers import Literal, Matcher, TypeMatch, example_of


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    @classmethod
    def parse(cls, value: "HttpMethod | str") -> "HttpMethod":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(f"Unsupported HTTP method: {value!r}") from None


@dataclass(frozen=True)
class InteractionRequest:
    """Expected request pattern. ``path`` may be a plain string or a ``Regex`` matcher."""
    method: HttpMethod
    path: Any
    query: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, Any]] = None
    body: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", HttpMethod.parse(self.method))
        object.__setattr__(self, "query", _stringify(self.query))
        object.__setattr__(self, "headers", _stringify(self.headers))
        path = example_of(self.path)
        if not isinstance(path, str) or not path.startswith("/"):
            raise ValueError(f"Request path must be a string starting with '/': {path!r}")

    @property
    def example_path(self) -> str:
        return example_of(self.path)

    @property
    def example_headers(self) -> Dict[str, str]:
        return {name: str(example_of(value)) for name, value in (self.headers or {}).items()}

    @property
    def example_query(self) -> Dict[str, str]:
        return {name: str(example_of(value)) for name, value in (self.query or {}).items()}

    @property
    def has_body(self) -> bool:
        return self.body is not None


@dataclass(frozen=True)
class InteractionResponse:
    status: int
    headers: Optional[Dict[str, Any]] = None
    body: Any = None

    def __post_init__(self) -> None:
        if isinstance(self.status, bool) or not isinstance(self.status, int) or not 100 <= self.status <= 599:
            raise ValueError(f"Invalid HTTP status code: {self.status!r}")
        object.__setattr__(self, "headers", _stringify(self.headers))

    @property
    def example_headers(self) -> Dict[str, str]:
        return {name: str(example_of(value)) for name, value in (self.headers or {}).items()}


@dataclass(frozen=True)
class Interaction:
    description: str
    request: InteractionRequest
    response: InteractionResponse
    provider_state: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.description or not self.description.strip():
            raise ValueError("Interaction description must not be empty")

    @property
    def key(self) -> tuple:
        return (self.description, self.provider_state)


def _stringify(values: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Header and query values travel as strings, including matcher examples."""
    if not values:
        return None
    return {name: _as_string(value) for name, value in values.items()}


def _as_string(value: Any) -> Any:
    if isinstance(value, TypeMatch):
        return value if isinstance(value.example, str) else TypeMatch(str(example_of(value)))
    if isinstance(value, Literal):
        return str(value.value)
    if isinstance(value, Matcher):
        return value
    return str(value)
