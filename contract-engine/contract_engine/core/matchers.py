"""
Matcher nodes and the matching engine.

An expectation is a JSON-like tree in which any subtree may be replaced by a
matcher node:

- ``Literal(value)``: exact deep equality; also switches type matching off
  again inside a ``TypeMatch``.
- ``TypeMatch(example)``: the actual value must have the same type and shape
  as ``example``. The rule cascades into every plain value nested below it.
- ``Regex(pattern, example)``: the actual value must be a string fully
  matching ``pattern``.

Plain values outside any ``TypeMatch`` are compared literally.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .exceptions import ContractFormatError
from .results import MatchOutcome, Mismatch

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Matcher:
    """Base class for matcher nodes embedded in an expectation tree."""

    def rule(self) -> Dict[str, Any]:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class Literal(Matcher):
    value: Any

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", example_of(self.value))

    def rule(self) -> Dict[str, Any]:
        return {"match": "equality"}

    def describe(self) -> str:
        return f"equal to {self.value!r}"


@dataclass(frozen=True)
class TypeMatch(Matcher):
    example: Any
    min: Optional[int] = None

    def __new__(cls, example: Any = None, min: Optional[int] = None) -> Any:
        # Regex and Literal already fix the type; one rule per path
        if isinstance(example, (Regex, Literal)):
            if min is not None:
                raise ValueError("min only applies to array examples")
            return example
        return super().__new__(cls)

    def __post_init__(self) -> None:
        # TypeMatch(TypeMatch(x)) would put two rules on one path
        if isinstance(self.example, TypeMatch):
            inner = self.example
            object.__setattr__(self, "example", inner.example)
            object.__setattr__(self, "min", self.min if self.min is not None else inner.min)

    def rule(self) -> Dict[str, Any]:
        rule: Dict[str, Any] = {"match": "type"}
        if self.min is not None:
            rule["min"] = self.min
        return rule

    def describe(self) -> str:
        return f"type {type_category(example_of(self.example))}"


@dataclass(frozen=True)
class Regex(Matcher):
    pattern: str
    example: str

    def __post_init__(self) -> None:
        try:
            re.compile(self.pattern)
        except re.error as e:
            raise ValueError(f"Invalid regular expression {self.pattern!r}: {e}") from e

    def matches(self, value: str) -> bool:
        return re.fullmatch(self.pattern, value) is not None

    def rule(self) -> Dict[str, Any]:
        return {"match": "regex", "regex": self.pattern}

    def describe(self) -> str:
        return f"string matching /{self.pattern}/"


# pact-python style names
Like = TypeMatch
Term = Regex


def EachLike(example: Any, min: int = 1) -> TypeMatch:
    """An array of any length >= ``min`` whose elements all look like ``example``."""
    return TypeMatch([example], min=min)


def type_category(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def child_path(path: str, key: Any) -> str:
    if isinstance(key, int):
        return f"{path}[{key}]"
    if _IDENTIFIER.match(str(key)):
        return f"{path}.{key}"
    return f"{path}['{key}']"


def example_of(node: Any) -> Any:
    """Reify a matcher tree into the plain JSON value it describes."""
    if isinstance(node, Regex):
        return node.example
    if isinstance(node, TypeMatch):
        return example_of(node.example)
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Mapping):
        return {key: example_of(value) for key, value in node.items()}
    if isinstance(node, (list, tuple)):
        return [example_of(item) for item in node]
    return node


def match(expected: Any, actual: Any, path: str = "$", allow_unexpected_keys: bool = False) -> MatchOutcome:
    """
    Match ``actual`` against the expectation tree ``expected``.

    All mismatches are collected in one pass; siblings of a failing key are
    still compared.
    """
    mismatches: List[Mismatch] = []
    _match(expected, actual, path, False, allow_unexpected_keys, mismatches)
    return MatchOutcome(mismatches=mismatches)


def _match(expected: Any, actual: Any, path: str, cascade: bool, allow_extra: bool, out: List[Mismatch]) -> None:
    if isinstance(expected, Regex):
        if not isinstance(actual, str):
            out.append(Mismatch(
                path=path,
                message=f"Expected a {expected.describe()} but received {type_category(actual)}",
                expected=expected.describe(),
                actual=actual,
            ))
        elif not expected.matches(actual):
            out.append(Mismatch(
                path=path,
                message=f"Expected a {expected.describe()} but received {actual!r}",
                expected=expected.describe(),
                actual=actual,
            ))
        return

    if isinstance(expected, TypeMatch):
        if expected.min is not None and isinstance(actual, (list, tuple)) and len(actual) < expected.min:
            out.append(Mismatch(
                path=path,
                message=f"Expected at least {expected.min} elements but received {len(actual)}",
                expected=expected.describe(),
                actual=actual,
            ))
        _match(expected.example, actual, path, True, allow_extra, out)
        return

    if isinstance(expected, Literal):
        _match(expected.value, actual, path, False, allow_extra, out)
        return

    expected_type = type_category(expected)
    actual_type = type_category(actual)

    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            out.append(_type_mismatch(path, expected_type, actual))
            return
        for key, sub in expected.items():
            if key not in actual:
                out.append(Mismatch(
                    path=child_path(path, key),
                    message=f"Expected key '{key}' was not present",
                    expected=example_of(sub),
                ))
                continue
            _match(sub, actual[key], child_path(path, key), cascade, allow_extra, out)
        if not cascade and not allow_extra:
            for key in actual:
                if key not in expected:
                    out.append(Mismatch(
                        path=child_path(path, key),
                        message=f"Unexpected key '{key}'",
                        actual=actual[key],
                    ))
        return

    if isinstance(expected, (list, tuple)):
        if not isinstance(actual, (list, tuple)):
            out.append(_type_mismatch(path, expected_type, actual))
            return
        if cascade:
            # Homogeneous collection: every element must look like the first example
            if expected:
                for index, item in enumerate(actual):
                    _match(expected[0], item, child_path(path, index), True, allow_extra, out)
            return
        if len(expected) != len(actual):
            out.append(Mismatch(
                path=path,
                message=f"Expected {len(expected)} elements but received {len(actual)}",
                expected=example_of(expected),
                actual=actual,
            ))
        for index, (sub, item) in enumerate(zip(expected, actual)):
            _match(sub, item, child_path(path, index), False, allow_extra, out)
        return

    if cascade:
        if expected_type != actual_type:
            out.append(_type_mismatch(path, expected_type, actual))
        return

    if not _scalar_equal(expected, actual):
        out.append(Mismatch(
            path=path,
            message=f"Expected {expected!r} but received {actual!r}",
            expected=expected,
            actual=actual,
        ))


def _type_mismatch(path: str, expected_type: str, actual: Any) -> Mismatch:
    return Mismatch(
        path=path,
        message=f"Expected {expected_type} but received {type_category(actual)}",
        expected=f"type {expected_type}",
        actual=actual,
    )


def _scalar_equal(expected: Any, actual: Any) -> bool:
    if isinstance(expected, bool) or isinstance(actual, bool):
        return isinstance(expected, bool) and isinstance(actual, bool) and expected == actual
    if type_category(expected) == "number" and type_category(actual) == "number":
        return expected == actual
    return type(expected) is type(actual) and expected == actual


def _normalise_header(value: str) -> str:
    return re.sub(r"\s*([,;])\s*", r"\1 ", value.strip())


def match_headers(expected: Optional[Mapping[str, Any]], actual: Mapping[str, str], path: str = "$.headers") -> MatchOutcome:
    """Header names compare case-insensitively; headers not in ``expected`` are ignored."""
    mismatches: List[Mismatch] = []
    lowered = {name.lower(): value for name, value in actual.items()}
    for name, rule in (expected or {}).items():
        location = f"{path}.{name}"
        value = lowered.get(name.lower())
        if value is None:
            mismatches.append(Mismatch(
                path=location,
                message=f"Expected header '{name}' was not present",
                expected=example_of(rule),
            ))
        elif isinstance(rule, Matcher):
            _match(rule, value, location, False, True, mismatches)
        elif _normalise_header(str(rule)) != _normalise_header(value):
            mismatches.append(Mismatch(
                path=location,
                message=f"Expected header '{name}' to be {rule!r} but received {value!r}",
                expected=rule,
                actual=value,
            ))
    return MatchOutcome(mismatches=mismatches)


def to_rules(node: Any, path: str = "$") -> Tuple[Any, Dict[str, Dict[str, Any]]]:
    """Split a matcher tree into its example value and a ``{jsonpath: rule}`` table."""
    rules: Dict[str, Dict[str, Any]] = {}
    example = _flatten(node, path, rules)
    return example, rules


def _flatten(node: Any, path: str, rules: Dict[str, Dict[str, Any]]) -> Any:
    if isinstance(node, TypeMatch):
        example = _flatten(node.example, path, rules)
        rules[path] = node.rule()
        return example
    if isinstance(node, Matcher):
        rules[path] = node.rule()
        return example_of(node)
    if isinstance(node, Mapping):
        return {key: _flatten(value, child_path(path, key), rules) for key, value in node.items()}
    if isinstance(node, (list, tuple)):
        return [_flatten(item, child_path(path, index), rules) for index, item in enumerate(node)]
    return node


def from_rules(example: Any, rules: Mapping[str, Mapping[str, Any]], path: str = "$") -> Any:
    """Rebuild the matcher tree flattened by :func:`to_rules`."""
    if isinstance(example, Mapping):
        inner: Any = {key: from_rules(value, rules, child_path(path, key)) for key, value in example.items()}
    elif isinstance(example, list):
        inner = [from_rules(item, rules, child_path(path, index)) for index, item in enumerate(example)]
    else:
        inner = example

    rule = rules.get(path)
    if rule is None:
        return inner
    kind = rule.get("match")
    if kind == "type":
        return TypeMatch(inner, min=rule.get("min"))
    if kind == "regex":
        if "regex" not in rule:
            raise ContractFormatError(f"Regex rule at {path} has no pattern")
        return Regex(rule["regex"], example)
    if kind == "equality":
        return Literal(example)
    raise ContractFormatError(f"Unsupported matching rule '{kind}' at {path}")
