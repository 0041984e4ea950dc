from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml
from jsonschema import Draft202012Validator

from .. import __version__
from .exceptions import ContractFormatError
from .interaction import Interaction, InteractionRequest, InteractionResponse
from .matchers import from_rules, to_rules

logger = logging.getLogger(__name__)

SPECIFICATION_VERSION = "3.0.0"
SCHEMA_PATH = Path(__file__).parent.parent / "schemas" / "contract.schema.json"

_validator: Optional[Draft202012Validator] = None


def _get_validator() -> Draft202012Validator:
    global _validator
    if _validator is None:
        with SCHEMA_PATH.open("r", encoding="utf-8") as f:
            _validator = Draft202012Validator(json.load(f))
    return _validator


def validate_document(data: Any, source: str = "<memory>") -> None:
    errors = sorted(_get_validator().iter_errors(data), key=lambda e: list(e.path))
    if errors:
        msgs = [f"{list(e.path)}: {e.message}" for e in errors]
        raise ContractFormatError(f"Contract validation failed for {source}: {'; '.join(msgs)}", issues=msgs)


@dataclass
class ContractDocument:
    """
    Ordered, append-only collection of interactions between one consumer and one provider.

    Adding an interaction whose description is already present replaces the
    earlier definition in place, so re-running a consumer test never
    duplicates entries.
    """
    consumer: str
    provider: str
    interactions: List[Interaction] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.consumer or not self.consumer.strip():
            raise ContractFormatError("Contract consumer name must not be empty")
        if not self.provider or not self.provider.strip():
            raise ContractFormatError("Contract provider name must not be empty")

    @property
    def filename(self) -> str:
        return f"{self.consumer}-{self.provider}.json"

    def add(self, interaction: Interaction) -> None:
        for index, existing in enumerate(self.interactions):
            if existing.description == interaction.description:
                if existing != interaction:
                    logger.info(f"Replacing interaction '{interaction.description}'")
                self.interactions[index] = interaction
                return
        self.interactions.append(interaction)

    def merge(self, interactions: Iterable[Interaction]) -> None:
        for interaction in interactions:
            self.add(interaction)

    def get(self, description: str) -> Optional[Interaction]:
        for interaction in self.interactions:
            if interaction.description == description:
                return interaction
        return None

    def find_conflicts(self) -> List[Tuple[str, Optional[str]]]:
        """Description/provider-state pairs declared more than once with different expectations."""
        seen: Dict[Tuple[str, Optional[str]], Interaction] = {}
        conflicts: List[Tuple[str, Optional[str]]] = []
        for interaction in self.interactions:
            previous = seen.get(interaction.key)
            if previous is None:
                seen[interaction.key] = interaction
            elif previous != interaction and interaction.key not in conflicts:
                conflicts.append(interaction.key)
        return conflicts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consumer": {"name": self.consumer},
            "provider": {"name": self.provider},
            "interactions": [_interaction_to_dict(i) for i in self.interactions],
            "metadata": {
                "pactSpecification": {"version": SPECIFICATION_VERSION},
                "contractEngine": {"version": __version__},
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: str = "<memory>") -> "ContractDocument":
        validate_document(data, source)
        version = data.get("metadata", {}).get("pactSpecification", {}).get("version")
        if version and version.split(".")[0] not in ("2", "3"):
            logger.warning(f"Contract {source} declares specification version {version}; reading it as 3.0.0")
        try:
            interactions = [_interaction_from_dict(item) for item in data["interactions"]]
            document = cls(data["consumer"]["name"], data["provider"]["name"], interactions)
        except (KeyError, TypeError, ValueError) as e:
            raise ContractFormatError(f"Malformed contract {source}: {e}") from e
        for description, state in document.find_conflicts():
            logger.warning(
                f"Contract {source} declares '{description}' (state: {state}) more than once with different expectations"
            )
        return document

    def save(self, target: Path | str) -> Path:
        """Write the document as JSON. A directory target receives ``<consumer>-<provider>.json``."""
        path = Path(target)
        if path.suffix.lower() != ".json":
            path = path / self.filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        logger.info("Contract written", extra={"path": str(path), "count": len(self.interactions)})
        return path

    @classmethod
    def load(cls, path: Path | str) -> "ContractDocument":
        p = Path(path)
        if not p.exists():
            raise ContractFormatError(f"Contract file not found: {p}")
        try:
            with p.open("r", encoding="utf-8") as f:
                if p.suffix.lower() in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ContractFormatError(f"Contract file {p} is not valid: {e}") from e
        document = cls.from_dict(data, str(p))
        logger.info("Contract loaded", extra={"path": str(p), "count": len(document.interactions)})
        return document


def _wrap(rule: Dict[str, Any]) -> Dict[str, Any]:
    return {"matchers": [rule], "combine": "AND"}


def _unwrap(entry: Dict[str, Any]) -> Dict[str, Any]:
    matchers = entry.get("matchers") if isinstance(entry, dict) else None
    if not matchers:
        # v2 documents store the rule directly
        return entry
    if len(matchers) > 1:
        logger.warning(f"Only the first of {len(matchers)} combined matchers is applied")
    return matchers[0]


def _named_values(values: Optional[Dict[str, Any]], category: str, matching: Dict[str, Any], as_list: bool = False) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name, value in (values or {}).items():
        example, rules = to_rules(value)
        out[name] = [example] if as_list else example
        if rules:
            matching.setdefault(category, {})[name] = _wrap(rules["$"])
    return out


def _body_rules(rules: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    return {path: _wrap(rule) for path, rule in rules.items()}


def _request_to_dict(request: InteractionRequest) -> Dict[str, Any]:
    matching: Dict[str, Any] = {}
    path, path_rules = to_rules(request.path)
    data: Dict[str, Any] = {"method": request.method.value, "path": path}
    if path_rules:
        matching["path"] = _wrap(path_rules["$"])
    if request.query:
        data["query"] = _named_values(request.query, "query", matching, as_list=True)
    if request.headers:
        data["headers"] = _named_values(request.headers, "header", matching)
    if request.body is not None:
        data["body"], rules = to_rules(request.body)
        if rules:
            matching["body"] = _body_rules(rules)
    if matching:
        data["matchingRules"] = matching
    return data


def _response_to_dict(response: InteractionResponse) -> Dict[str, Any]:
    matching: Dict[str, Any] = {}
    data: Dict[str, Any] = {"status": response.status}
    if response.headers:
        data["headers"] = _named_values(response.headers, "header", matching)
    if response.body is not None:
        data["body"], rules = to_rules(response.body)
        if rules:
            matching["body"] = _body_rules(rules)
    if matching:
        data["matchingRules"] = matching
    return data


def _interaction_to_dict(interaction: Interaction) -> Dict[str, Any]:
    data: Dict[str, Any] = {"description": interaction.description}
    if interaction.provider_state:
        data["providerStates"] = [{"name": interaction.provider_state}]
    data["request"] = _request_to_dict(interaction.request)
    data["response"] = _response_to_dict(interaction.response)
    return data


def _named_from_dict(values: Optional[Dict[str, Any]], rules: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if not values:
        return None
    out: Dict[str, Any] = {}
    for name, value in values.items():
        if isinstance(value, list):
            if len(value) != 1:
                raise ValueError(f"Multi-valued query parameter '{name}' is not supported")
            value = value[0]
        rule = rules.get(name)
        out[name] = from_rules(value, {"$": _unwrap(rule)}) if rule else value
    return out


def _body_from_dict(data: Dict[str, Any], matching: Dict[str, Any]) -> Any:
    if "body" not in data:
        return None
    rules = {path: _unwrap(entry) for path, entry in matching.get("body", {}).items()}
    return from_rules(data["body"], rules)


def _interaction_from_dict(data: Dict[str, Any]) -> Interaction:
    req = data["request"]
    req_rules = req.get("matchingRules", {})
    path: Any = req["path"]
    if "path" in req_rules:
        path = from_rules(path, {"$": _unwrap(req_rules["path"])})
    request = InteractionRequest(
        method=req["method"],
        path=path,
        query=_named_from_dict(req.get("query"), req_rules.get("query", {})),
        headers=_named_from_dict(req.get("headers"), req_rules.get("header", {})),
        body=_body_from_dict(req, req_rules),
    )

    resp = data["response"]
    resp_rules = resp.get("matchingRules", {})
    response = InteractionResponse(
        status=resp["status"],
        headers=_named_from_dict(resp.get("headers"), resp_rules.get("header", {})),
        body=_body_from_dict(resp, resp_rules),
    )

    state = data.get("providerState")
    states = data.get("providerStates") or []
    if not state and states:
        if len(states) > 1:
            logger.warning(f"Interaction '{data['description']}' declares {len(states)} provider states; using the first")
        state = states[0]["name"]

    return Interaction(
        description=data["description"],
        provider_state=state or None,
        request=request,
        response=response,
    )
