from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProblemDetails(BaseModel):
    """
    RFC 7807 Problem Details for HTTP APIs.

    Extension members (e.g. the mock server's ``closestMatches``) are allowed.
    """
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = Field(
        "about:blank",
        description="A URI reference that identifies the problem type"
    )
    title: Optional[str] = Field(
        None,
        description="A short, human-readable summary of the problem type"
    )
    status: Optional[int] = Field(
        None,
        description="The HTTP status code"
    )
    detail: Optional[str] = Field(
        None,
        description="A human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        None,
        description="A URI reference that identifies the specific occurrence"
    )


class ProviderStateRequest(BaseModel):
    """Body of the state-setup call issued by the Verifier before replaying an interaction."""

    state: Optional[str] = Field(None, description="Name of the provider state to set up")
    params: Dict[str, Any] = Field(default_factory=dict, description="State parameters")


class ProviderStateResponse(BaseModel):
    state: Optional[str] = None
    status: str = "success"
    message: Optional[str] = None


class ProviderStateList(BaseModel):
    available_states: List[str]
    total_states: int
