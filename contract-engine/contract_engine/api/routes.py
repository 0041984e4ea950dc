from __future__ import annotations

import logging

from fastapi import APIRouter

from .. import __version__
from ..config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/healthz",
    tags=["health"],
    summary="Health Check",
    description="Liveness probe used by the Verifier and CI before verification starts",
    responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {"status": "ok"}
                }
            }
        }
    }
)
def healthz() -> dict:
    return {"status": "ok"}


@router.get(
    "/version",
    tags=["health"],
    summary="Service Version",
    description="Returns the service name and version information",
    responses={
        200: {
            "description": "Service version information",
            "content": {
                "application/json": {
                    "example": {
                        "service": "contract-engine",
                        "version": "0.1.0"
                    }
                }
            }
        }
    }
)
def version() -> dict:
    """Get service version and build information."""
    return {"service": get_settings().SERVICE_NAME, "version": __version__}
