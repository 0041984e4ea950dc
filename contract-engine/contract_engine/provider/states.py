"""
Provider state hooks for contract verification.

The Verifier announces the state each interaction expects by POSTing
``{"state": "<name>"}`` to the provider's state endpoint before replaying
the request. The dispatcher maps that name to a callback which rearranges
the provider's backing store.
"""

import logging
import threading
from contextlib import AbstractContextManager
from typing import Callable, Dict, List, Optional, Protocol

from fastapi import APIRouter, HTTPException, status

from ..config import get_settings
from ..core.exceptions import UnknownStateError
from ..core.schemas import ProblemDetails, ProviderStateList, ProviderStateRequest, ProviderStateResponse

logger = logging.getLogger(__name__)

StateHook = Callable[[], None]


class ExclusiveStore(Protocol):
    def exclusive(self) -> AbstractContextManager: ...


class ProviderStateDispatcher:
    """Registered table of provider state name -> zero-argument setup callback."""

    def __init__(self, store: Optional[ExclusiveStore] = None) -> None:
        self._store = store
        self._lock = threading.RLock()
        self._hooks: Dict[str, StateHook] = {}

    def register(self, name: str, hook: StateHook) -> None:
        if not name:
            raise ValueError("Provider state name must not be empty")
        if name in self._hooks:
            logger.warning(f"Provider state '{name}' re-registered; previous hook replaced")
        self._hooks[name] = hook

    def state(self, name: str) -> Callable[[StateHook], StateHook]:
        """Decorator form of :meth:`register`."""
        def decorator(hook: StateHook) -> StateHook:
            self.register(name, hook)
            return hook
        return decorator

    def states(self) -> List[str]:
        return sorted(self._hooks)

    def dispatch(self, name: str) -> None:
        hook = self._hooks.get(name)
        if hook is None:
            raise UnknownStateError(name)
        # Hold the store's write lock so requests never see a half-applied state
        guard = self._store.exclusive() if self._store is not None else self._lock
        with guard:
            hook()
        logger.info(f"Provider state '{name}' applied")


def build_state_router(
    dispatcher: ProviderStateDispatcher,
    strict: Optional[bool] = None,
    path: str = "/provider-states",
) -> APIRouter:
    """
    Expose ``dispatcher`` over HTTP.

    Unknown state names are logged and answered with 200 unless ``strict``
    (default: ``STRICT_PROVIDER_STATES``) is set, in which case they get a
    400 problem document.
    """
    if strict is None:
        strict = get_settings().STRICT_PROVIDER_STATES

    router = APIRouter(tags=["provider-states"])

    @router.post(
        path,
        response_model=ProviderStateResponse,
        status_code=status.HTTP_200_OK,
        summary="Set up provider state",
    )
    def setup_provider_state(request: ProviderStateRequest) -> ProviderStateResponse:
        if not request.state:
            return ProviderStateResponse(state=None, status="skipped", message="No provider state given")

        if request.params:
            logger.debug(f"Ignoring parameters for provider state '{request.state}': {request.params}")

        try:
            dispatcher.dispatch(request.state)
        except UnknownStateError as e:
            logger.error(f"Invalid provider state '{request.state}': {e}")
            if strict:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=ProblemDetails(
                        title="Invalid Provider State",
                        status=400,
                        detail=str(e),
                    ).model_dump(),
                )
            return ProviderStateResponse(state=request.state, status="unknown", message=str(e))
        except Exception as e:
            logger.error(f"Failed to set up provider state '{request.state}': {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=ProblemDetails(
                    title="Provider State Setup Error",
                    status=500,
                    detail=f"Failed to configure provider state: {e}",
                ).model_dump(),
            )

        return ProviderStateResponse(
            state=request.state,
            status="success",
            message=f"Provider state '{request.state}' configured successfully",
        )

    @router.get(path, response_model=ProviderStateList, summary="List available provider states")
    def list_provider_states() -> ProviderStateList:
        names = dispatcher.states()
        return ProviderStateList(available_states=names, total_states=len(names))

    return router
