from .states import ProviderStateDispatcher, build_state_router
from .verifier import Verifier, verify_contract

__all__ = ["ProviderStateDispatcher", "Verifier", "build_state_router", "verify_contract"]
