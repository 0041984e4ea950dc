from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from .api.routes import router
from .config import get_settings
from .demo.api import create_provider_app, register_default_states
from .demo.products import ProductRepository
from .logging_setup import setup_logging
from .provider.states import ProviderStateDispatcher


def create_app(repository: Optional[ProductRepository] = None) -> FastAPI:
    """
    Build the sample product provider.

    The repository is owned here and handed to both the product routes and
    the provider-state hooks, which are only mounted when
    ``PROVIDER_STATES_ENABLED`` is set.
    """
    setup_logging()
    logger = logging.getLogger(__name__)
    settings = get_settings()

    repository = repository if repository is not None else ProductRepository()
    dispatcher = None
    if settings.PROVIDER_STATES_ENABLED:
        dispatcher = ProviderStateDispatcher(repository)
        register_default_states(dispatcher, repository)
    else:
        logger.info("Provider state endpoint disabled")

    app = create_provider_app(repository, dispatcher, strict_states=settings.STRICT_PROVIDER_STATES)

    app.include_router(router)
    return app


app = create_app()
