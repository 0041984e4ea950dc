from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, status

from ..provider.states import ProviderStateDispatcher, build_state_router
from .products import DEFAULT_PRODUCTS, Product, ProductRepository

logger = logging.getLogger(__name__)


def build_product_router(repository: ProductRepository) -> APIRouter:
    router = APIRouter(prefix="/api/products", tags=["products"])

    @router.get("", response_model=List[Product], summary="List products")
    def list_products() -> List[Product]:
        return repository.list()

    @router.get("/{product_id}", response_model=Product, summary="Get a product by id")
    def get_product(product_id: int) -> Product:
        product = repository.get(product_id)
        if product is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Product {product_id} not found")
        return product

    return router


def register_default_states(dispatcher: ProviderStateDispatcher, repository: ProductRepository) -> None:
    """State hooks the sample consumer contract refers to."""
    seed = list(DEFAULT_PRODUCTS)

    dispatcher.register("products exist", lambda: repository.set_state(seed))
    dispatcher.register("There is data", lambda: repository.set_state(seed))
    dispatcher.register("product with ID 10 exists", lambda: repository.set_state(seed))
    dispatcher.register("only product 9 exists", lambda: repository.set_state([p for p in seed if p.id == 9]))
    dispatcher.register("no products exist", lambda: repository.set_state([]))


def create_provider_app(
    repository: Optional[ProductRepository] = None,
    dispatcher: Optional[ProviderStateDispatcher] = None,
    strict_states: Optional[bool] = None,
) -> FastAPI:
    repository = repository if repository is not None else ProductRepository()
    app = FastAPI(title="Product Service", version="1.0.0")
    app.state.repository = repository
    app.include_router(build_product_router(repository))
    if dispatcher is not None:
        app.include_router(build_state_router(dispatcher, strict=strict_states))
        logger.info(f"Provider state endpoint enabled with {len(dispatcher.states())} states")
    return app
