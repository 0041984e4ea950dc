from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from pydantic import BaseModel, Field


class Product(BaseModel):
    id: int = Field(..., examples=[9])
    name: str = Field(..., examples=["GEM Visa"])
    type: str = Field(..., examples=["CREDIT_CARD"])
    version: str = Field(..., examples=["v2"])


DEFAULT_PRODUCTS = [
    Product(id=9, name="GEM Visa", type="CREDIT_CARD", version="v2"),
    Product(id=10, name="28 Degrees", type="CREDIT_CARD", version="v1"),
]


class ProductRepository:
    """
    Product store shared by the API routes and the provider-state hooks.

    Reads and writes go through one re-entrant lock, so a state hook running
    under ``exclusive()`` is never observed half-applied by a request.
    """

    def __init__(self, products: Optional[Iterable[Product]] = None) -> None:
        self._lock = threading.RLock()
        self._products: List[Product] = list(DEFAULT_PRODUCTS if products is None else products)

    @contextmanager
    def exclusive(self) -> Iterator["ProductRepository"]:
        with self._lock:
            yield self

    def list(self) -> List[Product]:
        with self._lock:
            return list(self._products)

    def get(self, product_id: int) -> Optional[Product]:
        with self._lock:
            return next((p for p in self._products if p.id == product_id), None)

    def set_state(self, products: Iterable[Product]) -> None:
        with self._lock:
            self._products = list(products)
