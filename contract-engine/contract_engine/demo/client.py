from __future__ import annotations

from typing import Optional

import requests

from ..config import get_settings
from ..core.exceptions import ProviderConnectionError


class ProductApiClient:
    """Thin HTTP client for the product service."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: Optional[float] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else get_settings().REQUEST_TIMEOUT

    def _get(self, path: str) -> requests.Response:
        try:
            return self.session.get(f"{self.base_url}{path}", timeout=self.timeout)
        except requests.RequestException as e:
            raise ProviderConnectionError("There was a problem connecting to Provider API.") from e

    def get_all_products(self) -> requests.Response:
        return self._get("/api/products")

    def get_product(self, product_id: int) -> requests.Response:
        return self._get(f"/api/products/{product_id}")
