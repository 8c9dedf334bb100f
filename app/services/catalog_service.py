import json
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from app.core.config import settings
from app.models.product import Product, QuotationRequest, ServiceResponse


class CatalogService:
    """Client for the spreadsheet-backed catalog web app.

    Every action answers with the backend's {success, data, error} envelope;
    transport failures are folded into the same envelope so callers only ever
    branch on ``success``.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = settings.CATALOG_API_URL if api_url is None else api_url
        self.timeout = settings.HTTP_TIMEOUT_SECONDS if timeout is None else timeout
        self._transport = transport
        self._cache: Optional[List[Product]] = None

    def _client(self) -> httpx.AsyncClient:
        # Apps Script answers POSTs with a redirect to the result page
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    async def _get(self, params: Dict[str, str]) -> ServiceResponse:
        if not self.api_url:
            logger.error("Catalog API URL not configured")
            return ServiceResponse(success=False, error="API configuration missing")
        try:
            async with self._client() as client:
                response = await client.get(self.api_url, params=params)
                response.raise_for_status()
                return ServiceResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Catalog request {params.get('action')} failed: {e}")
            return ServiceResponse(success=False, error=f"Network error: {e}")

    async def _post(self, action: str, payload: Dict[str, Any]) -> ServiceResponse:
        if not self.api_url:
            logger.error("Catalog API URL not configured")
            return ServiceResponse(success=False, error="API configuration missing")
        try:
            async with self._client() as client:
                # text/plain keeps Apps Script from rejecting the body
                response = await client.post(
                    self.api_url,
                    params={"action": action},
                    headers={"Content-Type": "text/plain;charset=utf-8"},
                    content=json.dumps(payload),
                )
                response.raise_for_status()
                return ServiceResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Catalog action {action} failed: {e}")
            return ServiceResponse(success=False, error=f"Network error: {e}")

    async def search_products(self, query: str) -> ServiceResponse:
        return await self._get({"action": "searchProducts", "query": query})

    async def fetch_all_products(self) -> ServiceResponse:
        """Fetch the whole catalog; "*" triggers the backend's fetch-all path."""
        if self._cache is not None:
            return ServiceResponse(success=True, data=self._cache)

        result = await self.search_products("*")
        if not result.success:
            return result

        try:
            products = [Product.model_validate(row) for row in result.data or []]
        except ValueError as e:
            logger.error(f"Catalog returned malformed products: {e}")
            return ServiceResponse(success=False, error=f"Malformed catalog data: {e}")

        self._cache = products
        logger.info(f"📦 Catalog loaded | {len(products)} products")
        return ServiceResponse(success=True, data=products)

    def invalidate_cache(self) -> None:
        logger.debug("Catalog cache invalidated")
        self._cache = None

    async def check_name_uniqueness(self, name: str) -> ServiceResponse:
        return await self._get({"action": "checkNameUniqueness", "name": name})

    async def add_product(self, name: str, category: str, image_url: str) -> ServiceResponse:
        return await self._post(
            "addProduct",
            {"name": name, "category": category, "image_url": image_url},
        )

    async def generate_quotation(self, quotation: QuotationRequest) -> ServiceResponse:
        return await self._post("generateQuotation", quotation.model_dump())
