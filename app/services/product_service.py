import asyncio
from collections import Counter
from typing import List, Optional

from loguru import logger

from app.core.config import settings
from app.core.exceptions import ServiceError, ValidationError
from app.models.product import CategoryChoice, CategorySummary, Product, QuotationRequest
from app.services.bulk_upload_service import resolve_category
from app.services.catalog_service import CatalogService
from app.services.image_host_service import ImageHostService
from app.utils.image_processor import ImageProcessor
from app.utils.naming import upload_filename, validate_product_name

MAX_SEARCH_RESULTS = 50


class ProductService:
    def __init__(
        self,
        catalog: CatalogService,
        image_host: ImageHostService,
        jpeg_quality: Optional[int] = None,
    ):
        self.catalog = catalog
        self.image_host = image_host
        self.jpeg_quality = settings.JPEG_QUALITY if jpeg_quality is None else jpeg_quality

    async def _products(self) -> List[Product]:
        res = await self.catalog.fetch_all_products()
        if not res.success:
            raise ServiceError(res.error or "Failed to load product catalog")
        return res.data or []

    async def search(self, query: str = "", category: Optional[str] = None) -> List[Product]:
        """Case-insensitive substring search over name, id and category."""
        products = await self._products()
        if category:
            products = [p for p in products if (p.category or "").strip() == category]

        term = (query or "").strip().lower()
        if not term:
            # Bare query only lists something when narrowed to a category
            return products[:MAX_SEARCH_RESULTS] if category else []

        results = [
            p for p in products
            if term in p.product_name.lower()
            or term in p.product_id.lower()
            or term in (p.category or "").lower()
        ]
        return results[:MAX_SEARCH_RESULTS]

    async def list_categories(self) -> List[CategorySummary]:
        products = await self._products()
        counts = Counter(
            p.category.strip() for p in products if p.category and p.category.strip()
        )
        return [CategorySummary(name=name, count=counts[name]) for name in sorted(counts)]

    async def add_product(
        self,
        name: str,
        category_choice: CategoryChoice,
        image: Optional[bytes] = None,
    ) -> dict:
        """Register one product, uploading its image first when one is given.

        Raises:
            ValidationError: bad name, no category, or the name already exists.
            ServiceError: a remote call failed.
        """
        product_name = validate_product_name(name)
        category = resolve_category(category_choice)

        check = await self.catalog.check_name_uniqueness(product_name)
        if not check.success:
            raise ServiceError(check.error or "Name check failed")
        if not (check.data or {}).get("isUnique"):
            raise ValidationError(f"Product '{product_name}' already exists")

        image_url = ""
        if image:
            try:
                jpeg = await asyncio.to_thread(ImageProcessor.flatten_to_jpeg, image, self.jpeg_quality)
            except ValueError as e:
                raise ValidationError(str(e)) from e
            upload = await self.image_host.upload(jpeg, upload_filename(product_name))
            if not upload.success:
                raise ServiceError(upload.error or "Image upload failed")
            image_url = upload.url

        res = await self.catalog.add_product(name=product_name, category=category, image_url=image_url)
        if not res.success:
            raise ServiceError(res.error or "Sheet update failed")

        self.catalog.invalidate_cache()
        logger.success(f"✅ Product added: {product_name} ({category})")
        return res.data or {}

    async def generate_quotation(self, quotation: QuotationRequest) -> str:
        res = await self.catalog.generate_quotation(quotation)
        if not res.success:
            raise ServiceError(res.error or "Failed to generate quotation")
        download_url = (res.data or {}).get("downloadUrl")
        if not download_url:
            raise ServiceError("Quotation service returned no download URL")
        logger.info(f"🧾 Quotation {quotation.quotation_number} generated for {quotation.customer_name}")
        return download_url
