from functools import lru_cache

from fastapi import Depends

from app.services.bulk_upload_service import BulkUploadPipeline
from app.services.card_renderer import CardRenderer
from app.services.catalog_service import CatalogService
from app.services.image_host_service import ImageHostService
from app.services.product_service import ProductService


@lru_cache
def get_catalog_service() -> CatalogService:
    return CatalogService()


@lru_cache
def get_image_host_service() -> ImageHostService:
    return ImageHostService()


@lru_cache
def get_card_renderer() -> CardRenderer:
    return CardRenderer()


def get_product_service(
    catalog: CatalogService = Depends(get_catalog_service),
    image_host: ImageHostService = Depends(get_image_host_service),
) -> ProductService:
    return ProductService(catalog, image_host)


def get_bulk_pipeline(
    catalog: CatalogService = Depends(get_catalog_service),
    image_host: ImageHostService = Depends(get_image_host_service),
) -> BulkUploadPipeline:
    # A successful batch makes the cached catalog stale
    return BulkUploadPipeline(catalog, image_host, on_products_added=catalog.invalidate_cache)
