import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from app.models.product import Product, ServiceResponse, UploadResponse


def make_png(size=(64, 32), color=(255, 0, 0, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def png_bytes() -> bytes:
    """Small opaque red PNG."""
    return make_png()


@pytest.fixture()
def transparent_png_bytes() -> bytes:
    """PNG whose pixels are fully transparent."""
    return make_png(size=(20, 10), color=(0, 0, 0, 0))


@pytest.fixture()
def product() -> Product:
    return Product.model_validate(
        {"name": "BRASS VALVE", "category": "Valves", "image_url": None}
    )


@pytest.fixture()
def catalog() -> MagicMock:
    """Catalog client where every name except DUP* is unique."""
    mock = MagicMock()
    mock.check_name_uniqueness = AsyncMock(
        side_effect=lambda name: ServiceResponse(
            success=True, data={"isUnique": not name.startswith("DUP")}
        )
    )
    mock.add_product = AsyncMock(
        return_value=ServiceResponse(success=True, data={"product_id": "P-1"})
    )
    mock.fetch_all_products = AsyncMock(return_value=ServiceResponse(success=True, data=[]))
    mock.generate_quotation = AsyncMock()
    return mock


@pytest.fixture()
def image_host() -> MagicMock:
    mock = MagicMock()
    mock.upload = AsyncMock(
        return_value=UploadResponse(success=True, url="https://i.ibb.co/abc/item.jpg")
    )
    return mock
