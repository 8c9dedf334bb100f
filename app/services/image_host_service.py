from typing import Optional

import httpx
from loguru import logger

from app.core.config import settings
from app.models.product import UploadResponse


class ImageHostService:
    """Uploads product images to ImgBB and returns their public URL."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        upload_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.IMGBB_API_KEY if api_key is None else api_key
        self.upload_url = settings.IMGBB_UPLOAD_URL if upload_url is None else upload_url
        self.timeout = settings.HTTP_TIMEOUT_SECONDS if timeout is None else timeout
        self._transport = transport

        masked = (
            f"{self.api_key[:4]}...{self.api_key[-2:]}"
            if self.api_key
            else "MISSING"
        )
        logger.debug(f"🔑 Image host initialized | Key: {masked}")

    async def upload(self, image_bytes: bytes, filename: str) -> UploadResponse:
        if not self.api_key:
            return UploadResponse(success=False, error="Image host API key missing")

        name = filename.rsplit(".", 1)[0]
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.upload_url,
                    params={"key": self.api_key},
                    data={"name": name},
                    files={"image": (filename, image_bytes, "image/jpeg")},
                )

                if response.status_code != 200:
                    logger.error(f"Image host error ({response.status_code}): {response.text}")
                    return UploadResponse(success=False, error=f"Upload failed with status {response.status_code}")

                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Image upload failed for {filename}: {e}")
            return UploadResponse(success=False, error=f"Network error: {e}")

        url = (body.get("data") or {}).get("url")
        if not body.get("success") or not url:
            return UploadResponse(success=False, error="Image host returned no URL")

        logger.success(f"Uploaded {filename} -> {url}")
        return UploadResponse(success=True, url=url)
