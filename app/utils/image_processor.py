import io
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError
from loguru import logger

from app.core.exceptions import EncodingError


class ImageProcessor:
    @staticmethod
    def decode(data: bytes) -> Image.Image:
        """Decode raw bytes into a fully loaded RGBA image.

        Raises:
            ValueError: if the bytes are not a readable image.
        """
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                img = ImageOps.exif_transpose(img)
                return img.convert("RGBA")
        except (UnidentifiedImageError, OSError) as e:
            raise ValueError(f"Unreadable image: {e}") from e

    @staticmethod
    def flatten_to_jpeg(data: bytes, quality: int = 90) -> bytes:
        """Re-encode an uploaded image as JPEG on an opaque white background.

        The output keeps the original pixel dimensions; transparency is
        composited onto white before the lossy encode.
        """
        img = ImageProcessor.decode(data)
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, (0, 0), img)
        buffer = io.BytesIO()
        background.save(buffer, format="JPEG", quality=quality)
        logger.debug(f"Normalized image {img.size[0]}x{img.size[1]} to JPEG ({buffer.tell()} bytes)")
        return buffer.getvalue()

    @staticmethod
    def encode_png(img: Image.Image) -> bytes:
        try:
            buffer = io.BytesIO()
            img.save(buffer, format="PNG", optimize=True)
            return buffer.getvalue()
        except (OSError, ValueError) as e:
            raise EncodingError(f"PNG encoding failed: {e}") from e

    @staticmethod
    def contain_fit(src_size: Tuple[int, int], box: Tuple[float, float, float, float]) -> Tuple[float, float, float, float]:
        """Place an image inside a box without cropping.

        Returns (x, y, width, height) of the scaled image, centered on both
        axes inside box=(x, y, width, height), aspect ratio preserved.
        """
        src_w, src_h = src_size
        box_x, box_y, box_w, box_h = box
        if src_w <= 0 or src_h <= 0:
            return box_x + box_w / 2, box_y + box_h / 2, 0.0, 0.0
        scale = min(box_w / src_w, box_h / src_h)
        w, h = src_w * scale, src_h * scale
        return box_x + (box_w - w) / 2, box_y + (box_h - h) / 2, w, h
