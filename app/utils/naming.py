import os
import re
from typing import Optional

from app.core.exceptions import ValidationError

MAX_NAME_LENGTH = 35

_NUMERIC_ONLY = re.compile(r"^\d+$")
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")
_DRIVE_FILE_ID = re.compile(r"/d/([a-zA-Z0-9_-]+)")


def normalize_product_name(name: str) -> str:
    return (name or "").strip().upper()


def validate_product_name(name: str) -> str:
    """Upper-case a candidate name and reject it if it cannot be a product name.

    Runs before any network call: empty names, names longer than 35
    characters and purely numeric names raise ValidationError.
    """
    normalized = normalize_product_name(name)
    if not normalized:
        raise ValidationError("Product name is required")
    if len(normalized) > MAX_NAME_LENGTH:
        raise ValidationError(f"Product name must be at most {MAX_NAME_LENGTH} characters")
    if _NUMERIC_ONLY.match(normalized):
        raise ValidationError("Product name cannot be only numbers")
    return normalized


def derive_product_name(filename: str) -> str:
    """BRASS_VALVE-2.final.jpg -> BRASS_VALVE-2.FINAL"""
    base = os.path.basename(filename or "")
    stem, _ext = os.path.splitext(base)
    return stem.upper()


def card_filename(product_name: str) -> str:
    return f"{_NON_ALNUM.sub('', product_name or '').lower()}.png"


def upload_filename(product_name: str) -> str:
    return f"{product_name.strip().lower()}.jpg"


def format_image_url(url: Optional[str]) -> Optional[str]:
    """Rewrite Google Drive share links into directly fetchable image URLs."""
    if not url:
        return None

    if "drive.google.com" in url and "/file/d/" in url:
        match = _DRIVE_FILE_ID.search(url)
        if match:
            return f"https://drive.google.com/thumbnail?id={match.group(1)}&sz=w1000"

    if "drive.google.com" in url and "id=" in url:
        return url.replace("open?", "uc?export=view&")

    return url
