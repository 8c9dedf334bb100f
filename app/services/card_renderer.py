"""Product card renderer.

Composes a fixed 400x600 (logical units) share card for one product:

  1. Header: logo glyph + company name
  2. Gradient separator
  3. Image tray with the product photo contain-fitted, or "No Image"
  4. Product name, upper-cased, at most 2 lines
  5. Category pill
  6. Description, at most 2 lines
  7. Price button pinned to the bottom of the card

All layout math is done in logical units; the drawing surface multiplies by
``scale`` so a 2x render gives an 800x1200 PNG with identical geometry.
Asset failures (product photo, logo) degrade to placeholders and never abort
the card. Only the final PNG encode can fail the render.
"""

import asyncio
import os
from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import httpx
from PIL import Image, ImageChops, ImageDraw, ImageFilter, ImageFont
from loguru import logger

from app.core.config import settings
from app.models.product import CardElement, CardSpec, Product, RenderedCard
from app.utils.image_processor import ImageProcessor
from app.utils.naming import card_filename, format_image_url

# ── Geometry (logical units) ─────────────────────────────────────────────────

CANVAS_W = 400
CANVAS_H = 600

CARD_INSET = 12
CARD_RADIUS = 24
SHADOW_OFFSET = 6
SHADOW_BLUR = 12

CONTENT_X = 30
CONTENT_W = CANVAS_W - CONTENT_X * 2

HEADER_Y = 30
LOGO_SIZE = 40
TITLE_X = 85

SEPARATOR_GAP = 15
SEPARATOR_H = 3

TRAY_X = 25
TRAY_W = CANVAS_W - TRAY_X * 2
TRAY_GAP = 17
TRAY_H = 280
TRAY_RADIUS = 20
TRAY_PAD = 20
IMAGE_RADIUS = 16
PLACEHOLDER_SIZE = 240

NAME_GAP = 25
NAME_SIZE = 20
NAME_LINE_H = 26
NAME_TRAIL_GAP = 4

BADGE_H = 28
BADGE_PAD_X = 12
BADGE_SIZE = 13

DESC_SIZE = 14
DESC_LINE_H = 20

PRICE_H = 60
PRICE_BOTTOM_GAP = 20
PRICE_SIZE = 32

MAX_LINES = 2

# ── Palette ──────────────────────────────────────────────────────────────────

CANVAS_BG = (238, 242, 247)
CARD_BG = (255, 255, 255)
SHADOW_COLOR = (15, 23, 42, 70)
BRAND_BLUE = (43, 127, 237)
BRAND_BLUE_LIGHT = (96, 165, 250)
TRAY_TOP = (232, 241, 252)
TRAY_BOTTOM = (214, 230, 250)
PLACEHOLDER_BG = (209, 213, 219)
DARK_TEXT = (26, 26, 26)
GRAY_TEXT = (107, 114, 128)
PRICE_TOP = (59, 130, 246)
PRICE_BOTTOM = (37, 99, 235)
WHITE = (255, 255, 255)

Box = Tuple[float, float, float, float]
Color = Tuple[int, ...]


# ── Fonts ────────────────────────────────────────────────────────────────────

_BOLD_CANDIDATES = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/noto/NotoSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/Library/Fonts/Arial Bold.ttf",
    "C:/Windows/Fonts/arialbd.ttf",
]
_REGULAR_CANDIDATES = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/noto/NotoSans-Regular.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/Library/Fonts/Arial.ttf",
    "C:/Windows/Fonts/arial.ttf",
]


def _find_font(bold: bool) -> Optional[str]:
    configured = settings.FONT_BOLD_PATH if bold else settings.FONT_REGULAR_PATH
    if configured and os.path.exists(configured):
        return configured
    for path in (_BOLD_CANDIDATES if bold else _REGULAR_CANDIDATES):
        if os.path.exists(path):
            return path
    return None


@lru_cache(maxsize=64)
def load_font(bold: bool, size_px: int) -> ImageFont.FreeTypeFont:
    path = _find_font(bold)
    if path:
        try:
            return ImageFont.truetype(path, size_px)
        except OSError as e:
            logger.warning(f"Could not load font {path}: {e}")
    # Pillow's bundled scalable font
    return ImageFont.load_default(size=size_px)


# ── Layout primitives ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LayoutCursor:
    """Vertical flow position, in logical units."""

    y: float

    def advance(self, dy: float) -> "LayoutCursor":
        return replace(self, y=self.y + dy)


def wrap_text(text: str, max_width: float, measure: Callable[[str], float]) -> List[str]:
    """Greedy word wrap.

    A word joins the current line only while the measured line stays under
    max_width. A single word wider than max_width still gets its own line.
    """
    words = text.split()
    if not words:
        return []
    lines = []
    current = words[0]
    for word in words[1:]:
        candidate = f"{current} {word}"
        if measure(candidate) < max_width:
            current = candidate
        else:
            lines.append(current)
            current = word
    lines.append(current)
    return lines


class CardSurface:
    """One render's private drawing surface. Takes logical coordinates."""

    def __init__(self, scale: int):
        self.scale = scale
        self.image = Image.new("RGBA", (CANVAS_W * scale, CANVAS_H * scale), CANVAS_BG + (255,))
        self.draw = ImageDraw.Draw(self.image)
        self.elements: List[CardElement] = []

    def record(self, kind: str, text: Optional[str] = None) -> None:
        self.elements.append(CardElement(kind=kind, text=text))

    def px(self, value: float) -> int:
        return int(round(value * self.scale))

    def _rect_px(self, box: Box) -> Tuple[int, int, int, int]:
        x, y, w, h = box
        return self.px(x), self.px(y), self.px(w), self.px(h)

    def font(self, bold: bool, size: float) -> ImageFont.FreeTypeFont:
        return load_font(bold, self.px(size))

    def measure(self, text: str, bold: bool, size: float) -> float:
        return self.font(bold, size).getlength(text) / self.scale

    def rounded_mask(self, w: int, h: int, radius: float) -> Image.Image:
        mask = Image.new("L", (w, h), 0)
        ImageDraw.Draw(mask).rounded_rectangle((0, 0, w - 1, h - 1), radius=self.px(radius), fill=255)
        return mask

    def rounded_rect(self, box: Box, radius: float, fill: Color) -> None:
        x, y, w, h = self._rect_px(box)
        self.draw.rounded_rectangle((x, y, x + w - 1, y + h - 1), radius=self.px(radius), fill=fill)

    def gradient_rect(self, box: Box, radius: float, start: Color, end: Color, vertical: bool = True) -> None:
        x, y, w, h = self._rect_px(box)
        ramp = Image.linear_gradient("L")
        if not vertical:
            ramp = ramp.rotate(90)
        ramp = ramp.resize((w, h))
        fill = Image.composite(
            Image.new("RGBA", (w, h), end + (255,)),
            Image.new("RGBA", (w, h), start + (255,)),
            ramp,
        )
        self.image.paste(fill, (x, y), self.rounded_mask(w, h, radius) if radius else None)

    def shadow(self, box: Box, radius: float) -> None:
        layer = Image.new("RGBA", self.image.size, (0, 0, 0, 0))
        x, y, w, h = self._rect_px(box)
        offset = self.px(SHADOW_OFFSET)
        ImageDraw.Draw(layer).rounded_rectangle(
            (x, y + offset, x + w - 1, y + h - 1 + offset), radius=self.px(radius), fill=SHADOW_COLOR
        )
        layer = layer.filter(ImageFilter.GaussianBlur(self.px(SHADOW_BLUR) / 2))
        self.image.alpha_composite(layer)

    def text(self, xy: Tuple[float, float], text: str, bold: bool, size: float, fill: Color, anchor: str = "ls") -> None:
        self.draw.text((self.px(xy[0]), self.px(xy[1])), text, font=self.font(bold, size), fill=fill, anchor=anchor)

    def paste_image(self, img: Image.Image, box: Box, radius: float) -> None:
        x, y, w, h = self._rect_px(box)
        if w <= 0 or h <= 0:
            return
        scaled = img.convert("RGBA").resize((w, h), Image.Resampling.LANCZOS)
        alpha = ImageChops.multiply(scaled.getchannel("A"), self.rounded_mask(w, h, radius))
        self.image.paste(scaled, (x, y), alpha)


# ── Renderer ─────────────────────────────────────────────────────────────────

class CardRenderer:
    def __init__(
        self,
        scale: Optional[int] = None,
        company_name: Optional[str] = None,
        currency_symbol: Optional[str] = None,
        logo_path: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.scale = settings.CARD_SCALE if scale is None else scale
        self.company_name = settings.COMPANY_NAME if company_name is None else company_name
        self.currency_symbol = settings.CURRENCY_SYMBOL if currency_symbol is None else currency_symbol
        self.logo_path = settings.LOGO_PATH if logo_path is None else logo_path
        self.timeout = settings.HTTP_TIMEOUT_SECONDS if timeout is None else timeout
        self._transport = transport

    async def render_card(
        self,
        product: Product,
        override_price: Optional[str] = None,
        override_description: Optional[str] = None,
    ) -> RenderedCard:
        spec = CardSpec(
            product=product,
            override_price=override_price,
            override_description=override_description,
        )
        return await self.render(spec)

    async def render(self, spec: CardSpec) -> RenderedCard:
        product = spec.product
        logo, photo = await asyncio.gather(
            self._load_logo(),
            self._load_product_image(product.image_url),
        )

        surface = await asyncio.to_thread(self._compose, spec, logo, photo)
        png = await asyncio.to_thread(ImageProcessor.encode_png, surface.image.convert("RGB"))

        logger.info(f"🖼️ Rendered card for {product.product_name} ({len(png)} bytes)")
        return RenderedCard(
            product_id=product.product_id,
            product_name=product.product_name,
            filename=card_filename(product.product_name),
            width=surface.image.width,
            height=surface.image.height,
            image=png,
            elements=surface.elements,
        )

    # Asset loading: failures are logged and turned into None

    async def _load_logo(self) -> Optional[Image.Image]:
        if not self.logo_path:
            return None
        try:
            data = await asyncio.to_thread(Path(self.logo_path).read_bytes)
            return ImageProcessor.decode(data)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            logger.warning(f"Logo unavailable, drawing placeholder: {e}")
            return None

    async def _load_product_image(self, image_url: Optional[str]) -> Optional[Image.Image]:
        url = format_image_url(image_url)
        if not url:
            return None
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
            return ImageProcessor.decode(response.content)
        except (httpx.HTTPError, httpx.InvalidURL, OSError, ValueError, Image.DecompressionBombError) as e:
            logger.warning(f"Product image failed to load ({url}): {e}")
            return None

    # Layout steps: each takes the cursor and returns the advanced cursor

    def _compose(self, spec: CardSpec, logo: Optional[Image.Image], photo: Optional[Image.Image]) -> CardSurface:
        surface = CardSurface(self.scale)
        product = spec.product

        self._draw_card(surface)
        cursor = LayoutCursor(HEADER_Y)
        cursor = self._draw_header(surface, cursor, logo)
        cursor = self._draw_separator(surface, cursor)
        cursor = self._draw_tray(surface, cursor, photo)

        price_top = CANVAS_H - PRICE_BOTTOM_GAP - PRICE_H
        flow_limit = price_top - 8 if spec.override_price else CANVAS_H - CARD_INSET - 8

        cursor = self._draw_name(surface, cursor, product.product_name)
        if product.category and product.category.strip():
            cursor = self._draw_category(surface, cursor, product.category.strip())

        description = spec.override_description or product.description or ""
        if description.strip():
            cursor = self._draw_description(surface, cursor, description, flow_limit)

        if spec.override_price:
            self._draw_price(surface, price_top, spec.override_price)
        return surface

    def _draw_card(self, surface: CardSurface) -> None:
        box = (CARD_INSET, CARD_INSET, CANVAS_W - CARD_INSET * 2, CANVAS_H - CARD_INSET * 2)
        surface.shadow(box, CARD_RADIUS)
        surface.rounded_rect(box, CARD_RADIUS, CARD_BG)
        surface.record("card")

    def _draw_header(self, surface: CardSurface, cursor: LayoutCursor, logo: Optional[Image.Image]) -> LayoutCursor:
        logo_box = (CONTENT_X, cursor.y, LOGO_SIZE, LOGO_SIZE)
        if logo is not None:
            fx, fy, fw, fh = ImageProcessor.contain_fit(logo.size, logo_box)
            surface.paste_image(logo, (fx, fy, fw, fh), 0)
            surface.record("logo")
        else:
            surface.rounded_rect(logo_box, 10, BRAND_BLUE)
            glyph = (self.company_name[:1] or "•").upper()
            surface.text((CONTENT_X + LOGO_SIZE / 2, cursor.y + LOGO_SIZE / 2), glyph, True, 22, WHITE, anchor="mm")
            surface.record("logo_placeholder", glyph)

        surface.text((TITLE_X, cursor.y + LOGO_SIZE / 2), self.company_name, True, 16, DARK_TEXT, anchor="lm")
        surface.record("header", self.company_name)
        return cursor.advance(LOGO_SIZE + SEPARATOR_GAP)

    def _draw_separator(self, surface: CardSurface, cursor: LayoutCursor) -> LayoutCursor:
        surface.gradient_rect((CONTENT_X, cursor.y, CONTENT_W, SEPARATOR_H), 0, BRAND_BLUE, BRAND_BLUE_LIGHT, vertical=False)
        surface.record("separator")
        return cursor.advance(SEPARATOR_H + TRAY_GAP)

    def _draw_tray(self, surface: CardSurface, cursor: LayoutCursor, photo: Optional[Image.Image]) -> LayoutCursor:
        tray = (TRAY_X, cursor.y, TRAY_W, TRAY_H)
        surface.gradient_rect(tray, TRAY_RADIUS, TRAY_TOP, TRAY_BOTTOM)
        surface.record("tray")

        if photo is not None:
            inner = (TRAY_X + TRAY_PAD, cursor.y + TRAY_PAD, TRAY_W - TRAY_PAD * 2, TRAY_H - TRAY_PAD * 2)
            surface.paste_image(photo, ImageProcessor.contain_fit(photo.size, inner), IMAGE_RADIUS)
            surface.record("image")
        else:
            tile_x = (CANVAS_W - PLACEHOLDER_SIZE) / 2
            tile_y = cursor.y + (TRAY_H - PLACEHOLDER_SIZE) / 2
            surface.rounded_rect((tile_x, tile_y, PLACEHOLDER_SIZE, PLACEHOLDER_SIZE), IMAGE_RADIUS, PLACEHOLDER_BG)
            surface.text((CANVAS_W / 2, cursor.y + TRAY_H / 2), "No Image", False, 14, GRAY_TEXT, anchor="mm")
            surface.record("placeholder", "No Image")
        return cursor.advance(TRAY_H + NAME_GAP)

    def _draw_name(self, surface: CardSurface, cursor: LayoutCursor, name: str) -> LayoutCursor:
        lines = wrap_text(
            name.upper(),
            CONTENT_W,
            lambda s: surface.measure(s, True, NAME_SIZE),
        )[:MAX_LINES]
        for i, line in enumerate(lines):
            surface.text((CONTENT_X, cursor.y + i * NAME_LINE_H), line, True, NAME_SIZE, DARK_TEXT)
            surface.record("title", line)
        return cursor.advance(len(lines) * NAME_LINE_H + NAME_TRAIL_GAP)

    def _draw_category(self, surface: CardSurface, cursor: LayoutCursor, category: str) -> LayoutCursor:
        width = surface.measure(category, True, BADGE_SIZE) + BADGE_PAD_X * 2
        surface.rounded_rect((CONTENT_X, cursor.y, width, BADGE_H), BADGE_H / 2, BRAND_BLUE)
        surface.text((CONTENT_X + BADGE_PAD_X, cursor.y + BADGE_H / 2), category, True, BADGE_SIZE, WHITE, anchor="lm")
        surface.record("category", category)
        return cursor.advance(BADGE_H + 12)

    def _draw_description(self, surface: CardSurface, cursor: LayoutCursor, description: str, limit: float) -> LayoutCursor:
        lines = wrap_text(
            description,
            CONTENT_W,
            lambda s: surface.measure(s, False, DESC_SIZE),
        )[:MAX_LINES]
        drawn = 0
        for i, line in enumerate(lines):
            baseline = cursor.y + i * DESC_LINE_H
            if baseline > limit:
                break
            surface.text((CONTENT_X, baseline), line, False, DESC_SIZE, GRAY_TEXT)
            surface.record("description", line)
            drawn += 1
        return cursor.advance(drawn * DESC_LINE_H + 20)

    def _draw_price(self, surface: CardSurface, top: float, price: str) -> None:
        surface.gradient_rect((CONTENT_X, top, CONTENT_W, PRICE_H), 16, PRICE_TOP, PRICE_BOTTOM)
        label = f"{self.currency_symbol}{price}"
        surface.text((CANVAS_W / 2, top + PRICE_H / 2), label, True, PRICE_SIZE, WHITE, anchor="mm")
        surface.record("price", label)


async def render_card(
    product: Product,
    override_price: Optional[str] = None,
    override_description: Optional[str] = None,
) -> RenderedCard:
    return await CardRenderer().render_card(product, override_price, override_description)
