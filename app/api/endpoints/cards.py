from fastapi import APIRouter, Depends
from fastapi.responses import Response
from loguru import logger

from app.api.deps import get_card_renderer
from app.models.product import CardSpec
from app.services.card_renderer import CardRenderer

router = APIRouter()


@router.post("", response_class=Response)
async def generate_card(spec: CardSpec, renderer: CardRenderer = Depends(get_card_renderer)):
    """Render a product card and return it as a PNG download."""
    card = await renderer.render(spec)
    logger.info(f"Card ready: {card.filename} ({len(card.elements)} elements)")
    return Response(
        content=card.image,
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{card.filename}"'},
    )
