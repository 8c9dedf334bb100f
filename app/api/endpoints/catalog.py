from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from app.api.deps import get_product_service
from app.models.product import CategoryChoice, QuotationRequest
from app.services.product_service import ProductService

router = APIRouter()


@router.get("/products")
async def search_products(
    query: str = "",
    category: Optional[str] = None,
    service: ProductService = Depends(get_product_service),
):
    results = await service.search(query, category)
    return {"count": len(results), "products": [p.model_dump() for p in results]}


@router.get("/categories")
async def list_categories(service: ProductService = Depends(get_product_service)):
    categories = await service.list_categories()
    return {"categories": [c.model_dump() for c in categories]}


@router.post("/products")
async def add_product(
    name: str = Form(...),
    category: Optional[str] = Form(None),
    new_category: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    service: ProductService = Depends(get_product_service),
):
    choice = CategoryChoice(selected=category, is_new=new_category is not None, new_name=new_category)
    image_bytes = await image.read() if image is not None else None
    data = await service.add_product(name, choice, image_bytes)
    return {"success": True, "data": data}


@router.post("/quotations")
async def generate_quotation(
    quotation: QuotationRequest,
    service: ProductService = Depends(get_product_service),
):
    download_url = await service.generate_quotation(quotation)
    return {
        "success": True,
        "quotation_number": quotation.quotation_number,
        "download_url": download_url,
    }
