from fastapi import FastAPI
from app.api.endpoints import bulk_upload, cards, catalog
from app.core.config import settings
from app.core.logging_config import setup_logging
from loguru import logger
from app.core.middleware import log_request_middleware, setup_exception_handlers
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.middleware.cors import CORSMiddleware

# Initialize Logging
setup_logging()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Catalog, quotation, bulk product upload and product card rendering service."
)

# Add Middleware
app.add_middleware(BaseHTTPMiddleware, dispatch=log_request_middleware)
setup_exception_handlers(app)

# Add CORS last so it runs first (outermost)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)

@app.get("/")
async def root():
    return {
        "app": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "status": "online"
    }

# Include Routers
app.include_router(catalog.router, prefix=settings.API_V1_STR, tags=["Catalog"])
app.include_router(cards.router, prefix=f"{settings.API_V1_STR}/cards", tags=["Cards"])
app.include_router(bulk_upload.router, prefix=f"{settings.API_V1_STR}/bulk-upload", tags=["Bulk Upload"])

@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.PROJECT_NAME}...")
    if not settings.CATALOG_API_URL:
        logger.warning("CATALOG_API_URL is not set; catalog calls will fail")
    if not settings.IMGBB_API_KEY:
        logger.warning("IMGBB_API_KEY is not set; image uploads will fail")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8080, reload=True)
