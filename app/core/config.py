from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import List, Any, Optional


class Settings(BaseSettings):
    PROJECT_NAME: str = "Quotation Builder Catalog Service"
    VERSION: str = "1.1.0"
    API_V1_STR: str = "/api/v1"

    # Catalog backend (Apps Script web app)
    CATALOG_API_URL: str = ""
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Image hosting
    IMGBB_API_KEY: str = ""
    IMGBB_UPLOAD_URL: str = "https://api.imgbb.com/1/upload"

    # Bulk upload
    BULK_UPLOAD_DELAY_SECONDS: float = 1.0
    JPEG_QUALITY: int = 90
    ALLOWED_IMAGE_TYPES: Any = ["image/jpeg", "image/png", "image/webp", "image/gif"]

    @field_validator("ALLOWED_IMAGE_TYPES", mode="before")
    @classmethod
    def assemble_image_types(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            return [i.strip() for i in v.split(",")]
        return v

    # Card rendering
    CARD_SCALE: int = 2
    COMPANY_NAME: str = "HI TECH SALES AND SERVICES"
    CURRENCY_SYMBOL: str = "₹"
    LOGO_PATH: str = "assets/Logo.png"
    FONT_REGULAR_PATH: Optional[str] = None
    FONT_BOLD_PATH: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
