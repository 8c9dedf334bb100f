import os
import sys
from loguru import logger
from app.core.config import settings


def setup_logging():
    # Remove default handler
    logger.remove()

    # Console sink, colorized
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.LOG_LEVEL,
        colorize=True
    )

    # Rotating file sink
    os.makedirs(settings.LOG_DIR, exist_ok=True)
    logger.add(
        os.path.join(settings.LOG_DIR, "app.log"),
        rotation="10 MB",
        retention="10 days",
        level="DEBUG",
        compression="zip",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
    )

    logger.info("Logging initialized successfully.")
