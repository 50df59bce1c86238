"""
Expression Engine Service
Entry point for the FastAPI application
"""

import uvicorn
from exprengine.api import app
from exprengine.utils.logging_config import setup_logging, get_logger
from exprengine.config import get_settings

# Get configuration
settings = get_settings()

# Setup logging before starting the app
setup_logging(settings)

logger = get_logger(__name__)

if __name__ == "__main__":
    logger.info("Starting Expression Engine Service")
    logger.info(
        f"Environment: {settings.env}, "
        f"Log level: {settings.log_level}, "
        f"Format: {'JSON' if settings.log_format_json else 'Human-readable'}"
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
