"""
stepflow API entry point
"""
import logging
import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from stepflow.api import create_default_app
from stepflow.config import EngineSettings, configure_logging

settings = EngineSettings.from_env(dotenv=False)
configure_logging(settings.log_level)

app = create_default_app(settings)

logger = logging.getLogger(__name__)


if __name__ == "__main__":
    reload = os.getenv("API_RELOAD", "false").lower() == "true"
    logger.info(f"Serving on {settings.api_host}:{settings.api_port}")

    if reload:
        # development mode
        uvicorn.run(
            "main:app",
            host=settings.api_host,
            port=settings.api_port,
            reload=True,
            log_level="info"
        )
    else:
        uvicorn.run(
            app,
            host=settings.api_host,
            port=settings.api_port,
            log_level="info"
        )
