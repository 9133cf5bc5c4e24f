"""
Runtime configuration loaded from the environment (and a .env file)
"""
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class EngineSettings(BaseModel):
    """Settings shared by the CLI and the API"""
    time_budget: float = Field(300.0, gt=0, description="Default run budget in seconds")
    log_level: str = Field("INFO", description="Root log level")
    database_url: Optional[str] = Field(None, description="SQLAlchemy URL for run history")
    notification_topic: str = Field("workflow.incidents", description="Incident topic")
    api_host: str = Field("0.0.0.0", description="API bind host")
    api_port: int = Field(8000, gt=0, lt=65536, description="API bind port")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"):
            raise ValueError(f"Unknown log level: {value}")
        return value

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "EngineSettings":
        if dotenv:
            load_dotenv()

        values = {
            "time_budget": os.getenv("STEPFLOW_TIME_BUDGET"),
            "log_level": os.getenv("STEPFLOW_LOG_LEVEL"),
            "database_url": os.getenv("STEPFLOW_DATABASE_URL"),
            "notification_topic": os.getenv("STEPFLOW_NOTIFICATION_TOPIC"),
            "api_host": os.getenv("API_HOST"),
            "api_port": os.getenv("API_PORT"),
        }
        return cls(**{key: value for key, value in values.items() if value is not None})


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
