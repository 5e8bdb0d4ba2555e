"""Configuration management."""

import os
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# A project-level .env fills in KNET_* values missing from the environment
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    for key, value in dotenv_values(env_file).items():
        if key.startswith("KNET_") and key not in os.environ and value is not None:
            os.environ[key] = value


class Settings(BaseSettings):
    """Library settings pulled from ``KNET_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="KNET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="plain", description="Logging format (plain or json)")

    # Default layout volume used when no bounding volume is supplied
    layout_width: float = Field(default=800.0, gt=0, description="Default layout width")
    layout_height: float = Field(default=600.0, gt=0, description="Default layout height")
    layout_depth: float = Field(default=400.0, gt=0, description="Default layout depth for 3D runs")
    layout_seed: Optional[str] = Field(default=None, description="Seed for the shared layout PRNG")

    # Spatial index
    default_index_preset: str = Field(
        default="balanced", description="Index preset used by the layout pipeline"
    )


settings = Settings()
