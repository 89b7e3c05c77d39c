from pathlib import Path
from dotenv import dotenv_values
from pydantic import Field
from pydantic_settings import BaseSettings

import os

# Explicitly load .env for local/dev environments only if values are missing from the environment
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    file_env = dotenv_values(env_file)
    missing_keys = {k: v for k, v in file_env.items() if k not in os.environ and v is not None}
    for k, v in missing_keys.items():
        os.environ[k] = v


class Settings(BaseSettings):
    """Application settings pulled from WAR_SCENE_* environment variables."""

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Logging format (console or json)")

    # Rendering Configuration
    antialias: int = Field(default=4, ge=1, le=8, description="Coverage supersampling factor")
    max_mask_pixels: int = Field(
        default=8_000_000, ge=1, description="Pixel budget for one supersampled coverage mask"
    )

    # Preview Configuration
    preview_width: int = Field(default=1280, description="Default preview width")
    preview_height: int = Field(default=720, description="Default preview height")
    max_preview_pixels: int = Field(
        default=3840 * 2160, description="Largest preview (device pixels) the API renders"
    )

    # Export Configuration
    export_width: int = Field(default=7680, description="Export width in pixels")
    export_height: int = Field(default=4320, description="Export height in pixels")
    export_quality: int = Field(default=94, ge=1, le=100, description="JPEG quality for exports")
    max_export_pixels: int = Field(
        default=7680 * 4320, description="Largest export (pixels) the API accepts"
    )
    export_dir: str = Field(default="./exports", description="Directory for saved exports")

    # Performance Configuration
    max_concurrent_exports: int = Field(
        default=2, ge=1, description="Max export jobs pending or running at once"
    )
    export_ttl_seconds: int = Field(
        default=3600, ge=0, description="How long finished export jobs are kept"
    )

    class Config:
        env_prefix = "WAR_SCENE_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Instantiate singleton settings object
settings = Settings()
