"""
HTTP layer settings.

Uses pydantic-settings for environment variable loading. Storage and sync
behaviour come from ServerConfig; these settings only cover what the web
application itself needs.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """HTTP layer configuration loaded from environment."""

    title: str = Field(default="LayerSync", description="OpenAPI title")

    # Overrides DATA_DIR from ServerConfig when set
    data_dir: str | None = Field(default=None, description="SQLite data directory")

    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )

    model_config = {"env_prefix": "LAYERSYNC_"}
