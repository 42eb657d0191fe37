"""
HTTP listener settings for the ModelForge server.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class HttpSettings(BaseSettings):
    """HTTP configuration loaded from environment."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=3001, description="Bind port")

    # CORS settings
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")

    # Identity headers set by the upstream Identity service
    role_header: str = Field(default="X-Role", description="Header carrying the role claim")
    user_header: str = Field(default="X-User-Id", description="Header carrying the user id")

    model_config = {"env_prefix": "MODELFORGE_"}
