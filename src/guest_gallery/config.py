"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

DEFAULT_ALLOWED_TYPES = (
    "image/jpeg,image/png,image/gif,image/webp,image/heic,image/heif"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    api_base_url: str = "http://localhost:3000"
    access_token: str | None = None
    request_timeout_ms: int = 30_000
    photos_endpoint: str = "/api/photos"
    upload_endpoint: str = "/api/upload"
    people_endpoint: str = "/api/photos/{photo_id}/people"
    stats_endpoint: str = "/api/stats"
    health_endpoint: str = "/health"
    max_file_size: int = 25 * 1024 * 1024
    max_batch_size: int = 10
    max_concurrent_uploads: int = 3
    allowed_types: str = DEFAULT_ALLOWED_TYPES
    compression_threshold: int = 1024 * 1024
    max_width: int = 1920
    jpeg_quality: int = 80
    heic_jpeg_quality: int = 90
    upload_retries: int = 1
    retry_base_delay_ms: int = 1000
    history_limit: int = 100
    openai_api_key: str | None = None
    openai_model: str = "gpt-5.2"
    face_confidence_threshold: float = 0.5
    max_faces: int = 10
    state_file: str | None = None
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_allowed_types(raw: str | None) -> frozenset[str]:
    """Parse the comma-separated MIME allow-list from env."""
    if raw is None:
        raw = DEFAULT_ALLOWED_TYPES
    types: set[str] = set()
    for chunk in raw.split(","):
        value = chunk.strip().lower()
        if value:
            types.add(value)
    return frozenset(types)
