from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    project_name: str = "Cutout Studio"
    api_prefix: str = "/api/v1"
    request_id_header: str = "X-Request-ID"
    log_level: str = "INFO"

    gemini_api_key: str | None = None
    gemini_api_base: str | None = None
    genai_timeout_seconds: float = 120.0
    image_model: str = "gemini-2.5-flash-image"
    vision_model: str = "gemini-2.5-flash"

    max_upload_size_bytes: int = 20 * 1024 * 1024
    session_ttl_seconds: int = 60 * 60

    progress_tick_seconds: float = 0.05
    progress_ceiling: int = 95
    result_display_delay_seconds: float = 0.5
    jpeg_quality: int = 95
    jpeg_background_color: str = "#FFFFFF"

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="CUTOUT_", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
