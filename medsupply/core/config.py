from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"
    api_v1_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Database
    database_url: str

    # Redis (reference data cache only)
    redis_url: str | None = None
    reference_cache_ttl: int = 300

    # Cabinet stock report
    report_timezone: str = "Asia/Bangkok"
    near_expiry_days: int = 7
    # Empty means every return reason counts as damaged.
    damaged_return_reasons: list[str] = []

    # Pydantic v2 style config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance so the .env is parsed once.
    """
    return Settings()
