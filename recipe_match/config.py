from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).parent.parent


class Settings(BaseSettings):
    # Relational store
    database_url: str = "sqlite:///./dev.db"
    db_connect_retries: int = 5
    db_connect_delay_seconds: float = 1.0

    # Cache
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 2.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(
        env_file=PROJECT_ROOT / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
