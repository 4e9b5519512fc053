from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Health checks
    health_config_file: str = "health.yaml"  # absolute or relative to CWD
    health_check_interval_seconds: int = 60
    health_scheduler_enabled: bool = True

    # Connection fallbacks when health.yaml leaves them out
    database_url: str = ""
    postgres_url: str = ""
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""

    # Logging
    log_level: str = "INFO"


settings = Settings()
