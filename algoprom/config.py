from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Process configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "ALGOPROM_",
        "extra": "ignore",
    }

    # Checks, datasources and backends (YAML)
    config_file: str = "algoprom.yaml"

    # Audit log (SQLite)
    db_path: str = "data/algoprom.db"

    # API / metrics endpoint
    api_host: str = "0.0.0.0"
    api_port: int = 9095

    # Logging
    log_level: str = "INFO"


settings = Settings()
