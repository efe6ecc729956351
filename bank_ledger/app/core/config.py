from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Bank Ledger API"
    database_url: str = "sqlite:///bank_ledger.db"
    storage_backend: Literal["sql", "memory"] = "sql"
    log_level: str = "INFO"

    jwt_secret: str = "devsecret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    write_retries: int = 3
    read_retries: int = 2
    seed_demo_data: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LEDGER_",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
