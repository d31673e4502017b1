"""
Centralised settings for the periodic series builder, loaded from the
environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ── Postgres ─────────────────────────────────────────
    postgres_user: str = "periodic"
    postgres_password: str = "periodic_pw"
    postgres_db: str = "events"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_application_name: str = "periodic-series"

    # ── Query execution ──────────────────────────────────
    query_timeout_ms: int = 10_000
    plan_cache_enabled: bool = True
    plan_cache_ttl_seconds: float = 600.0
    plan_cache_max_size: int = 128

    # ── App ──────────────────────────────────────────────
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
