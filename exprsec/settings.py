from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

REPO_ROOT = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    """
    Runtime settings for the demo service, read from `EXPRSEC_*` environment variables.

    - `db_url`: identity + document store (defaults to ./exprsec.db)
    - `security_config_path`: route rules (defaults to ./config/security_config.yaml)
    - `seed_demo_data`: insert the demo users and documents into an empty database
    - `sql_echo`: log every emitted SQL statement
    """

    model_config = SettingsConfigDict(env_prefix="EXPRSEC_", extra="ignore")

    db_url: str = f"sqlite:///{REPO_ROOT / 'exprsec.db'}"
    security_config_path: Path = REPO_ROOT / "config" / "security_config.yaml"
    log_level: str = "INFO"
    seed_demo_data: bool = True
    sql_echo: bool = False

    @property
    def is_sqlite(self) -> bool:
        return self.db_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    return Settings()
