"""Pydantic Settings: configuration from MARKSCRAPE_* environment variables and .env."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STORE_PATH = Path.home() / ".markscrape" / "selector-groups.json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MARKSCRAPE_", env_file=".env", extra="ignore")

    proxy_url: str = "http://localhost:3001/api/proxy/url"
    relay_url: str = "https://api.allorigins.win/get"
    extract_url: str = "http://localhost:3001/api/scrape/extract"
    timeout_ms: int = 30000
    delay_ms: int = 1000
    store_path: Path = DEFAULT_STORE_PATH
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
