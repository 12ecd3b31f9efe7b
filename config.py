# config.py
"""
Armory configuration settings.
Values can be overridden with ARMORY_* environment variables or a .env file.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Remote Catalog ---
DEFAULT_CATALOG_URL = "https://api.wynncraft.com/v3/item/database?fullResult"

# --- Matching ---
MIN_QUERY_LENGTH = 2   # Queries shorter than this never hit the catalog
SUGGESTION_LIMIT = 5   # How many suggestions the UI shows per slot

# --- Persistence Keys ---
BUILD_KEY = "characterBuild"
CATALOG_KEY = "catalogCache"

# --- Logging ---
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class Settings(BaseSettings):
    catalog_url: str = DEFAULT_CATALOG_URL
    request_timeout: float = 10.0

    debounce_seconds: float = 0.3
    suggestion_limit: int = SUGGESTION_LIMIT

    max_retries: int = 3              # 4 attempts in total
    backoff_base_seconds: float = 1.0 # delay = base * 2^attempt
    catalog_ttl_seconds: float = 3600.0

    store_path: str = "armory.db"
    log_file: str = "armory.log"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="ARMORY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
