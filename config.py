import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8080"))

    # Active backend: memory | mongodb | redis
    storage_backend: str = os.getenv("STORAGE_BACKEND", "memory").lower()

    # MongoDB settings
    mongodb_url: str = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
    mongodb_database: str = os.getenv("MONGODB_DATABASE", "library")
    mongodb_collection: str = os.getenv("MONGODB_COLLECTION", "books")

    # Redis settings (system of record for "redis", cache for "mongodb")
    redis_host: str = os.getenv("REDIS_HOST", "localhost")
    redis_port: int = int(os.getenv("REDIS_PORT", "6379"))
    redis_db: int = int(os.getenv("REDIS_DB", "0"))
    redis_password: Optional[str] = os.getenv("REDIS_PASSWORD") or None

    # Cache-aside settings
    cache_enabled: bool = _env_flag("CACHE_ENABLED", "True")
    cache_write_policy: str = os.getenv("CACHE_WRITE_POLICY", "refresh").lower()  # refresh | invalidate

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Books API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_flag("DEBUG", "False")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
