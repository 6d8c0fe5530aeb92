import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Application
    app_name: str = os.getenv("APP_NAME", "Libris Lending Service")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _flag("DEBUG")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # API
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Database
    database_file: str = os.getenv("LIBRIS_DB_FILE", "libris.db")
    database_timeout: float = float(os.getenv("LIBRIS_DB_TIMEOUT", "10"))

    # Cache (redis is only used when REDIS_URL is set)
    redis_url: Optional[str] = os.getenv("REDIS_URL") or None
    cache_ttl: int = int(os.getenv("CACHE_TTL", "300"))

    # Availability notifications
    notifier_buffer_size: int = int(os.getenv("NOTIFIER_BUFFER_SIZE", "256"))

    # Default privileged account created by the seeding step
    default_librarian_email: str = os.getenv("DEFAULT_LIBRARIAN_EMAIL", "librarian@libris.local")
    default_librarian_name: str = os.getenv("DEFAULT_LIBRARIAN_NAME", "Default Librarian")


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
