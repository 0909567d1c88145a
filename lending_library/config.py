import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Database settings
    database_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")
    database_timeout: float = float(os.getenv("LIBRARY_DB_TIMEOUT", "5"))
    # Titles are a soft key unless the deployment asks for uniqueness
    unique_titles: bool = _env_flag("LIBRARY_UNIQUE_TITLES")

    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Management System")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    debug: bool = _env_flag("DEBUG")


settings = Settings()

_logging_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the CLI and API entry points."""
    global _logging_configured
    if _logging_configured:
        return
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    _logging_configured = True
