"""
Configuration module for GeoIP API
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or invalid"""


def load_env_file(path: str = ".env") -> bool:
    """Load KEY=VALUE pairs from path; variables already set in the environment win"""
    return load_dotenv(path, override=False)


load_env_file(os.getenv("GEOIP_ENV_FILE", ".env"))


def env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable"""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


def env_list(key: str, default: str) -> List[str]:
    """Get comma separated list from environment variable, blanks dropped"""
    return [item.strip() for item in os.getenv(key, default).split(",") if item.strip()]


def _read_version_from_repo(default: str = "dev") -> str:
    version = os.getenv("APP_VERSION")
    if version:
        return version
    try:
        # repo root: geoip_api/.. (one parent up from the package)
        version_file = Path(__file__).resolve().parents[1] / "VERSION"
        v = version_file.read_text(encoding="utf-8").strip()
        if v:
            return v
    except OSError:
        pass
    return default


API_VERSION = _read_version_from_repo()

# Server configuration
HOST = os.getenv("GEOIP_RS_HOST", "127.0.0.1")
PORT = int(os.getenv("GEOIP_RS_PORT", "8080"))

# Lookup configuration
DEFAULT_LANG = os.getenv("GEOIP_DEFAULT_LANG", "en")
REAL_IP_HEADERS = env_list("GEOIP_REAL_IP_HEADERS", "X-Real-IP,X-Forwarded-For")

# Update provider configuration
DEFAULT_DOWNLOAD_URL = (
    "https://download.maxmind.com/app/geoip_download"
    "?edition_id={edition}&license_key={license}&suffix=tar.gz"
)
DOWNLOAD_URL = os.getenv("GEOIP_DOWNLOAD_URL", DEFAULT_DOWNLOAD_URL)
EDITIONS = env_list("GEOIP_EDITIONS", "GeoLite2-City")
UPDATE_INTERVAL_SECONDS = float(os.getenv("GEOIP_UPDATE_INTERVAL_SECONDS", "86400"))
DOWNLOAD_TIMEOUT_SECONDS = float(os.getenv("GEOIP_DOWNLOAD_TIMEOUT_SECONDS", "60"))
VERIFY_CHECKSUM = env_bool("GEOIP_VERIFY_CHECKSUM", False)

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")

# CORS configuration
CORS_ALLOWED_HEADERS = [
    "Authorization",
    "Accept",
    "Forwarded",
    "Content-Type",
    "X-Real-IP",
    "X-Forwarded-For",
]
CORS_MAX_AGE = 3600


def get_db_path() -> str:
    """Live database path; read at call time so the CLI can inject it"""
    path = os.getenv("GEOIP_RS_DB_PATH", "").strip()
    if not path:
        raise ConfigError(
            "You must specify the db path, either as a command line argument "
            "or as GEOIP_RS_DB_PATH env var"
        )
    return path


def get_license_key() -> str:
    """Update provider license; empty string disables the refresher"""
    return os.getenv("GEOIP_LICENSE", "").strip()
