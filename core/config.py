"""Service configuration.

Reads settings from environment variables, loading a .env file at the
repository root first when one exists.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Load .env file if it exists
from dotenv import load_dotenv
env_path = Path(__file__).resolve().parents[1] / ".env"
if env_path.exists():
    load_dotenv(env_path)


DEFAULT_ERP_STOCK_METHOD = "get_stock_flow_by_warehouse"
HARD_MAX_LIMIT = 500


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the reconciliation service."""
    # Source A: legacy inventory database
    legacy_db_url: Optional[str] = None
    legacy_query_path: Optional[str] = None
    legacy_search_pushdown: bool = False

    # Source B: ERP HTTP API
    erp_base_url: Optional[str] = None
    erp_api_key: Optional[str] = None
    erp_api_secret: Optional[str] = None
    erp_stock_method: str = DEFAULT_ERP_STOCK_METHOD
    erp_search_pushdown: bool = False

    # Report behavior
    source_fetch_timeout_seconds: float = 60.0
    report_default_limit: int = 100
    report_max_limit: int = HARD_MAX_LIMIT
    location_config_path: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def legacy_configured(self) -> bool:
        return bool(self.legacy_db_url and self.legacy_query_path)

    @property
    def erp_configured(self) -> bool:
        return bool(self.erp_base_url)

    @property
    def log_level_value(self) -> int:
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.INFO


def load_settings() -> Settings:
    """Build Settings from the environment.

    Raises:
        ValueError: If a numeric variable cannot be parsed or is out of range
    """
    max_limit = min(_env_int("REPORT_MAX_LIMIT", HARD_MAX_LIMIT), HARD_MAX_LIMIT)
    default_limit = _env_int("REPORT_DEFAULT_LIMIT", 100)
    timeout = _env_float("SOURCE_FETCH_TIMEOUT_SECONDS", 60.0)

    if max_limit < 1:
        raise ValueError("REPORT_MAX_LIMIT must be positive")
    if not 1 <= default_limit <= max_limit:
        raise ValueError(
            f"REPORT_DEFAULT_LIMIT must be between 1 and {max_limit}, got {default_limit}"
        )
    if timeout <= 0:
        raise ValueError("SOURCE_FETCH_TIMEOUT_SECONDS must be positive")

    return Settings(
        legacy_db_url=os.getenv("LEGACY_DB_URL") or None,
        legacy_query_path=os.getenv("LEGACY_QUERY_PATH") or None,
        legacy_search_pushdown=_env_bool("LEGACY_SEARCH_PUSHDOWN", False),
        erp_base_url=os.getenv("ERP_BASE_URL") or None,
        erp_api_key=os.getenv("ERP_API_KEY") or None,
        erp_api_secret=os.getenv("ERP_API_SECRET") or None,
        erp_stock_method=os.getenv("ERP_STOCK_METHOD") or DEFAULT_ERP_STOCK_METHOD,
        erp_search_pushdown=_env_bool("ERP_SEARCH_PUSHDOWN", False),
        source_fetch_timeout_seconds=timeout,
        report_default_limit=default_limit,
        report_max_limit=max_limit,
        location_config_path=os.getenv("LOCATION_CONFIG_PATH") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=_env_bool("LOG_JSON", False),
    )
