"""
Process-wide configuration read from the environment
"""

import os
import logging
from dataclasses import dataclass, replace
from typing import Optional

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8080"
DEFAULT_TIMEOUT = 15.0


@dataclass(frozen=True)
class Settings:
    """
    Gateway and display settings

    Attributes:
        api_url: base URL of the REST gateway (no trailing slash)
        api_token: bearer token sent with every request, if set
        timeout: request timeout in seconds
        currency_symbol: symbol used when displaying amounts
        display_rate: multiplier applied to amounts at display time only
    """
    api_url: str = DEFAULT_API_URL
    api_token: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    currency_symbol: str = "$"
    display_rate: float = 1.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from COFFEEPOS_* environment variables"""
        return cls(
            api_url=normalize_base_url(os.environ.get("COFFEEPOS_API_URL", DEFAULT_API_URL)),
            api_token=os.environ.get("COFFEEPOS_API_TOKEN") or None,
            timeout=_parse_positive("COFFEEPOS_TIMEOUT", os.environ.get("COFFEEPOS_TIMEOUT"), DEFAULT_TIMEOUT),
            currency_symbol=os.environ.get("COFFEEPOS_CURRENCY_SYMBOL", "$"),
            display_rate=_parse_positive("COFFEEPOS_DISPLAY_RATE", os.environ.get("COFFEEPOS_DISPLAY_RATE"), 1.0),
        )


def normalize_base_url(url: str) -> str:
    """Trim trailing slashes from a base URL"""
    return url.rstrip("/")


def _parse_positive(name: str, raw: Optional[str], default: float) -> float:
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {raw!r}")
    return value


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them from the environment on first use"""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
        logger.debug(f"Loaded settings: api_url={_settings.api_url}, timeout={_settings.timeout}s")
    return _settings


def configure(**overrides) -> Settings:
    """
    Override settings at runtime

    Unknown keys raise ValidationError. Returns the new settings.
    """
    global _settings
    current = get_settings()
    unknown = set(overrides) - set(Settings.__dataclass_fields__)
    if unknown:
        raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")

    if overrides.get("api_url") is not None:
        overrides["api_url"] = normalize_base_url(overrides["api_url"])
    if "timeout" in overrides and overrides["timeout"] is not None and overrides["timeout"] <= 0:
        raise ValidationError("timeout must be positive")

    _settings = replace(current, **{k: v for k, v in overrides.items() if v is not None or k == "api_token"})
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next access re-reads the environment"""
    global _settings
    _settings = None
