"""Environment configuration for the SDK.

Values are read once from the process environment (and an optional .env
file) into a frozen Settings object. Explicit constructor arguments always
win over these defaults.

Recognised variables:
- CIPHERISE_URL: server URL used by the demo script
- CIPHERISE_SDK_LOG_HTTP: when set, trace every HTTP request and response
- CIPHERISE_HTTP_TIMEOUT: client-side HTTP timeout in seconds (unset = none)
- CIPHERISE_VALIDATE_SERVER_VERSION: check server compatibility before use
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    url: str = ""
    log_http: bool = False
    http_timeout: Optional[float] = None
    validate_server_version: bool = True


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUTHY


def _parse_timeout(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    timeout = float(value)
    if timeout <= 0:
        raise ValueError("CIPHERISE_HTTP_TIMEOUT must be positive")
    return timeout


def load_settings() -> Settings:
    """Build Settings from the environment without caching."""
    load_dotenv()
    return Settings(
        url=os.getenv("CIPHERISE_URL", ""),
        # Any value, even empty, turns tracing on.
        log_http=os.getenv("CIPHERISE_SDK_LOG_HTTP") is not None,
        http_timeout=_parse_timeout(os.getenv("CIPHERISE_HTTP_TIMEOUT")),
        validate_server_version=_parse_bool(os.getenv("CIPHERISE_VALIDATE_SERVER_VERSION"), True),
    )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings.

    In tests: call get_settings.cache_clear() after changing the environment.
    """
    return load_settings()
