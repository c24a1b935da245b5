# rediver/core/config.py
"""
Client Configuration
--------------------
Reads API connection settings from the environment (and a .env file) into an
explicit ClientConfig object that is handed to the REST client.

Variables:
  REDIVER_API_URL      Backend base URL (default http://localhost:8080)
  REDIVER_API_TOKEN    Bearer token used for every request
  REDIVER_API_TIMEOUT  Request timeout in seconds (default 30)
  REDIVER_API_RETRIES  Retries for idempotent reads on timeout/connection errors (default 0)
  REDIVER_TENANT_ID    Optional tenant header
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_API_URL = "http://localhost:8080"
DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRIES = 0


def load_env_file():
    """Load .env from the working directory if present, else let dotenv search upwards."""
    cwd_env = os.path.join(os.getcwd(), ".env")
    if os.path.exists(cwd_env):
        load_dotenv(cwd_env, override=True)
    else:
        load_dotenv()


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ValueError(f"Invalid {name}={raw!r}: expected a number") from None


@dataclass
class ClientConfig:
    api_url: str = DEFAULT_API_URL
    api_token: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    tenant_id: Optional[str] = None

    @classmethod
    def from_env(cls, load_file: bool = True) -> "ClientConfig":
        if load_file:
            load_env_file()
        return cls(
            api_url=(os.getenv("REDIVER_API_URL") or DEFAULT_API_URL).rstrip("/"),
            api_token=os.getenv("REDIVER_API_TOKEN") or None,
            timeout=_env_number("REDIVER_API_TIMEOUT", DEFAULT_TIMEOUT, float),
            retries=_env_number("REDIVER_API_RETRIES", DEFAULT_RETRIES, int),
            tenant_id=os.getenv("REDIVER_TENANT_ID") or None,
        )
