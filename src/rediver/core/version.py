"""
Version utilities for Rediver CLI.
 - Reads local VERSION file
 - Optionally checks a remote version (disabled unless a URL or override is configured)
 - Compares semver-ish strings safely
"""

import os
from typing import Optional, Tuple
from pathlib import Path

import requests


VERSION_FILE = Path(__file__).parent.parent / "VERSION"
REMOTE_URL_ENV = "REDIVER_CLI_VERSION_URL"
REMOTE_OVERRIDE_ENV = "REDIVER_CLI_REMOTE_VERSION"
SKIP_ENV = "REDIVER_CLI_SKIP_UPDATE_CHECK"


def read_local_version() -> str:
    try:
        with open(VERSION_FILE, encoding="utf-8") as f:
            return f.read().strip()
    except OSError:
        return "0.0.0"


def _parse_version(ver: str) -> Tuple[int, ...]:
    parts = []
    for piece in str(ver).strip().split("."):
        try:
            parts.append(int(piece))
        except ValueError:
            # Ignore non-numeric segments; keep comparison lenient
            break
    return tuple(parts)


def is_newer(remote: str, local: str) -> bool:
    if not remote or not local:
        return False
    return _parse_version(remote) > _parse_version(local)


def fetch_remote_version(url: Optional[str] = None, timeout: float = 3.0) -> Optional[str]:
    env_ver = os.getenv(REMOTE_OVERRIDE_ENV)
    if env_ver:
        return env_ver.strip()
    url = url or os.getenv(REMOTE_URL_ENV)
    if not url:
        return None
    try:
        resp = requests.get(url, timeout=timeout)
    except requests.exceptions.RequestException:
        return None
    if resp.status_code == 200:
        return resp.text.strip()
    return None


def check_for_updates(remote_url: Optional[str] = None) -> Tuple[str, Optional[str], bool, bool]:
    """
    Returns (local_version, remote_version, is_outdated, remote_missing)
    """
    local = read_local_version()
    if os.getenv(SKIP_ENV, "").lower() in {"1", "true", "yes", "y"}:
        return local, None, False, False
    remote = fetch_remote_version(remote_url)
    if not remote:
        return local, None, False, True
    return local, remote, is_newer(remote, local), False
