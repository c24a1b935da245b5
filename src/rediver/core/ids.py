# rediver/core/ids.py
"""Identifier helpers for pipeline steps."""

import re
import secrets
import string

URL_SAFE_ALPHABET = string.ascii_letters + string.digits + "_-"
TEMP_ID_PREFIX = "temp-"


def _random_id(size: int) -> str:
    return "".join(secrets.choice(URL_SAFE_ALPHABET) for _ in range(size))


def slugify(text: str, max_length: int = 40) -> str:
    """Lower-case ASCII slug: [a-z0-9] runs joined by single hyphens."""
    if not text or not isinstance(text, str):
        return ""
    slug = text.lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"[\s_-]+", "-", slug)
    slug = slug.strip("-")
    return slug[:max_length]


def generate_step_key(name: str) -> str:
    """e.g. 'nuclei' -> 'nuclei-V1StGXnO'."""
    slug = slugify(name, 40)
    suffix = _random_id(8)
    return f"{slug}-{suffix}" if slug else f"step-{suffix}"


def generate_temp_step_id() -> str:
    """Client-side placeholder id; the server assigns the real one on save."""
    return f"{TEMP_ID_PREFIX}{_random_id(12)}"


def is_temp_id(step_id: str) -> bool:
    return bool(step_id) and step_id.startswith(TEMP_ID_PREFIX)
