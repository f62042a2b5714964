"""
API key generation.

Format: {prefix}{32 chars}
- prefix is ``blingo-`` unless configured otherwise
- 32 characters drawn from [A-Za-z0-9] with ``secrets`` (62^32 ≈ 10^57 keys)
"""

import re
import secrets
import string
from datetime import datetime

KEY_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
KEY_BODY_LEN = 32
DEFAULT_PREFIX = "blingo-"


def generate_api_key(prefix: str = DEFAULT_PREFIX) -> str:
    """Generate a new opaque API key."""
    body = "".join(secrets.choice(KEY_ALPHABET) for _ in range(KEY_BODY_LEN))
    return f"{prefix}{body}"


def key_pattern(prefix: str = DEFAULT_PREFIX) -> re.Pattern[str]:
    return re.compile(f"^{re.escape(prefix)}[A-Za-z0-9]{{{KEY_BODY_LEN}}}$")


def matches_key_format(key: str, prefix: str = DEFAULT_PREFIX) -> bool:
    """True if ``key`` has the shape of a generated key (no store lookup)."""
    if not key or not isinstance(key, str):
        return False
    return key_pattern(prefix).match(key) is not None


def default_key_name(now: datetime | None = None) -> str:
    """Name used when a key is created without one, e.g. ``API Key Mar 5, 2025``."""
    now = now or datetime.now()
    return f"API Key {now.strftime('%b')} {now.day}, {now.year}"
