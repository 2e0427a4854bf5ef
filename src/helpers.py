import os
import re
import secrets
import string

URL_SAFE_CHARS = string.ascii_uppercase + string.ascii_lowercase + string.digits + "-_"
DEFAULT_LENGTH = int(os.getenv("SHORT_CODE_LENGTH", 6))
MAX_CODE_LENGTH = 50

# Paths served by the router that a short code would shadow
RESERVED_CODES = frozenset(
    {"health", "shorten", "urls", "stats", "docs", "redoc", "openapi.json"}
)

_CODE_PATTERN = re.compile(rf"[A-Za-z0-9_-]{{1,{MAX_CODE_LENGTH}}}")


def generate_code(length: int = DEFAULT_LENGTH) -> str:
    """Generate a random URL-safe short code."""

    if length <= 0:
        raise ValueError(f"Code length must be positive, got {length}")

    # token_urlsafe(n) encodes n random bytes, always at least n characters
    return secrets.token_urlsafe(length)[:length]


def is_valid_code(code: str) -> bool:
    """Check a code against the store's character set and length."""

    return bool(_CODE_PATTERN.fullmatch(code))
