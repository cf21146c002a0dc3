"""Validation utilities for destination URLs and account input."""

import re
import string
from urllib.parse import urlsplit

MAX_URL_LENGTH = 2048

# Coarse private-network blocklist. Misses most of 172.16.0.0/12's
# neighbours, IPv6 loopback/private ranges and DNS rebinding.
BLOCKED_HOSTS = {"localhost", "127.0.0.1"}
BLOCKED_HOST_PREFIXES = ("192.168.", "10.", "172.")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_EMAIL_LENGTH = 320
PASSWORD_MIN_LENGTH = 8
# bcrypt only looks at the first 72 bytes
PASSWORD_MAX_BYTES = 72


def is_valid_url(url: str) -> bool:
    """Accept absolute http(s) URLs whose host is not local or private."""
    if not url or not isinstance(url, str):
        return False
    if len(url) > MAX_URL_LENGTH or any(ch.isspace() for ch in url):
        return False

    try:
        parsed = urlsplit(url)
        hostname = parsed.hostname
        # Non-numeric or out-of-range ports only surface here
        parsed.port
    except ValueError:
        return False

    if parsed.scheme not in ("http", "https"):
        return False
    if not hostname:
        return False

    hostname = hostname.lower()
    if hostname in BLOCKED_HOSTS or hostname.startswith(BLOCKED_HOST_PREFIXES):
        return False
    return True


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if len(email) > MAX_EMAIL_LENGTH or not EMAIL_PATTERN.match(email):
        raise ValueError("Please provide a valid email address")
    return email


def check_password_strength(password: str) -> str:
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes long")
    if not (
        any(ch.isupper() for ch in password)
        and any(ch.islower() for ch in password)
        and any(ch.isdigit() for ch in password)
        and any(ch in string.punctuation for ch in password)
    ):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, "
            "one number, and one special character"
        )
    return password
