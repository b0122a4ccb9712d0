import re
from typing import Optional
from urllib.parse import urlparse

USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")
PIN_RE = re.compile(r"^\d{4}$")
PHONE_RE = re.compile(r"^\+?\d{10,15}$")
PHONE_STRIP_RE = re.compile(r"[\s\-()]")

# Paths served by the frontend; never treated as a profile
RESERVED_USERNAMES = frozenset({
    "app",
    "login",
    "register",
    "dashboard",
    "api",
    "go",
    "_next",
    "favicon.ico",
})


def normalize_phone(phone: str) -> str:
    return PHONE_STRIP_RE.sub("", phone)


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_RE.match(phone))


def is_valid_pin(pin: Optional[str]) -> bool:
    return bool(pin and PIN_RE.match(pin))


def is_valid_username(username: str) -> bool:
    return bool(USERNAME_RE.match(username))


def is_reserved_username(username: str) -> bool:
    return username.lower() in RESERVED_USERNAMES


def is_http_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
