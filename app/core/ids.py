"""Application-wide identifier and slug utilities."""

from __future__ import annotations

import re
import secrets
import threading
import time
import unicodedata

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
_LAST_MILLIS = 0
_COUNTER = 0
_LOCK = threading.Lock()
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    chars: list[str] = []
    current = value
    while current:
        current, remainder = divmod(current, 36)
        chars.append(_ALPHABET[remainder])
    return "".join(reversed(chars))


def generate_cuid(length: int = 24) -> str:
    """Generate a collision-resistant lowercase identifier with a `c` prefix."""
    global _LAST_MILLIS, _COUNTER

    now_millis = int(time.time() * 1000)
    with _LOCK:
        if now_millis == _LAST_MILLIS:
            _COUNTER += 1
        else:
            _LAST_MILLIS = now_millis
            _COUNTER = 0
        counter = _COUNTER

    static_part = f"{_to_base36(now_millis)}{_to_base36(counter).rjust(4, '0')}"
    body_len = max(length - 1, 8)
    random_len = max(body_len - len(static_part), 0)
    random_part = "".join(secrets.choice(_ALPHABET) for _ in range(random_len))
    return f"c{(static_part + random_part)[:body_len]}"


def slugify(value: str, *, max_length: int = 80) -> str:
    """Lowercase ASCII slug with single dashes."""
    normalized = unicodedata.normalize("NFKD", value or "")
    ascii_only = normalized.encode("ascii", "ignore").decode("ascii").lower()
    slug = _SLUG_INVALID.sub("-", ascii_only).strip("-")
    if len(slug) > max_length:
        slug = slug[:max_length].rstrip("-")
    return slug


def image_filename(item_id: str, slot: int, *, extension: str = "webp") -> str:
    """Unique filename for one generated image slot of a work item."""
    return f"{item_id}-image-{slot}-{secrets.token_hex(4)}.{extension}"
