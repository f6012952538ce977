"""Helpers for keeping user-controlled values safe in log output."""

from __future__ import annotations

from typing import Any

_TRUNCATED = "...[truncated]"


def _clean(text: str, max_length: int) -> str:
    flattened = " ".join(text.splitlines())
    cleaned = "".join(ch for ch in flattened if ch.isprintable())
    if len(cleaned) > max_length:
        return cleaned[:max_length] + _TRUNCATED
    return cleaned


def sanitize_for_log(value: Any, max_length: int = 500) -> Any:
    """Strip line breaks and control characters from a value before logging.

    Claims and IdP error bodies are attacker-influenced, so anything taken
    from them goes through here. Mappings and sequences are cleaned
    recursively; other objects are converted with ``str``.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return _clean(value, max_length)
    if isinstance(value, dict):
        return {
            _clean(str(key), max_length): sanitize_for_log(item, max_length)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_log(item, max_length) for item in value]
    return _clean(str(value), max_length)


def mask_email(email: str | None) -> str:
    """``jane.doe@acme.io`` -> ``j***@acme.io``."""
    if not email:
        return ""
    local, sep, domain = str(email).rpartition("@")
    if not sep:
        return "***"
    return sanitize_for_log(f"{local[:1]}***@{domain}")
