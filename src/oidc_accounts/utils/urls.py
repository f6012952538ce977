from __future__ import annotations

import re

_BASE64_DATA_URL = re.compile(r"^data:([a-z]+/[^;,]+)?(;[^;,]+)*;base64,", re.IGNORECASE)


def is_base64_url(value: str) -> bool:
    """True for ``data:`` URLs carrying a Base64 payload (``data:image/png;base64,...``)."""
    return bool(_BASE64_DATA_URL.match(value.strip()))
