"""Coercion of untrusted model output

Extraction output is untrusted: a non-numeric string must become None
(never 0) and a blank string must become None (never "").
"""

from datetime import datetime
from typing import Any, Optional
import math
import re

KIGALI_OFFSET = "+02:00"  # Africa/Kigali, no DST

_ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")
_LOCAL_TIMESTAMP = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[ T](\d{2}):(\d{2})(?::(\d{2}))?$"
)


def safe_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = value.replace(",", "").strip()
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def safe_string(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(math.trunc(value)) if math.isfinite(value) else None
    return None


def _is_valid_iso(text: str) -> bool:
    normalized = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        datetime.fromisoformat(normalized)
    except ValueError:
        return False
    return True


def parse_kigali_timestamp(raw: Any) -> Optional[str]:
    """Turn 'YYYY-MM-DD HH:MM[:SS]' local time into ISO-8601 with the Kigali offset

    Strings that already are valid ISO-8601 are returned unchanged. Anything
    that is not a real calendar date and time gives None.
    """
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    if _ISO_PREFIX.match(text):
        return text if _is_valid_iso(text) else None
    match = _LOCAL_TIMESTAMP.match(text)
    if not match:
        return None
    year, month, day, hour, minute, second = match.groups()
    result = f"{year}-{month}-{day}T{hour}:{minute}:{second or '00'}{KIGALI_OFFSET}"
    return result if _is_valid_iso(result) else None
