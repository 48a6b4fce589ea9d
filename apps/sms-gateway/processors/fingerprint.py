from datetime import datetime, timezone
import hashlib

SEPARATOR = "|"


def canonical_timestamp(value: datetime) -> str:
    """Render a timestamp as UTC ISO-8601 with millisecond precision

    Naive datetimes are taken to be UTC. Anything finer than a millisecond
    is truncated so both sides of the pipeline hash the same string.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    millis = value.microsecond // 1000
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{millis:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """Inverse of canonical_timestamp; accepts any ISO-8601 string"""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def fingerprint(sender: str, body: str, occurred_at: datetime) -> str:
    """Content hash used as the idempotency key on the relay and the backend"""
    canonical = SEPARATOR.join([sender or "", body or "", canonical_timestamp(occurred_at)])
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
