from datetime import timedelta

DEFAULT_BASE_DELAY = timedelta(seconds=60)
DEFAULT_MAX_EXPONENT = 4  # caps the delay at 16x the base


def backoff_delay(
    attempt_count: int,
    base_delay: timedelta = DEFAULT_BASE_DELAY,
    max_exponent: int = DEFAULT_MAX_EXPONENT,
) -> timedelta:
    """Delay before the next delivery attempt: base * 2^min(attempts, cap)

    With the defaults: 1, 2, 4, 8, 16, 16, ... minutes.
    """
    exponent = min(max(attempt_count, 0), max_exponent)
    return base_delay * (2 ** exponent)
