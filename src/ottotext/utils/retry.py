"""Backoff helpers shared by the remote clients."""

from __future__ import annotations

import math
from typing import Optional

DEFAULT_MAX_DELAY = 60.0


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a ``Retry-After`` header given in seconds.

    Negative, non-numeric and non-finite values are ignored.
    """
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return seconds


def backoff_delay(
    attempt: int,
    retry_after: Optional[float] = None,
    max_delay: float = DEFAULT_MAX_DELAY,
) -> float:
    """Seconds to wait after failed attempt number `attempt` (counting from 0).

    A server-advised wait wins; otherwise the delay doubles with every attempt.
    Either way the wait never exceeds `max_delay`.
    """
    if retry_after is not None:
        delay = retry_after
    else:
        delay = float(2 ** min(attempt, 32))
    return min(delay, max_delay)
