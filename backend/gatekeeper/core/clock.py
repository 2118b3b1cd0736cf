"""Wall-clock source.

Services take a ``Clock`` so expiry and throttle windows can be tested
without sleeping. All timestamps are timezone-aware UTC.
"""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)
