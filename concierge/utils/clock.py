"""Time helpers."""

from collections.abc import Callable
from datetime import UTC, date, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(UTC)


def utc_today(clock: Clock = utc_now) -> date:
    """Calendar day (UTC) according to clock."""
    return clock().astimezone(UTC).date()
