"""
Wall-clock implementation of the Clock port.
"""

from datetime import datetime, UTC

from app.domain.ports import Clock


class SystemClock(Clock):
    """Returns the current UTC time."""

    def now(self) -> datetime:
        return datetime.now(UTC)
