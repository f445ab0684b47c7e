"""Wall-clock source used for timestamps and expiry checks."""

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Clock backed by the host's UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
