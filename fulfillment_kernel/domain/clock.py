"""
Clock (``fulfillment_kernel.domain.clock``).

Every timestamp the engine writes (picking, confirmation, approval,
payment stamps, ``created_at``/``updated_at``, invoice and due dates) comes
from the ``Clock`` a service was constructed with.  Engines never read the
wall clock.

``SystemClock`` is the production implementation; ``DeterministicClock``
freezes time for tests and only moves when told to.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

_DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of the current time.  ``now()`` is timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen test clock.

    ``now()`` keeps returning the same instant until ``advance()`` moves it,
    so stamps written by one operation compare equal.
    """

    def __init__(self, start: datetime | None = None):
        start = start or _DEFAULT_START
        if start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start")
        self._current = start

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 0, *, days: int = 0) -> datetime:
        """Move forward and return the new time."""
        if seconds < 0 or days < 0:
            raise ValueError("a clock cannot move backwards")
        self._current += timedelta(days=days, seconds=seconds)
        return self._current
