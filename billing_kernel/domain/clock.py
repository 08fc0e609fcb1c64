"""
Clock -- injectable source of "now" for billing code.

Responsibility:
    Services never call ``datetime.now()``.  Invoice ``sent_at`` /
    ``paid_at`` stamps, document generation times and the fiscal year used
    for invoice numbering all come from an injected Clock.

Architecture position:
    Kernel > Domain.  SystemClock is the only place wall-clock time is read.

Invariants enforced:
    - ``now()`` is always timezone-aware UTC.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

_DEFAULT_TEST_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime: ...

    def today_year(self) -> int:
        """Calendar year of ``now()``, used as the numbering fiscal year."""
        return self.now().year


class SystemClock(Clock):
    """Wall-clock UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock for tests: frozen at a chosen instant until moved explicitly.

    Defaults to 2025-03-01 12:00 UTC.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = _as_utc(fixed_time or _DEFAULT_TEST_TIME)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = _as_utc(time)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError(f"Clock time must be timezone-aware, got {value!r}")
    return value.astimezone(timezone.utc)
