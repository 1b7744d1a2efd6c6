"""Minimum-gap throttling for hub queries and logins."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


def monotonic_ms() -> int:
    """Return a monotonic timestamp in milliseconds."""
    return time.monotonic_ns() // 1_000_000


def should_run(now_ms: int, last_ms: int | None, min_gap_ms: int, force: bool) -> bool:
    """Decide whether an operation may run.

    Args:
        now_ms: Current timestamp.
        last_ms: Timestamp of the last run, None if it never ran.
        min_gap_ms: Minimum time between two runs.
        force: Run regardless of the gap.

    Returns:
        True if forced, if it never ran, or if at least min_gap_ms elapsed.

    """
    if force or last_ms is None:
        return True
    return now_ms - last_ms >= min_gap_ms


class QueryGate:
    """Debounce shared by the queries of one connector.

    ``try_pass`` checks and records the timestamp without awaiting, so two
    callers on the event loop cannot both pass within one gap. A call that
    passes consumes the gap whether or not the request then succeeds.
    """

    def __init__(
        self,
        min_gap_ms: int,
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        """Initialize the gate."""
        self.min_gap_ms = min_gap_ms
        self._clock = clock
        self._last_ms: int | None = None

    def try_pass(self, force: bool = False) -> bool:
        """Return True and record the call if the gap allows it."""
        now = self._clock()
        if not should_run(now, self._last_ms, self.min_gap_ms, force):
            return False
        self._last_ms = now
        return True

    def reset(self) -> None:
        """Forget the last call."""
        self._last_ms = None
