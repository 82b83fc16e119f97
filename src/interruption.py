"""Detect human submits that cut into an autonomous turn."""

import logging
import time
from collections.abc import Callable

from src.models import InterruptionEvent, SchedulerState

logger = logging.getLogger(__name__)


class InterruptionDetector:
    """Raises a transient interruption signal that expires on its own.

    The signal is advisory: it never feeds back into scheduling or the
    transcript. Expiry is computed from the clock, so no dismissal call
    is needed.
    """

    def __init__(self, window_ms: float = 2000, clock: Callable[[], float] = time.monotonic) -> None:
        self._window_sec = window_ms / 1000
        self._clock = clock
        self._expires_at: float | None = None

    @property
    def window_sec(self) -> float:
        return self._window_sec

    def observe_submit(self, state: SchedulerState) -> InterruptionEvent | None:
        """Check a human submit against the scheduler state at that instant.

        Only a turn whose generation is in flight counts; a speaker still
        waiting out its delay has not started talking yet.

        Returns the raised event, or None when no generation was outstanding.
        """
        if state.active_turn is None or not state.active_turn.pending:
            return None
        self._expires_at = self._clock() + self._window_sec
        logger.info("Interruption: human spoke over %s", state.active_turn.speaker_id)
        return InterruptionEvent(occurred=True, expires_at=self._expires_at)

    @property
    def occurred(self) -> bool:
        return self._expires_at is not None and self._clock() < self._expires_at

    @property
    def event(self) -> InterruptionEvent:
        if self.occurred:
            return InterruptionEvent(occurred=True, expires_at=self._expires_at)
        return InterruptionEvent(occurred=False)
