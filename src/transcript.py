"""Append-only transcript of every contribution in a discussion."""

import logging
from collections.abc import Callable
from datetime import datetime

from src.models import Contribution

logger = logging.getLogger(__name__)


class TranscriptLog:
    """Ordered record of contributions; source of truth for generation history.

    Entries are appended in resolution order and never mutated, reordered
    or removed.
    """

    def __init__(self, now: Callable[[], datetime] = datetime.now) -> None:
        self._entries: list[Contribution] = []
        self._now = now

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, speaker_id: str, display_name: str, text: str, kind: str = "message") -> Contribution:
        """Create a contribution stamped now and append it."""
        created_at = self._now()
        if self._entries and created_at < self._entries[-1].created_at:
            # wall clock stepped backwards
            created_at = self._entries[-1].created_at
        contribution = Contribution(
            id=self._entries[-1].id + 1 if self._entries else 1,
            speaker_id=speaker_id,
            display_name=display_name,
            text=text,
            created_at=created_at,
            kind=kind,
        )
        self.append(contribution)
        return contribution

    def append(self, contribution: Contribution) -> int:
        """Append a contribution and return the new length.

        Raises:
            ValueError: If the contribution would break id or time ordering.
        """
        if self._entries:
            last = self._entries[-1]
            if contribution.id <= last.id:
                raise ValueError(
                    f"Contribution id {contribution.id} does not follow last id {last.id}"
                )
            if contribution.created_at < last.created_at:
                raise ValueError(f"Contribution {contribution.id} is older than the last entry")
        self._entries.append(contribution)
        logger.debug("Transcript #%d from %s (%s)", contribution.id, contribution.speaker_id, contribution.kind)
        return len(self._entries)

    def latest(self, n: int) -> list[Contribution]:
        """Return the n most recent contributions, oldest first."""
        if n <= 0:
            return []
        return list(self._entries[-n:])

    def all(self) -> list[Contribution]:
        return list(self._entries)
