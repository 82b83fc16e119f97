"""Turn scheduling: who speaks next, when autonomous turns chain, and the round ceiling.

The scheduler is a synchronous state machine. It never sleeps and never
starts timers; it hands back NextTurn bookings and the session runtime
turns them into loop timers. All randomness goes through an injected
RandomSource so a seeded or scripted source makes scheduling deterministic.
"""

import logging
import random
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Protocol, TypeVar

from config.config_loader import TimingConfig
from src.models import Archetype, Participant, SchedulerPhase, SchedulerState, Turn

logger = logging.getLogger(__name__)

MAX_ROUNDS = 20

T = TypeVar("T")


class RandomSource(Protocol):
    """The subset of random.Random the scheduler draws from."""

    def random(self) -> float: ...

    def uniform(self, a: float, b: float) -> float: ...

    def choice(self, seq: Sequence[T]) -> T: ...


@dataclass(frozen=True)
class NextTurn:
    turn: Turn
    delay_ms: float
    reason: str            # "opener", "reply" or "chain"


class TurnScheduler:
    """Owns the SchedulerState and every transition on it.

    States: IDLE, TURN_IN_FLIGHT (a selected speaker, waiting out its delay
    or generating), CEILING and FINISHED. At most one Turn exists at a time.
    """

    def __init__(
        self,
        roster: Sequence[Participant],
        max_rounds: int = MAX_ROUNDS,
        chain_probability: float = 0.45,
        chain_delay_ms: tuple[float, float] = (1000, 3000),
        reply_delay_ms: tuple[float, float] = (1000, 2500),
        rng: RandomSource | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not roster:
            raise ValueError("roster must contain at least one participant")
        if max_rounds <= 0:
            raise ValueError(f"max_rounds must be positive, got {max_rounds}")
        self._roster = list(roster)
        self._max_rounds = max_rounds
        self._chain_probability = chain_probability
        self._chain_delay_ms = chain_delay_ms
        self._reply_delay_ms = reply_delay_ms
        self._rng: RandomSource = rng if rng is not None else random.Random()
        self._clock = clock

        self._round_count = 0
        self._active: Turn | None = None
        self._reply_deferred = False
        self._turns_issued = 0
        self._finished = False

    @classmethod
    def from_config(
        cls,
        roster: Sequence[Participant],
        max_rounds: int,
        timing: TimingConfig,
        rng: RandomSource | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "TurnScheduler":
        return cls(
            roster,
            max_rounds=max_rounds,
            chain_probability=timing.chain_probability,
            chain_delay_ms=timing.chain_delay_ms,
            reply_delay_ms=timing.reply_delay_ms,
            rng=rng,
            clock=clock,
        )

    # -- read-only accessors -------------------------------------------------

    @property
    def roster(self) -> list[Participant]:
        return list(self._roster)

    @property
    def max_rounds(self) -> int:
        return self._max_rounds

    @property
    def round_count(self) -> int:
        return self._round_count

    @property
    def ceiling_reached(self) -> bool:
        return self._round_count >= self._max_rounds

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def turns_issued(self) -> int:
        return self._turns_issued

    @property
    def phase(self) -> SchedulerPhase:
        if self._finished:
            return SchedulerPhase.FINISHED
        if self._active is not None:
            return SchedulerPhase.TURN_IN_FLIGHT
        if self.ceiling_reached:
            return SchedulerPhase.CEILING
        return SchedulerPhase.IDLE

    @property
    def state(self) -> SchedulerState:
        """Snapshot; mutating it has no effect on the scheduler."""
        return SchedulerState(
            round_count=self._round_count,
            active_turn=replace(self._active) if self._active is not None else None,
            ceiling_reached=self.ceiling_reached,
            finished=self._finished,
        )

    def participant(self, participant_id: str) -> Participant:
        for p in self._roster:
            if p.id == participant_id:
                return p
        raise KeyError(participant_id)

    def opener(self) -> Participant:
        """The default opener: first aggressive participant, else the first on the roster."""
        return next(
            (p for p in self._roster if p.archetype == Archetype.AGGRESSIVE),
            self._roster[0],
        )

    # -- transitions ---------------------------------------------------------

    def open_discussion(self) -> NextTurn | None:
        """Select the opener when nobody has spoken yet."""
        if self._turns_issued or self._active is not None or not self._can_select():
            return None
        return self._reserve(self.opener(), 0.0, "opener")

    def on_human_submit(self) -> NextTurn | None:
        """Select a random roster member to answer the human.

        A selected turn still waiting out its delay is superseded. A turn
        whose generation is outstanding is left alone; the reply is
        deferred until it resolves.
        """
        if not self._can_select():
            logger.info("Human submit at round %d: no further autonomous turns", self._round_count)
            return None
        if self._active is not None and self._active.pending:
            logger.debug("Reply deferred until %s finishes generating", self._active.speaker_id)
            self._reply_deferred = True
            return None
        if self._active is not None:
            logger.debug("Turn for %s superseded by human submit", self._active.speaker_id)
        return self._reserve(self._rng.choice(self._roster), self._delay(self._reply_delay_ms), "reply")

    def begin_generation(self, turn: Turn) -> bool:
        """Mark a booked turn as generating. False for stale or superseded turns."""
        if self._finished or turn is not self._active or turn.pending:
            return False
        turn.pending = True
        return True

    def resolve(self, turn: Turn, success: bool) -> NextTurn | None:
        """End the active turn and decide what follows it.

        Only a successful contribution consumes a round. A deferred human
        reply takes precedence over chaining; failures never chain.
        """
        if turn is not self._active:
            logger.warning("Ignoring resolution of stale turn for %s", turn.speaker_id)
            return None

        self._active = None
        deferred, self._reply_deferred = self._reply_deferred, False

        if self._finished:
            return None

        if success:
            self._round_count += 1
            logger.info("Round %d/%d complete (%s)", self._round_count, self._max_rounds, turn.speaker_id)

        if self.ceiling_reached:
            logger.info("Round ceiling of %d reached", self._max_rounds)
            return None
        if deferred:
            return self._reserve(self._rng.choice(self._roster), self._delay(self._reply_delay_ms), "reply")
        if not success:
            return None
        return self._maybe_chain(turn.speaker_id)

    def finish(self) -> None:
        """Stop issuing turns. An outstanding generation stays active until resolved."""
        self._finished = True
        self._reply_deferred = False
        if self._active is not None and not self._active.pending:
            self._active = None

    # -- helpers -------------------------------------------------------------

    def _can_select(self) -> bool:
        return not self._finished and not self.ceiling_reached

    def _maybe_chain(self, speaker_id: str) -> NextTurn | None:
        if self._rng.random() >= self._chain_probability:
            return None
        others = [p for p in self._roster if p.id != speaker_id]
        if not others:
            return None
        return self._reserve(self._rng.choice(others), self._delay(self._chain_delay_ms), "chain")

    def _delay(self, bounds: tuple[float, float]) -> float:
        low, high = bounds
        if high <= low:
            return low
        return self._rng.uniform(low, high)

    def _reserve(self, speaker: Participant, delay_ms: float, reason: str) -> NextTurn:
        turn = Turn(speaker_id=speaker.id, started_at=self._clock())
        self._active = turn
        self._turns_issued += 1
        logger.debug("Selected %s (%s) after %.0fms", speaker.id, reason, delay_ms)
        return NextTurn(turn=turn, delay_ms=delay_ms, reason=reason)
