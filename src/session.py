"""Discussion runtime: timers, generation tasks and human input on one event loop.

Every handler here is a plain synchronous method run by the asyncio loop,
so each timer fire, generation result, submit or dictation callback sees
and mutates scheduler state atomically. The only suspension points are
the awaited reply generation and the loop timers.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Protocol

from config.config_loader import AppConfig, TimingConfig
from src.input_capture import DictationError, DictationSource, EmptySubmitError, InputCapture
from src.interruption import InterruptionDetector
from src.models import (
    Contribution,
    DictationUpdate,
    InterruptionEvent,
    Participant,
    SchedulerPhase,
    SchedulerState,
    SessionSetup,
    Turn,
)
from src.providers.base import GenerationError
from src.scheduler import NextTurn, RandomSource, TurnScheduler
from src.transcript import TranscriptLog

logger = logging.getLogger(__name__)

USER_ID = "user"


class SessionClosedError(RuntimeError):
    """Raised when input arrives after the discussion was finished."""


class ReplyGenerator(Protocol):
    async def generate_reply(
        self,
        participant: Participant,
        topic: str,
        job_title: str,
        history: Sequence[Contribution],
    ) -> str: ...


class DiscussionSession:
    """One group discussion between the roster and a single human."""

    def __init__(
        self,
        setup: SessionSetup,
        scheduler: TurnScheduler,
        generator: ReplyGenerator,
        timing: TimingConfig | None = None,
        history_window: int = 5,
        user_name: str = "你",
        detector: InterruptionDetector | None = None,
        dictation_source: DictationSource | None = None,
        on_contribution: Callable[[Contribution], None] | None = None,
        on_turn_started: Callable[[Turn, Participant], None] | None = None,
        on_interruption: Callable[[InterruptionEvent], None] | None = None,
        on_interruption_cleared: Callable[[], None] | None = None,
    ) -> None:
        self._setup = setup
        self._scheduler = scheduler
        self._generator = generator
        self._timing = timing or TimingConfig()
        self._history_window = history_window
        self._user_name = user_name
        self._detector = detector or InterruptionDetector(self._timing.interruption_window_ms)
        self._input = InputCapture(dictation_source)
        self._transcript = TranscriptLog()

        self._on_contribution = on_contribution
        self._on_turn_started = on_turn_started
        self._on_interruption = on_interruption
        self._on_interruption_cleared = on_interruption_cleared

        self._timers: set[asyncio.TimerHandle] = set()
        self._tasks: set[asyncio.Task] = set()
        self._opener_handle: asyncio.TimerHandle | None = None
        self._next_turn_handle: asyncio.TimerHandle | None = None
        self._clear_handle: asyncio.TimerHandle | None = None
        self._started = False
        self._finished = False

    @classmethod
    def from_config(
        cls,
        setup: SessionSetup,
        config: AppConfig,
        generator: ReplyGenerator,
        rng: RandomSource | None = None,
        dictation_source: DictationSource | None = None,
        **callbacks,
    ) -> "DiscussionSession":
        scheduler = TurnScheduler.from_config(
            config.roster, config.defaults.max_rounds, config.timing, rng=rng
        )
        return cls(
            setup,
            scheduler,
            generator,
            timing=config.timing,
            history_window=config.defaults.history_window,
            user_name=config.defaults.user_name,
            dictation_source=dictation_source,
            **callbacks,
        )

    # -- read-only views -----------------------------------------------------

    @property
    def setup(self) -> SessionSetup:
        return self._setup

    @property
    def roster(self) -> list[Participant]:
        return self._scheduler.roster

    @property
    def state(self) -> SchedulerState:
        return self._scheduler.state

    @property
    def phase(self) -> SchedulerPhase:
        return self._scheduler.phase

    @property
    def interruption(self) -> InterruptionEvent:
        return self._detector.event

    @property
    def contributions(self) -> list[Contribution]:
        return self._transcript.all()

    @property
    def pending_input(self) -> str:
        """Buffered text plus the interim dictation fragment, for display."""
        return self._input.display_text

    @property
    def listening(self) -> bool:
        return self._input.listening

    @property
    def dictation_available(self) -> bool:
        return self._input.has_source

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def outstanding_generations(self) -> int:
        return len(self._tasks)

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Arm the opener timer. Must be called from the running loop."""
        if self._started:
            return
        self._started = True
        self._opener_handle = self._call_later(self._timing.opener_grace_ms, self._on_opener_due)
        logger.info(
            "Discussion started: %d participants, opener after %.0fms",
            len(self._scheduler.roster),
            self._timing.opener_grace_ms,
        )

    def finish(self) -> list[Contribution]:
        """Stop the discussion and hand back the full transcript.

        Pending timers are cancelled; generations already in flight run to
        completion but their results are discarded.
        """
        if self._finished:
            return self._transcript.all()
        self._finished = True
        self._scheduler.finish()
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()
        self._opener_handle = self._next_turn_handle = self._clear_handle = None
        self._input.stop_dictation()
        logger.info(
            "Discussion finished: %d rounds, %d contributions",
            self._scheduler.round_count,
            len(self._transcript),
        )
        return self._transcript.all()

    async def close(self) -> None:
        """Finish and wait for any outstanding generation to settle."""
        self.finish()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # -- human input ---------------------------------------------------------

    def type_text(self, text: str) -> None:
        """Replace the pending buffer with keyboard input."""
        self._input.set_text(text)

    def start_dictation(self) -> bool:
        if self._finished:
            return False
        self._cancel_opener()
        return self._input.start_dictation()

    def stop_dictation(self) -> bool:
        return self._input.stop_dictation()

    def on_dictation_result(self, update: DictationUpdate) -> None:
        self._input.on_dictation_result(update)

    def on_dictation_error(self, error: DictationError) -> None:
        self._input.on_dictation_error(error)

    def submit(self, text: str | None = None) -> Contribution:
        """Submit pending input (or text) as the human's contribution.

        Raises:
            SessionClosedError: After finish().
            EmptySubmitError: If there is nothing to submit; nothing changes.
        """
        if self._finished:
            raise SessionClosedError("Discussion already finished")
        if text is not None:
            if not text.strip():
                raise EmptySubmitError("Nothing to submit")
            self._input.set_text(text)
        message = self._input.take_submission()
        self._cancel_opener()

        event = self._detector.observe_submit(self._scheduler.state)
        contribution = self._transcript.record(
            USER_ID,
            self._user_name,
            message,
            kind="interruption" if event else "message",
        )
        booking = self._scheduler.on_human_submit()
        if booking is not None:
            self._book(booking)

        if event is not None:
            self._cancel(self._clear_handle)
            self._clear_handle = self._call_later(
                self._detector.window_sec * 1000, self._on_interruption_expired
            )
        self._emit(self._on_contribution, contribution)
        if event is not None:
            self._emit(self._on_interruption, event)
        return contribution

    # -- event handlers ------------------------------------------------------

    def _on_opener_due(self) -> None:
        self._opener_handle = None
        if self._finished:
            return
        if len(self._transcript) or self._input.has_input or self._input.listening:
            logger.debug("Opener skipped: the human is already active")
            return
        booking = self._scheduler.open_discussion()
        if booking is not None:
            self._book(booking)

    def _on_turn_due(self, turn: Turn) -> None:
        self._next_turn_handle = None
        if not self._scheduler.begin_generation(turn):
            logger.debug("Dropping stale turn for %s", turn.speaker_id)
            return
        participant = self._scheduler.participant(turn.speaker_id)
        history = self._transcript.latest(self._history_window)
        task = asyncio.create_task(self._generate(turn, participant, history))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._emit(self._on_turn_started, turn, participant)

    async def _generate(self, turn: Turn, participant: Participant, history: list[Contribution]) -> None:
        text: str | None = None
        try:
            text = await self._generator.generate_reply(
                participant, self._setup.topic, self._setup.job_title, history
            )
        except GenerationError as exc:
            logger.warning("Turn for %s produced nothing: %s", participant.id, exc)
        except Exception:
            logger.exception("Unexpected failure generating for %s", participant.id)
        self._on_generation_resolved(turn, participant, text)

    def _on_generation_resolved(self, turn: Turn, participant: Participant, text: str | None) -> None:
        if self._finished:
            if text is not None:
                logger.info("Discarding reply from %s that arrived after finish", participant.id)
            self._scheduler.resolve(turn, success=False)
            return

        contribution = None
        if text is not None:
            contribution = self._transcript.record(participant.id, participant.name, text)
        booking = self._scheduler.resolve(turn, success=contribution is not None)
        if booking is not None:
            self._book(booking)
        if contribution is not None:
            self._emit(self._on_contribution, contribution)

    def _on_interruption_expired(self) -> None:
        self._clear_handle = None
        self._emit(self._on_interruption_cleared)

    # -- timers --------------------------------------------------------------

    def _book(self, booking: NextTurn) -> None:
        self._cancel(self._next_turn_handle)
        self._next_turn_handle = self._call_later(booking.delay_ms, self._on_turn_due, booking.turn)

    def _call_later(self, delay_ms: float, callback: Callable[..., None], *args) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def fire() -> None:
            self._timers.discard(handle)
            callback(*args)

        handle = loop.call_later(delay_ms / 1000, fire)
        self._timers.add(handle)
        return handle

    def _cancel(self, handle: asyncio.TimerHandle | None) -> None:
        if handle is not None:
            handle.cancel()
            self._timers.discard(handle)

    def _cancel_opener(self) -> None:
        self._cancel(self._opener_handle)
        self._opener_handle = None

    @staticmethod
    def _emit(callback: Callable[..., None] | None, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Observer callback %r failed", callback)
