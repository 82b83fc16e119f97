"""Pending human input from typed text and streaming dictation."""

import logging
from typing import Protocol

from src.models import DictationUpdate

logger = logging.getLogger(__name__)

NO_SPEECH = "no-speech"


class EmptySubmitError(ValueError):
    """Raised when a submit carries no text after trimming."""


class DictationError(Exception):
    """Raised by a dictation source; only NO_SPEECH is harmless."""

    def __init__(self, code: str, message: str = "") -> None:
        self.code = code
        super().__init__(f"[dictation:{code}] {message}" if message else f"[dictation:{code}]")

    @property
    def is_no_speech(self) -> bool:
        return self.code.strip().lower().replace("_", "-") == NO_SPEECH


class DictationSource(Protocol):
    """Speech-to-text engine; results come back through InputCapture callbacks."""

    def start(self) -> None: ...

    def stop(self) -> None: ...


class InputCapture:
    """Merges keystrokes and dictation into one pending buffer.

    Keystrokes replace the buffer. Dictation appends only finalized
    segments; the interim fragment is display-only and never submitted.
    """

    def __init__(self, source: DictationSource | None = None) -> None:
        self._source = source
        self._buffer = ""
        self._interim = ""
        self._listening = False

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def interim(self) -> str:
        return self._interim

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def display_text(self) -> str:
        return self._buffer + self._interim

    @property
    def has_input(self) -> bool:
        return bool(self._buffer)

    @property
    def has_source(self) -> bool:
        return self._source is not None

    def set_text(self, text: str) -> None:
        self._buffer = text

    def start_dictation(self) -> bool:
        """Start listening. Returns False if already listening."""
        if self._listening:
            return False
        if self._source is not None:
            self._source.start()
        self._listening = True
        logger.debug("Dictation started")
        return True

    def stop_dictation(self) -> bool:
        """Stop listening, dropping the interim fragment but keeping finalized text."""
        self._interim = ""
        if not self._listening:
            return False
        self._listening = False
        if self._source is not None:
            self._source.stop()
        logger.debug("Dictation stopped with %d buffered chars", len(self._buffer))
        return True

    def on_dictation_result(self, update: DictationUpdate) -> None:
        if not self._listening:
            logger.debug("Dropping dictation result received while not listening")
            return
        finalized = "".join(update.final_segments)
        if finalized:
            self._buffer += finalized
        self._interim = update.interim_text

    def on_dictation_error(self, error: DictationError) -> bool:
        """Handle a source error. Returns True if listening was forced off."""
        if error.is_no_speech:
            logger.debug("Dictation reported no speech; still listening")
            return False
        logger.warning("Dictation error, stopping: %s", error)
        self._interim = ""
        if not self._listening:
            return False
        self._listening = False
        if self._source is not None:
            self._source.stop()
        return True

    def take_submission(self) -> str:
        """Return the trimmed buffer and clear all pending input.

        Raises:
            EmptySubmitError: If the buffer is blank; nothing is changed.
        """
        text = self._buffer.strip()
        if not text:
            raise EmptySubmitError("Nothing to submit")
        self.stop_dictation()
        self._buffer = ""
        self._interim = ""
        return text
