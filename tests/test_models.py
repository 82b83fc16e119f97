"""Tests for src/models.py dataclasses."""

import dataclasses
from datetime import datetime

import pytest

from src.models import (
    Archetype,
    Contribution,
    DictationUpdate,
    InterruptionEvent,
    Participant,
    SchedulerState,
    SessionSetup,
    Turn,
)


def test_archetype_is_string_enum():
    assert Archetype("AGGRESSIVE") is Archetype.AGGRESSIVE
    assert Archetype.DETAIL == "DETAIL"


def test_participant_is_frozen():
    p = Participant("A", "Alice", Archetype.AGGRESSIVE)
    assert p.personality == ""
    with pytest.raises(dataclasses.FrozenInstanceError):
        p.name = "Bob"  # type: ignore[misc]


def test_contribution_defaults_to_message():
    c = Contribution(id=1, speaker_id="A", display_name="Alice", text="hi", created_at=datetime(2026, 1, 1))
    assert c.kind == "message"
    with pytest.raises(dataclasses.FrozenInstanceError):
        c.text = "changed"  # type: ignore[misc]


def test_turn_starts_waiting():
    turn = Turn(speaker_id="A", started_at=1.0)
    assert turn.pending is False


def test_scheduler_state_fields():
    state = SchedulerState(round_count=3, active_turn=None, ceiling_reached=False)
    assert state.finished is False


def test_interruption_event_defaults():
    assert InterruptionEvent(occurred=False).expires_at is None


def test_dictation_update_defaults():
    update = DictationUpdate()
    assert update.final_segments == []
    assert update.interim_text == ""


def test_session_setup_defaults():
    setup = SessionSetup(topic="t", job_title="PM")
    assert setup.company == ""
    assert setup.source == "cli"
