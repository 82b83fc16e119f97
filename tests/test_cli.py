"""Tests for command parsing, setup resolution and provider selection in src/cli.py."""

from pathlib import Path

import pytest
from click.testing import CliRunner

from src.cli import _parse_command, _pick_provider, _resolve_setup, _status_line, _toggle_dictation, main
from src.models import DictationUpdate
from src.scheduler import TurnScheduler
from src.session import DiscussionSession
from tests.conftest import FakeGenerator, MockProvider, ScriptedRandom


@pytest.fixture
def mock_all_providers():
    return {
        "claude": MockProvider("claude"),
        "gemini": MockProvider("gemini"),
    }


@pytest.mark.parametrize("line, expected", [
    ("", ("noop", "")),
    ("   ", ("noop", "")),
    ("/finish", ("finish", "")),
    ("/END", ("finish", "")),
    ("/quit", ("finish", "")),
    ("/status", ("status", "")),
    ("/Dictate", ("dictate", "")),
    ("  我认为先定目标  ", ("say", "我认为先定目标")),
])
def test_parse_command(line, expected):
    assert _parse_command(line) == expected


def test_pick_provider_preferred(mock_all_providers):
    assert _pick_provider(mock_all_providers, "gemini").name() == "gemini"


def test_pick_provider_falls_back(mock_all_providers):
    assert _pick_provider(mock_all_providers, "openai").name() in {"claude", "gemini"}


def test_pick_provider_none_available():
    assert _pick_provider({}, "gemini") is None


def test_resolve_setup_from_flags():
    setup = _resolve_setup(" Pricing ", "PM", "Acme", None)
    assert setup.topic == "Pricing"
    assert setup.job_title == "PM"
    assert setup.company == "Acme"
    assert setup.source == "cli"


def test_resolve_setup_topic_left_empty():
    setup = _resolve_setup(None, "PM", None, None)
    assert setup.topic == ""


def test_resolve_setup_flags_override_scenario(tmp_path: Path):
    f = tmp_path / "scenario.md"
    f.write_text("---\ncompany: Acme\njob_title: PM\n---\nCampus delivery\n", encoding="utf-8")
    setup = _resolve_setup(None, "Data Analyst", None, str(f))
    assert setup.job_title == "Data Analyst"
    assert setup.company == "Acme"
    assert setup.topic == "Campus delivery"
    assert setup.source == str(f)


def test_status_line(sample_setup, roster, fast_timing):
    scheduler = TurnScheduler.from_config(roster, 20, fast_timing, rng=ScriptedRandom(picks=["B"]))
    session = DiscussionSession(sample_setup, scheduler, FakeGenerator(), timing=fast_timing)
    assert _status_line(session) == "回合数: 0"
    scheduler.on_human_submit()
    assert "Bob up next" in _status_line(session)


def test_main_requires_job_title():
    result = CliRunner().invoke(main, ["--topic", "Pricing", "--no-save"])
    assert result.exit_code == 1
    assert "--job-title" in result.output


def test_main_rejects_non_positive_rounds():
    result = CliRunner().invoke(main, ["--job-title", "PM", "--max-rounds", "0"])
    assert result.exit_code == 1
    assert "--max-rounds" in result.output


class _RecordingSource:
    def __init__(self) -> None:
        self.events: list[str] = []

    def start(self) -> None:
        self.events.append("start")

    def stop(self) -> None:
        self.events.append("stop")


def test_toggle_dictation_without_source(sample_setup, roster, fast_timing):
    session = DiscussionSession(
        sample_setup, TurnScheduler(roster, rng=ScriptedRandom()), FakeGenerator(), timing=fast_timing
    )
    assert "No dictation source" in _toggle_dictation(session)
    assert session.listening is False


async def test_toggle_dictation_with_source(sample_setup, roster, fast_timing):
    source = _RecordingSource()
    session = DiscussionSession(
        sample_setup,
        TurnScheduler(roster, rng=ScriptedRandom()),
        FakeGenerator(),
        timing=fast_timing,
        dictation_source=source,
    )
    assert "Listening" in _toggle_dictation(session)
    assert session.listening is True

    session.on_dictation_result(DictationUpdate(final_segments=["先定目标"]))
    assert _toggle_dictation(session) == "Dictation off. Pending: 先定目标"
    assert source.events == ["start", "stop"]

    assert session.submit().text == "先定目标"
    await session.close()
