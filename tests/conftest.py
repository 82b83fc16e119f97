"""Shared pytest fixtures and test doubles."""

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DefaultsConfig, ModelConfig, PromptsConfig, TimingConfig
from src.models import Archetype, Completion, Contribution, Participant, SessionSetup
from src.providers.base import AIProvider, GenerationError


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="test",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        reply="Job: {job_title}\nTopic: {topic}\nYou are {name} ({archetype}): {personality}\n{history}\nSpeak:",
        topic="Write a case question for {job_title} at {company}.",
        feedback=(
            "Score {user_name} for {job_title}.\nTopic: {topic}\n"
            "Interruptions: {interruptions}\n{transcript}"
        ),
    )


@pytest.fixture
def roster() -> list[Participant]:
    return [
        Participant("A", "Alice", Archetype.AGGRESSIVE, "Takes control."),
        Participant("B", "Bob", Archetype.STRUCTURED, "Summarises."),
        Participant("C", "Cara", Archetype.DETAIL, "Asks about cost."),
    ]


@pytest.fixture
def fast_timing() -> TimingConfig:
    """Millisecond-scale timings so runtime tests finish quickly."""
    return TimingConfig(
        opener_grace_ms=20,
        chain_probability=0.45,
        chain_delay_ms=(1, 3),
        reply_delay_ms=(1, 2),
        interruption_window_ms=50,
    )


@pytest.fixture
def sample_app_config(
    tmp_path: Path,
    sample_prompts_config: PromptsConfig,
    roster: list[Participant],
    fast_timing: TimingConfig,
) -> AppConfig:
    model_cfg = ModelConfig(
        name="gemini",
        sdk="google-genai",
        model="gemini-2.5-flash",
        api_key_env="GEMINI_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
    )
    return AppConfig(
        defaults=DefaultsConfig(
            max_rounds=20,
            output_dir=tmp_path / "output",
            reply_provider="gemini",
            feedback_provider="gemini",
        ),
        timing=fast_timing,
        models={"gemini": model_cfg},
        prompts=sample_prompts_config,
        roster=roster,
        available_providers={"gemini"},
    )


@pytest.fixture
def sample_setup() -> SessionSetup:
    return SessionSetup(topic="Launch a campus delivery service", job_title="Product Manager")


def make_contribution(id: int, speaker_id: str, text: str, kind: str = "message") -> Contribution:
    return Contribution(
        id=id,
        speaker_id=speaker_id,
        display_name="你" if speaker_id == "user" else speaker_id,
        text=text,
        created_at=datetime(2026, 1, 1, 12, 0, id),
        kind=kind,
    )


class FakeClock:
    """Manually advanced monotonic clock, in seconds."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


class ScriptedRandom:
    """RandomSource returning queued values.

    random() pops from draws (0.99 when exhausted, i.e. no chaining);
    choice() picks the participant whose id is next in picks, else the
    first element; uniform() returns the lower bound.
    """

    def __init__(self, draws: Sequence[float] = (), picks: Sequence[str] = ()) -> None:
        self.draws = list(draws)
        self.picks = list(picks)
        self.choices_seen: list[list] = []

    def random(self) -> float:
        return self.draws.pop(0) if self.draws else 0.99

    def uniform(self, a: float, b: float) -> float:
        return a

    def choice(self, seq):
        self.choices_seen.append(list(seq))
        if self.picks:
            wanted = self.picks.pop(0)
            return next(p for p in seq if p.id == wanted)
        return seq[0]


class FakeGenerator:
    """Reply generator driven by the test.

    With gated=True every call blocks until release() is called for it;
    otherwise replies resolve immediately. Entries in failures make the
    matching call (by index) raise GenerationError.
    """

    def __init__(self, gated: bool = False, failures: Sequence[int] = ()) -> None:
        self.gated = gated
        self.failures = set(failures)
        self.calls: list[tuple[str, list[Contribution]]] = []
        self._gates: list[asyncio.Event] = []

    async def generate_reply(self, participant, topic, job_title, history) -> str:
        index = len(self.calls)
        self.calls.append((participant.id, list(history)))
        if self.gated:
            gate = asyncio.Event()
            self._gates.append(gate)
            await gate.wait()
        if index in self.failures:
            raise GenerationError("fake", f"call {index} failed")
        return f"{participant.name} says #{index}"

    def release(self, index: int = -1) -> None:
        self._gates[index].set()

    def release_all(self) -> None:
        for gate in self._gates:
            gate.set()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll predicate on the running loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.001)


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=Completion(
                provider=provider_name,
                model="mock-model",
                content=response_content,
                latency_sec=0.1,
                token_count=10,
            )
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(self, prompt: str, *, json_output: bool = False) -> Completion:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return Completion(
            provider=self._name,
            model="mock-model",
            content=self._response_content,
            latency_sec=0.1,
            token_count=10,
        )


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()
