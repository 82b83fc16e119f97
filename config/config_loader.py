"""Load settings.yaml into typed dataclasses. Validates timing and roster at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from src.models import Archetype, Participant

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    temperature: float | None = None
    top_p: float | None = None
    base_url: str | None = None


@dataclass
class PromptsConfig:
    reply: str
    topic: str
    feedback: str


@dataclass
class TimingConfig:
    opener_grace_ms: float = 3000
    chain_probability: float = 0.45
    chain_delay_ms: tuple[float, float] = (1000, 3000)
    reply_delay_ms: tuple[float, float] = (1000, 2500)
    interruption_window_ms: float = 2000


@dataclass
class DefaultsConfig:
    max_rounds: int
    output_dir: Path
    reply_provider: str
    feedback_provider: str
    history_window: int = 5
    user_name: str = "你"


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    timing: TimingConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    roster: list[Participant] = field(default_factory=list)
    available_providers: set[str] = field(default_factory=set)


def _delay_range(raw: object, key: str) -> tuple[float, float]:
    """Parse a [low, high) millisecond range."""
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise ValueError(f"timing.{key} must be a [low, high] pair, got {raw!r}")
    low, high = float(raw[0]), float(raw[1])
    if low < 0 or high < low:
        raise ValueError(f"timing.{key} must satisfy 0 <= low <= high, got {raw!r}")
    return low, high


def _load_timing(raw: dict) -> TimingConfig:
    defaults = TimingConfig()
    timing = TimingConfig(
        opener_grace_ms=float(raw.get("opener_grace_ms", defaults.opener_grace_ms)),
        chain_probability=float(raw.get("chain_probability", defaults.chain_probability)),
        chain_delay_ms=_delay_range(raw.get("chain_delay_ms", defaults.chain_delay_ms), "chain_delay_ms"),
        reply_delay_ms=_delay_range(raw.get("reply_delay_ms", defaults.reply_delay_ms), "reply_delay_ms"),
        interruption_window_ms=float(raw.get("interruption_window_ms", defaults.interruption_window_ms)),
    )
    if not 0.0 <= timing.chain_probability <= 1.0:
        raise ValueError(f"timing.chain_probability must be within [0, 1], got {timing.chain_probability}")
    if timing.opener_grace_ms < 0 or timing.interruption_window_ms < 0:
        raise ValueError("timing windows must be non-negative")
    return timing


def _load_roster(raw: list[dict]) -> list[Participant]:
    roster = [
        Participant(
            id=str(entry["id"]),
            name=str(entry["name"]),
            archetype=Archetype(str(entry["archetype"]).upper()),
            personality=str(entry.get("personality", "")).strip(),
        )
        for entry in raw
    ]
    if not roster:
        raise ValueError("roster must contain at least one participant")
    ids = [p.id for p in roster]
    if len(set(ids)) != len(ids):
        raise ValueError(f"roster ids must be unique, got {ids}")
    return roster


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing and ValueError on
    invalid timing, rounds or roster. Logs missing API keys but does not
    raise; callers check available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        max_rounds=int(defaults_raw["max_rounds"]),
        output_dir=Path(defaults_raw["output_dir"]),
        reply_provider=str(defaults_raw["reply_provider"]),
        feedback_provider=str(defaults_raw.get("feedback_provider", defaults_raw["reply_provider"])),
        history_window=int(defaults_raw.get("history_window", 5)),
        user_name=str(defaults_raw.get("user_name", "你")),
    )
    if defaults.max_rounds <= 0:
        raise ValueError(f"defaults.max_rounds must be positive, got {defaults.max_rounds}")
    if defaults.history_window <= 0:
        raise ValueError(f"defaults.history_window must be positive, got {defaults.history_window}")

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        reply=prompts_raw["reply"],
        topic=prompts_raw["topic"],
        feedback=prompts_raw["feedback"],
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            temperature=model_raw.get("temperature"),
            top_p=model_raw.get("top_p"),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s (set %s in .env)",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        timing=_load_timing(raw.get("timing", {}) or {}),
        models=models,
        prompts=prompts,
        roster=_load_roster(raw["roster"]),
        available_providers=available_providers,
    )
