"""Pure dataclasses for the group discussion simulator. No logic, no deps."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Archetype(str, Enum):
    AGGRESSIVE = "AGGRESSIVE"    # grabs the floor, sets the framework
    STRUCTURED = "STRUCTURED"    # summarises consensus, moves the topic on
    DETAIL = "DETAIL"            # digs into feasibility and cost


class SchedulerPhase(str, Enum):
    IDLE = "idle"
    TURN_IN_FLIGHT = "turn_in_flight"
    CEILING = "ceiling"
    FINISHED = "finished"


@dataclass(frozen=True)
class Participant:
    id: str
    name: str
    archetype: Archetype
    personality: str = ""


@dataclass(frozen=True)
class Contribution:
    id: int                # monotonic, assigned by the transcript log
    speaker_id: str        # participant id or "user"
    display_name: str
    text: str
    created_at: datetime
    kind: str = "message"  # "message" or "interruption"


@dataclass
class Turn:
    speaker_id: str
    started_at: float      # monotonic seconds
    pending: bool = False  # generation in flight


@dataclass(frozen=True)
class SchedulerState:
    round_count: int
    active_turn: Turn | None
    ceiling_reached: bool
    finished: bool = False


@dataclass(frozen=True)
class InterruptionEvent:
    occurred: bool
    expires_at: float | None = None


@dataclass(frozen=True)
class DictationUpdate:
    final_segments: list[str] = field(default_factory=list)
    interim_text: str = ""


@dataclass
class SessionSetup:
    topic: str
    job_title: str
    company: str = ""
    source: str = "cli"    # "cli", "generated" or scenario file path


@dataclass
class Completion:
    provider: str          # "gemini", "openai", "claude"
    model: str             # actual model string used
    content: str
    latency_sec: float
    token_count: int | None


@dataclass
class Feedback:
    timing: str
    voice_share: float
    structural_contribution: str
    interruption_handling: str
    overall_score: float
    suggestions: list[str] = field(default_factory=list)
    interruptions: int = 0
    user_contributions: int = 0
