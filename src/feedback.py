"""Performance feedback: format the transcript, ask the scorer, parse its verdict."""

import json
import logging
from collections.abc import Sequence

from config.config_loader import PromptsConfig
from src.models import Contribution, Feedback, SessionSetup
from src.providers.base import AIProvider
from src.session import USER_ID

logger = logging.getLogger(__name__)

_REQUIRED_KEYS = (
    "timing",
    "voiceShare",
    "structuralContribution",
    "interruptionHandling",
    "overallScore",
    "suggestions",
)


def _format_full_transcript(contributions: Sequence[Contribution]) -> str:
    """Format the whole discussion as 'name: text' lines, marking interruptions."""
    lines: list[str] = []
    for c in contributions:
        marker = " [抢话]" if c.kind == "interruption" else ""
        lines.append(f"{c.display_name}{marker}: {c.text}")
    return "\n".join(lines)


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        text = text.rsplit("```", 1)[0]
    return text.strip()


def parse_feedback(raw: str) -> Feedback:
    """Parse the scorer's JSON verdict.

    Raises:
        RuntimeError: If the payload is empty, not JSON, or misses keys.
    """
    payload = _strip_code_fence(raw)
    if not payload:
        raise RuntimeError("Feedback response was empty")
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"Feedback response is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise RuntimeError("Feedback response is not a JSON object")
    missing = [k for k in _REQUIRED_KEYS if k not in data]
    if missing:
        raise RuntimeError(f"Feedback response missing keys: {', '.join(missing)}")

    suggestions = data["suggestions"]
    if isinstance(suggestions, str):
        suggestions = [suggestions]
    try:
        return Feedback(
            timing=str(data["timing"]),
            voice_share=float(data["voiceShare"]),
            structural_contribution=str(data["structuralContribution"]),
            interruption_handling=str(data["interruptionHandling"]),
            overall_score=float(data["overallScore"]),
            suggestions=[str(s) for s in suggestions],
        )
    except (TypeError, ValueError) as exc:
        raise RuntimeError(f"Feedback response has invalid values: {exc}") from exc


async def evaluate_performance(
    setup: SessionSetup,
    contributions: Sequence[Contribution],
    scorer: AIProvider,
    prompts: PromptsConfig,
    user_name: str = "你",
) -> Feedback:
    """Score the human's performance over the finished transcript.

    Args:
        setup: Topic and job title of the discussion.
        contributions: The full transcript handed over at finish.
        scorer: Provider that produces the JSON verdict.
        prompts: Prompt templates from config.
        user_name: Display name of the human in the transcript.

    Returns:
        Feedback with locally counted interruptions and contributions attached.

    Raises:
        GenerationError: If the scorer call fails.
        RuntimeError: If the scorer returns unusable content.
    """
    user_turns = [c for c in contributions if c.speaker_id == USER_ID]
    interruptions = sum(1 for c in user_turns if c.kind == "interruption")

    prompt = prompts.feedback.format(
        job_title=setup.job_title,
        topic=setup.topic,
        user_name=user_name,
        interruptions=interruptions,
        transcript=_format_full_transcript(contributions),
    )

    logger.info("Scoring %d contributions via %s", len(contributions), scorer.name())
    completion = await scorer.generate(prompt, json_output=True)

    feedback = parse_feedback(completion.content)
    feedback.interruptions = interruptions
    feedback.user_contributions = len(user_turns)
    return feedback
