"""Prompt building for participant replies and discussion topics."""

import logging
import re
from collections.abc import Sequence

from config.config_loader import PromptsConfig
from src.models import Contribution, Participant
from src.providers.base import AIProvider, GenerationError

logger = logging.getLogger(__name__)

_MARKDOWN_CHARS = re.compile(r"[*#`>]")


def format_history(history: Sequence[Contribution]) -> str:
    """Render contributions as 'name: text' lines, oldest first."""
    return "\n".join(f"{c.display_name}: {c.text}" for c in history)


def strip_markdown(text: str) -> str:
    return _MARKDOWN_CHARS.sub("", text).strip()


class ContentGenerator:
    """Produces one reply per turn from a single provider. Never retries."""

    def __init__(self, provider: AIProvider, prompts: PromptsConfig) -> None:
        self._provider = provider
        self._prompts = prompts

    @property
    def provider_name(self) -> str:
        return self._provider.name()

    def build_reply_prompt(
        self,
        participant: Participant,
        topic: str,
        job_title: str,
        history: Sequence[Contribution],
    ) -> str:
        return self._prompts.reply.format(
            job_title=job_title,
            topic=topic,
            name=participant.name,
            archetype=participant.archetype.value,
            personality=participant.personality,
            history=format_history(history),
        )

    async def generate_reply(
        self,
        participant: Participant,
        topic: str,
        job_title: str,
        history: Sequence[Contribution],
    ) -> str:
        """Generate what the participant says next.

        Raises:
            GenerationError: On provider failure or an empty reply.
        """
        prompt = self.build_reply_prompt(participant, topic, job_title, history)
        completion = await self._provider.generate(prompt)
        text = strip_markdown(completion.content)
        if not text:
            raise GenerationError(self._provider.name(), f"Empty reply for {participant.id}")
        logger.debug("%s replied in %.2fs", participant.id, completion.latency_sec)
        return text

    async def generate_topic(self, company: str, job_title: str) -> str:
        """Generate a case question for the discussion.

        Raises:
            GenerationError: On provider failure or an empty topic.
        """
        prompt = self._prompts.topic.format(company=company or "某知名企业", job_title=job_title)
        completion = await self._provider.generate(prompt)
        topic = strip_markdown(completion.content)
        if not topic:
            raise GenerationError(self._provider.name(), "Empty topic")
        logger.info("Generated topic for %s (%d chars)", job_title, len(topic))
        return topic
