"""Tests for src/generation.py."""

from unittest.mock import AsyncMock

import pytest

from src.generation import ContentGenerator, format_history, strip_markdown
from src.models import Completion
from src.providers.base import GenerationError
from tests.conftest import MockProvider, make_contribution


def _completion(content: str) -> Completion:
    return Completion(provider="mock", model="mock-model", content=content, latency_sec=0.1, token_count=5)


def test_format_history_lines():
    history = [make_contribution(1, "user", "我们先定目标"), make_contribution(2, "A", "同意")]
    assert format_history(history) == "你: 我们先定目标\nA: 同意"


def test_strip_markdown():
    assert strip_markdown("**重点** # 标题 `code` > quote") == "重点  标题 code  quote"


def test_reply_prompt_carries_persona_and_history(mock_provider, sample_prompts_config, roster):
    generator = ContentGenerator(mock_provider, sample_prompts_config)
    prompt = generator.build_reply_prompt(
        roster[0], "Campus delivery", "PM", [make_contribution(1, "user", "Start with users")]
    )
    assert "Alice" in prompt
    assert "AGGRESSIVE" in prompt
    assert "Takes control." in prompt
    assert "Campus delivery" in prompt
    assert "你: Start with users" in prompt


async def test_generate_reply_returns_clean_text(sample_prompts_config, roster):
    provider = MockProvider("mock", "**我认为**先定目标。")
    generator = ContentGenerator(provider, sample_prompts_config)
    text = await generator.generate_reply(roster[0], "topic", "PM", [])
    assert text == "我认为先定目标。"
    provider.generate.assert_awaited_once()


async def test_generate_reply_called_once_on_failure(sample_prompts_config, roster):
    provider = MockProvider()
    provider.generate = AsyncMock(side_effect=GenerationError("mock", "503"))
    generator = ContentGenerator(provider, sample_prompts_config)
    with pytest.raises(GenerationError, match="503"):
        await generator.generate_reply(roster[1], "topic", "PM", [])
    assert provider.generate.await_count == 1


async def test_generate_reply_rejects_markup_only_reply(sample_prompts_config, roster):
    provider = MockProvider()
    provider.generate = AsyncMock(return_value=_completion("** ##"))
    generator = ContentGenerator(provider, sample_prompts_config)
    with pytest.raises(GenerationError, match="Empty reply"):
        await generator.generate_reply(roster[2], "topic", "PM", [])


async def test_generate_topic(sample_prompts_config):
    provider = MockProvider()
    provider.generate = AsyncMock(return_value=_completion("# 题目\n**设计**一个校园外卖方案"))
    generator = ContentGenerator(provider, sample_prompts_config)
    topic = await generator.generate_topic("Acme", "PM")
    assert topic == "题目\n设计一个校园外卖方案"
    prompt = provider.generate.await_args.args[0]
    assert "Acme" in prompt and "PM" in prompt
    assert generator.provider_name == "mock"
