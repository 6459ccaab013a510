# tests/unit/llm/test_anthropic_adapter.py — v1
"""Tests for llm/adapters/anthropic_adapter.py with a mocked SDK client."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from scriptconveyor.llm.adapters.anthropic_adapter import AnthropicAdapter
from scriptconveyor.llm.models import Message


def _fake_response():
    return SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text='{"a": 1}'),
            SimpleNamespace(type="tool_use", text="ignored"),
            SimpleNamespace(type="text", text="tail"),
        ],
        usage=SimpleNamespace(input_tokens=12, output_tokens=7),
        model="claude-test",
    )


@pytest.fixture
def adapter():
    a = AnthropicAdapter(model="claude-default", api_key="sk-test")
    create = AsyncMock(return_value=_fake_response())
    a._AnthropicAdapter__client = SimpleNamespace(messages=SimpleNamespace(create=create))
    return a, create


class TestAnthropicAdapter:
    @pytest.mark.asyncio
    async def test_complete(self, adapter):
        a, create = adapter
        response = await a.complete(
            [Message(role="user", content="hi")], system="be brief", max_tokens=100
        )
        assert response.content == '{"a": 1}\ntail'
        assert response.input_tokens == 12
        assert response.output_tokens == 7
        assert response.provider == "anthropic"
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "claude-default"
        assert kwargs["system"] == "be brief"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_model_override_and_no_system(self, adapter):
        a, create = adapter
        await a.complete([Message(role="user", content="x")], model="claude-other")
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "claude-other"
        assert "system" not in kwargs

    def test_provider_name(self):
        assert AnthropicAdapter().provider_name == "anthropic"
