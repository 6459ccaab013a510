# src/llm/base_client.py — v1
"""Abstract LLM client interface consumed by stage executors."""

from __future__ import annotations

from abc import ABC, abstractmethod

from scriptconveyor.llm.models import LLMResponse, Message


class BaseLLMClient(ABC):
    """Unified interface for all LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.4,
        model: str | None = None,
    ) -> LLMResponse:
        """Text completion. ``model`` overrides the client default."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (anthropic, ...)."""
