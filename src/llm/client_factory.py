# src/llm/client_factory.py — v1
"""Factory: instantiate an LLM client from provider name and credential.

Called by the orchestrator once per item run, after the owner's credential
has been fetched from the credential store.
"""

from __future__ import annotations

import importlib
import logging
from typing import Callable

from scriptconveyor.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

# Registry of provider name → adapter class path (lazy import).
_PROVIDER_REGISTRY: dict[str, str] = {
    "anthropic": "scriptconveyor.llm.adapters.anthropic_adapter.AnthropicAdapter",
}

LLMFactory = Callable[[str, str, str], BaseLLMClient]


class UnsupportedProviderError(ValueError):
    """Raised when a provider is not registered."""


def create_llm_client(provider: str, model: str, api_key: str) -> BaseLLMClient:
    """Instantiate the correct adapter from provider name.

    Args:
        provider: Provider identifier (anthropic).
        model: Default model name for the client.
        api_key: Owner credential fetched for this run.

    Returns:
        Configured BaseLLMClient instance.

    Raises:
        UnsupportedProviderError: If provider is not registered.
    """
    if provider not in _PROVIDER_REGISTRY:
        raise UnsupportedProviderError(
            f"Unsupported LLM provider: {provider!r}. "
            f"Available: {', '.join(sorted(_PROVIDER_REGISTRY))}"
        )

    adapter_cls = _import_class(_PROVIDER_REGISTRY[provider])
    logger.debug("Creating LLM client: provider=%s, model=%s", provider, model)
    return adapter_cls(model=model, api_key=api_key)


def register_provider(name: str, class_path: str) -> None:
    """Register a custom provider adapter.

    Args:
        name: Provider identifier.
        class_path: Fully qualified class path implementing BaseLLMClient.
    """
    _PROVIDER_REGISTRY[name] = class_path
    logger.info("Registered LLM provider: %s → %s", name, class_path)


def _import_class(class_path: str) -> type:
    """Dynamically import a class from its fully qualified path."""
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
