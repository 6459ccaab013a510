# src/llm/structured.py — v1
"""Structured (JSON) model requests with deadline and repair re-ask.

Every AI stage goes through request_json(): each model call is bounded by
asyncio.wait_for, transient provider errors are retried by with_retry, and
a malformed reply is re-asked with a simplified instruction a bounded number
of times before MalformedOutputError propagates.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from scriptconveyor.core.errors import (
    MalformedOutputError,
    StageError,
    StageExecutionError,
    StageTimeoutError,
)
from scriptconveyor.llm.json_extract import extract_json_object
from scriptconveyor.llm.models import LLMResponse, Message
from scriptconveyor.llm.retry import RetryConfig, with_retry

if TYPE_CHECKING:
    from scriptconveyor.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

REPAIR_INSTRUCTION = (
    "Your previous reply could not be parsed. Reply again with ONLY one valid "
    "JSON object: no prose, no markdown fences, no comments."
)


@dataclass
class StructuredResponse:
    """Parsed JSON object plus call accounting."""

    data: dict[str, Any]
    llm_calls: int
    tokens_used: int
    model: str = ""


async def request_json(
    llm: BaseLLMClient,
    prompt: str,
    *,
    system: str,
    operation: str,
    timeout_s: float,
    repair_attempts: int = 1,
    model: str | None = None,
    temperature: float = 0.4,
    max_tokens: int = 2048,
    retry_configs: dict[str, RetryConfig] | None = None,
) -> StructuredResponse:
    """Ask the model for a JSON object.

    Raises:
        StageTimeoutError: A single call exceeded timeout_s.
        MalformedOutputError: Still unparseable after the repair re-asks.
        StageExecutionError: The provider failed for a non-transient reason
            or transient retries ran out.
    """
    messages = [Message(role="user", content=prompt)]
    calls = 0
    tokens = 0

    while True:
        try:
            response = await with_retry(
                _bounded_complete,
                llm,
                messages,
                system=system,
                call_name=operation,
                operation=operation,
                timeout_s=timeout_s,
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                retry_configs=retry_configs,
            )
        except StageError:
            raise
        except Exception as exc:
            raise StageExecutionError(f"{operation}: model call failed: {exc}") from exc
        calls += 1
        tokens += response.input_tokens + response.output_tokens

        try:
            data = extract_json_object(response.content)
        except MalformedOutputError as exc:
            if calls > repair_attempts:
                logger.warning("%s: malformed output after %d call(s)", operation, calls)
                raise
            logger.info("%s: malformed output, re-asking (%s)", operation, exc.diagnostic[:60])
            messages = messages + [
                Message(role="assistant", content=response.content or "(empty)"),
                Message(role="user", content=REPAIR_INSTRUCTION),
            ]
            continue

        return StructuredResponse(
            data=data, llm_calls=calls, tokens_used=tokens, model=response.model
        )


async def _bounded_complete(
    llm: BaseLLMClient,
    messages: list[Message],
    *,
    system: str,
    call_name: str,
    timeout_s: float,
    model: str | None,
    temperature: float,
    max_tokens: int,
) -> LLMResponse:
    try:
        return await asyncio.wait_for(
            llm.complete(
                messages=messages,
                system=system,
                max_tokens=max_tokens,
                temperature=temperature,
                model=model,
            ),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError as exc:
        raise StageTimeoutError(call_name, timeout_s) from exc
