# src/pipeline/plugin_kit/base_stage.py — v1
"""Standard stage interface for the conveyor's ordered stage plan.

Each stage rebuilds its input from stored payloads (build_input) and
produces a StageResult (execute). Failures raise the StageError taxonomy;
the orchestrator turns them into a failed item.
"""

from __future__ import annotations

import hashlib
import time
from abc import ABC, abstractmethod

from pydantic import BaseModel

from scriptconveyor.core.errors import StageExecutionError
from scriptconveyor.llm.structured import StructuredResponse, request_json
from scriptconveyor.pipeline.plugin_kit.models import (
    StageContext,
    StageMetadata,
    StagePayloads,
    StageResult,
)


class BaseStage(ABC):
    """Standard interface for all pipeline stages."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique stage identifier (e.g., 'scorer', 'writer')."""

    @property
    def version(self) -> str:
        return "1.0.0"

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of what this stage does."""

    @property
    def uses_ai(self) -> bool:
        """Whether the stage calls the model."""
        return True

    @property
    def depends_on_draft(self) -> bool:
        """True if the stage consumes the written draft.

        The first such stage is where revisions resume.
        """
        return False

    @property
    def auto_retry_on_timeout(self) -> bool:
        """Whether a timed-out execution may be re-run within the same run."""
        return True

    @abstractmethod
    def build_input(self, payloads: StagePayloads, context: StageContext) -> BaseModel:
        """Assemble the stage input from stored payloads of earlier stages."""

    @abstractmethod
    async def execute(self, inp: BaseModel, context: StageContext) -> StageResult:
        """Execute the stage's logic."""

    # --- Helpers for subclasses ---

    async def _ask_json(
        self,
        context: StageContext,
        prompt: str,
        system: str,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> StructuredResponse:
        if context.llm is None:
            raise StageExecutionError(f"Stage '{self.name}' requires a model client")
        settings = context.settings
        return await request_json(
            context.llm,
            prompt,
            system=system,
            operation=self.name,
            timeout_s=settings.llm_call_timeout_s,
            repair_attempts=settings.malformed_repair_attempts,
            model=model,
            temperature=settings.llm_temperature,
            max_tokens=max_tokens or settings.llm_max_tokens,
        )

    def _result(
        self,
        output: dict,
        started_ns: int,
        score: float | None = None,
        llm_calls: int = 0,
        tokens_used: int = 0,
        prompt: str | None = None,
        warnings: list[str] | None = None,
    ) -> StageResult:
        return StageResult(
            output=output,
            score=score,
            metadata=StageMetadata(
                stage_name=self.name,
                stage_version=self.version,
                execution_time_ms=(time.monotonic_ns() - started_ns) // 1_000_000,
                llm_calls=llm_calls,
                tokens_used=tokens_used,
                prompt_hash=prompt_hash(prompt) if prompt else None,
            ),
            warnings=warnings or [],
        )


def prompt_hash(prompt: str) -> str:
    return hashlib.sha256(prompt.encode()).hexdigest()[:16]


def clamp(value: object, low: int, high: int, default: int = 0) -> int:
    """Coerce a model-reported number into [low, high]."""
    try:
        number = int(round(float(value)))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        number = default
    return max(low, min(high, number))


def verdict_for(score: float, viral: int, strong: int, moderate: int) -> str:
    if score >= viral:
        return "viral"
    if score >= strong:
        return "strong"
    if score >= moderate:
        return "moderate"
    return "weak"
