# src/pipeline/agents/base_analyst.py — v1
"""Shared base for the four dimension analysts (hook, structure, emotional, cta).

All analysts take the same input (script text plus scenes) and return a
0-100 score with a free-form breakdown and issues list. They run
concurrently under the ScriptAnalyzer and never see each other's output.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from scriptconveyor.core.models import Scene
from scriptconveyor.llm.structured import request_json
from scriptconveyor.pipeline.plugin_kit.base_stage import clamp

if TYPE_CHECKING:
    from scriptconveyor.config.settings import Settings
    from scriptconveyor.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

_RESPONSE_FORMAT = """
Respond ONLY with JSON:
{
  "score": 0-100,
  "breakdown": {"<criterion>": 0-100, ...},
  "issues": [{"scene_id": 1, "issue": "...", "suggestion": "...", "priority": "high|medium|low"}],
  "summary": "one sentence"
}"""


class AnalystInput(BaseModel):
    """Input shared by all analysts."""

    text: str
    scenes: list[Scene] = Field(default_factory=list)
    content_type: str = "news"


class AnalystReport(BaseModel):
    """One analyst's verdict on one dimension."""

    dimension: str
    score: int
    breakdown: dict[str, Any] = Field(default_factory=dict)
    issues: list[dict[str, Any]] = Field(default_factory=list)
    summary: str = ""
    llm_calls: int = 0
    tokens_used: int = 0


class BaseAnalyst:
    """Score one dimension of a script. Subclasses set the constants below."""

    dimension: str = ""
    system_prompt: str = ""
    criteria: str = ""

    def build_prompt(self, inp: AnalystInput) -> str:
        scenes_text = "\n".join(
            f"[{s.id}] {s.label.upper()}: {s.text}" for s in inp.scenes
        ) or inp.text
        return (
            f"Content type: {inp.content_type}\n\n"
            f"SCRIPT:\n{scenes_text[:6000]}\n\n"
            f"Evaluate:\n{self.criteria}\n"
            f"{_RESPONSE_FORMAT}"
        )

    async def analyze(
        self, llm: BaseLLMClient, inp: AnalystInput, settings: Settings
    ) -> AnalystReport:
        response = await request_json(
            llm,
            self.build_prompt(inp),
            system=self.system_prompt,
            operation=f"{self.dimension}_analyst",
            timeout_s=settings.llm_call_timeout_s,
            repair_attempts=settings.malformed_repair_attempts,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )
        data = response.data
        issues = [i for i in data.get("issues", []) if isinstance(i, dict)]
        report = AnalystReport(
            dimension=self.dimension,
            score=clamp(data.get("score"), 0, 100),
            breakdown=data.get("breakdown") if isinstance(data.get("breakdown"), dict) else {},
            issues=issues,
            summary=str(data.get("summary", "")),
            llm_calls=response.llm_calls,
            tokens_used=response.tokens_used,
        )
        logger.debug("%s analyst: score=%d, issues=%d", self.dimension, report.score, len(issues))
        return report
