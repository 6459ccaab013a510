# src/pipeline/agents/synthesizer.py — v1
"""Synthesizer agent — join the four analyst reports into one assessment.

The overall score is a weighted combination of the dimension scores with
per-content-type weights, computed locally so it is reproducible. The model
is only asked for the ranked strengths, weaknesses and recommendations.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from scriptconveyor.config.settings import ANALYST_DIMENSIONS
from scriptconveyor.core.errors import StageExecutionError
from scriptconveyor.llm.structured import request_json
from scriptconveyor.pipeline.agents.base_analyst import AnalystReport
from scriptconveyor.pipeline.plugin_kit.base_stage import verdict_for

if TYPE_CHECKING:
    from scriptconveyor.config.settings import Settings
    from scriptconveyor.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a synthesis strategist for short-form video scripts. You merge "
    "specialist reviews into a prioritized action plan. Respond only with valid JSON."
)

_PROMPT_TEMPLATE = """Specialist reviews of one script (content type: {content_type}).

OVERALL SCORE (already computed): {overall}/100 ({verdict})

REVIEWS:
{reviews}

Rank the strengths and weaknesses and give prioritized recommendations.
Respond ONLY with JSON:
{{
  "strengths": ["..."],
  "weaknesses": ["..."],
  "recommendations": [
    {{"area": "hook|structure|emotional|cta", "priority": "critical|high|medium|low",
      "scene_id": 1, "issue": "...", "suggestion": "..."}}
  ]
}}"""


class Recommendation(BaseModel):
    """One prioritized fix suggested by the synthesis."""

    area: str = "structure"
    priority: str = "low"
    scene_id: int | None = None
    issue: str = ""
    suggestion: str = ""


class SynthesisReport(BaseModel):
    """Joined assessment of a script."""

    hook_score: int
    structure_score: int
    emotional_score: int
    cta_score: int
    overall_score: int
    verdict: str
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    llm_calls: int = 0
    tokens_used: int = 0


def weighted_overall(scores: dict[str, int], weights: dict[str, float]) -> int:
    """Weighted combination of dimension scores, rounded to an int."""
    total = sum(weights[d] * scores[d] for d in ANALYST_DIMENSIONS)
    return int(round(total))


class SynthesizerAgent:
    """Merge analyst reports into a SynthesisReport."""

    name = "synthesizer"

    def _format_prompt(
        self, reports: dict[str, AnalystReport], overall: int, verdict: str, content_type: str
    ) -> str:
        reviews = "\n\n".join(
            f"## {dim.upper()} ({r.score}/100)\n{r.summary}\n"
            f"issues: {json.dumps(r.issues[:5], ensure_ascii=False)}"
            for dim, r in reports.items()
        )
        return _PROMPT_TEMPLATE.format(
            content_type=content_type, overall=overall, verdict=verdict, reviews=reviews
        )

    @staticmethod
    def _build_recommendation(raw: Any) -> Recommendation | None:
        if not isinstance(raw, dict):
            return None
        try:
            return Recommendation(
                area=str(raw.get("area", "structure")),
                priority=str(raw.get("priority", "low")),
                scene_id=raw.get("scene_id", raw.get("sceneNumber")),
                issue=str(raw.get("issue", raw.get("reasoning", ""))),
                suggestion=str(raw.get("suggestion", raw.get("suggested", ""))),
            )
        except (TypeError, ValueError) as exc:
            logger.debug("Skipping malformed recommendation: %s", exc)
            return None

    async def synthesize(
        self,
        llm: BaseLLMClient,
        reports: dict[str, AnalystReport],
        content_type: str,
        settings: Settings,
    ) -> SynthesisReport:
        missing = [d for d in ANALYST_DIMENSIONS if d not in reports]
        if missing:
            raise StageExecutionError(f"Synthesis needs all analysts, missing: {missing}")

        scores = {d: reports[d].score for d in ANALYST_DIMENSIONS}
        overall = weighted_overall(scores, settings.weights_for(content_type))
        verdict = verdict_for(
            overall, settings.verdict_viral, settings.verdict_strong, settings.verdict_moderate
        )

        response = await request_json(
            llm,
            self._format_prompt(reports, overall, verdict, content_type),
            system=SYSTEM_PROMPT,
            operation=self.name,
            timeout_s=settings.llm_call_timeout_s,
            repair_attempts=settings.malformed_repair_attempts,
            model=settings.synthesis_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )
        data = response.data
        recommendations = [
            rec
            for rec in (self._build_recommendation(r) for r in data.get("recommendations", []))
            if rec is not None
        ]

        return SynthesisReport(
            hook_score=scores["hook"],
            structure_score=scores["structure"],
            emotional_score=scores["emotional"],
            cta_score=scores["cta"],
            overall_score=overall,
            verdict=verdict,
            strengths=[str(s) for s in data.get("strengths", [])],
            weaknesses=[str(w) for w in data.get("weaknesses", [])],
            recommendations=recommendations,
            llm_calls=response.llm_calls,
            tokens_used=response.tokens_used,
        )
