# src/pipeline/stages/scorer.py — v1
"""Scorer stage (#1): rate the source's viral potential, reject weak sources."""

from __future__ import annotations

import logging
import time

from pydantic import BaseModel

from scriptconveyor.core.errors import StageExecutionError, StageRejectedError
from scriptconveyor.pipeline.plugin_kit.base_stage import BaseStage, clamp, verdict_for
from scriptconveyor.pipeline.plugin_kit.models import StageContext, StagePayloads, StageResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a virality scorer for short-form video. You rate how well a piece "
    "of source content would work as a 60-90 second vertical video. "
    "Respond only with valid JSON."
)

_PROMPT_TEMPLATE = """Rate the viral potential of this content for a short video.

TITLE: {title}

CONTENT:
{content}

Criteria:
1. Concrete facts / numbers (0-35)
2. Relevance / trend (0-25)
3. Audience breadth (0-20)
4. Topic interest (0-20)

Respond ONLY with JSON:
{{
  "score": 0-100,
  "breakdown": {{"fact_score": 0, "relevance_score": 0, "audience_score": 0, "interest_score": 0}},
  "reasoning": "short explanation"
}}"""

_BREAKDOWN_CAPS = {
    "fact_score": 35,
    "relevance_score": 25,
    "audience_score": 20,
    "interest_score": 20,
}


class ScorerInput(BaseModel):
    title: str
    content: str
    threshold: int


class ScorerStage(BaseStage):
    """Score 0-100; below the owner's threshold the item is rejected."""

    @property
    def name(self) -> str:
        return "scorer"

    @property
    def description(self) -> str:
        return "Rate viral potential of the source"

    def build_input(self, payloads: StagePayloads, context: StageContext) -> ScorerInput:
        source = payloads.output("scout")
        threshold = context.owner.learned_threshold or context.settings.score_threshold
        return ScorerInput(
            title=source.get("title", ""),
            content=source.get("content", ""),
            threshold=threshold,
        )

    async def execute(self, inp: ScorerInput, context: StageContext) -> StageResult:
        started = time.monotonic_ns()
        settings = context.settings
        if len(inp.content) < settings.min_source_chars:
            raise StageExecutionError(
                f"Content too short ({len(inp.content)} < {settings.min_source_chars} chars)"
            )

        prompt = _PROMPT_TEMPLATE.format(title=inp.title, content=inp.content[:3000])
        response = await self._ask_json(context, prompt, SYSTEM_PROMPT, max_tokens=1024)
        data = response.data

        score = clamp(data.get("score"), 0, 100)
        raw_breakdown = data.get("breakdown") if isinstance(data.get("breakdown"), dict) else {}
        breakdown = {
            key: clamp(raw_breakdown.get(key), 0, cap) for key, cap in _BREAKDOWN_CAPS.items()
        }
        verdict = verdict_for(
            score, settings.verdict_viral, settings.verdict_strong, settings.verdict_moderate
        )

        if score < inp.threshold:
            logger.info("Score %d below threshold %d, rejecting", score, inp.threshold)
            raise StageRejectedError(f"Score {score} below threshold {inp.threshold}")

        logger.info("Scored %d/100 (%s)", score, verdict)
        return self._result(
            {
                "score": score,
                "verdict": verdict,
                "breakdown": breakdown,
                "reasoning": str(data.get("reasoning", "")),
                "threshold": inp.threshold,
            },
            started,
            score=score,
            llm_calls=response.llm_calls,
            tokens_used=response.tokens_used,
            prompt=prompt,
        )
