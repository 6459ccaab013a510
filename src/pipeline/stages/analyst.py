# src/pipeline/stages/analyst.py — v1
"""Analyst stage (#2): topic, audience and key facts; rejects avoided topics."""

from __future__ import annotations

import logging
import time

from pydantic import BaseModel, Field

from scriptconveyor.core.errors import StageRejectedError
from scriptconveyor.pipeline.plugin_kit.base_stage import BaseStage, clamp
from scriptconveyor.pipeline.plugin_kit.models import StageContext, StagePayloads, StageResult

logger = logging.getLogger(__name__)

MIN_KEY_FACTS = 3

SYSTEM_PROMPT = (
    "You are a topic analyst for viral short-form video. You extract what a "
    "scriptwriting team needs to know about a story. Respond only with valid JSON."
)

_PROMPT_TEMPLATE = """Analyze this content as an experienced viral video writer.

TITLE: {title}

CONTENT:
{content}

PRELIMINARY SCORE: {score} ({verdict})
{reasoning}

Respond ONLY with JSON:
{{
  "main_topic": "one sentence",
  "sub_topics": ["..."],
  "target_audience": ["..."],
  "emotional_angles": ["..."],
  "key_facts": ["fact 1", "fact 2", "fact 3", "fact 4", "fact 5"],
  "controversy_level": 1-10,
  "unique_angle": "..."
}}"""


def _str_list(value: object, limit: int) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if str(v).strip()][:limit]


class AnalystStageInput(BaseModel):
    title: str
    content: str
    score: int = 0
    verdict: str = "weak"
    reasoning: str = ""
    avoided_topics: list[str] = Field(default_factory=list)


class AnalystStage(BaseStage):
    """Deep topic analysis."""

    @property
    def name(self) -> str:
        return "analyst"

    @property
    def description(self) -> str:
        return "Analyze topic, audience, angles and key facts"

    def build_input(self, payloads: StagePayloads, context: StageContext) -> AnalystStageInput:
        source = payloads.output("scout")
        scoring = payloads.output("scorer")
        return AnalystStageInput(
            title=source.get("title", ""),
            content=source.get("content", ""),
            score=scoring.get("score", 0),
            verdict=scoring.get("verdict", "weak"),
            reasoning=scoring.get("reasoning", ""),
            avoided_topics=context.owner.avoided_topics,
        )

    async def execute(self, inp: AnalystStageInput, context: StageContext) -> StageResult:
        started = time.monotonic_ns()
        prompt = _PROMPT_TEMPLATE.format(
            title=inp.title,
            content=inp.content[:4000],
            score=inp.score,
            verdict=inp.verdict,
            reasoning=inp.reasoning,
        )
        response = await self._ask_json(context, prompt, SYSTEM_PROMPT)
        data = response.data

        analysis = {
            "main_topic": str(data.get("main_topic") or "Unknown topic"),
            "sub_topics": _str_list(data.get("sub_topics"), 3),
            "target_audience": _str_list(data.get("target_audience"), 3),
            "emotional_angles": _str_list(data.get("emotional_angles"), 3),
            "key_facts": _str_list(data.get("key_facts"), 5),
            "controversy_level": clamp(data.get("controversy_level"), 1, 10, default=5),
            "unique_angle": str(data.get("unique_angle", "")),
        }

        topic = analysis["main_topic"].lower()
        avoided = next((t for t in inp.avoided_topics if t.lower() in topic), None)
        if avoided is not None:
            raise StageRejectedError(f"Topic '{analysis['main_topic']}' is avoided ({avoided})")
        if len(analysis["key_facts"]) < MIN_KEY_FACTS:
            raise StageRejectedError(
                f"Not enough key facts ({len(analysis['key_facts'])} < {MIN_KEY_FACTS})"
            )

        logger.info("Topic: %r, %d key facts", analysis["main_topic"][:60], len(analysis["key_facts"]))
        return self._result(
            analysis,
            started,
            llm_calls=response.llm_calls,
            tokens_used=response.tokens_used,
            prompt=prompt,
        )
