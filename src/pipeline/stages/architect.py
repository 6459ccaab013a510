# src/pipeline/stages/architect.py — v1
"""Architect stage (#3): pick a video format and lay out the scene template."""

from __future__ import annotations

import logging
import time

from pydantic import BaseModel, Field

from scriptconveyor.pipeline.plugin_kit.base_stage import BaseStage, clamp
from scriptconveyor.pipeline.plugin_kit.models import StageContext, StagePayloads, StageResult

logger = logging.getLogger(__name__)

FORMATS = {
    "hook_story": "Hook & Story",
    "explainer": "Explainer",
    "news_update": "News Update",
    "listicle": "Top 5 List",
    "hot_take": "Hot Take",
    "myth_buster": "Myth Buster",
}

DEFAULT_TEMPLATE = {
    "hook": {"duration": 5, "purpose": "Grab attention"},
    "context": {"duration": 10, "purpose": "Set the scene"},
    "main": {"duration": 35, "purpose": "Deliver the core facts"},
    "twist": {"duration": 10, "purpose": "Unexpected angle"},
    "cta": {"duration": 5, "purpose": "Call to action"},
}

SYSTEM_PROMPT = (
    "You are a format architect for viral short-form video. You choose the "
    "format and time budget of each section. Respond only with valid JSON."
)

_PROMPT_TEMPLATE = """Design the structure of a short video.

TOPIC: {main_topic}
SUB-TOPICS: {sub_topics}
AUDIENCE: {audience}
EMOTIONS: {emotions}
CONTROVERSY: {controversy}/10
UNIQUE ANGLE: {unique_angle}

AVAILABLE FORMATS:
{formats}

Respond ONLY with JSON:
{{
  "format_id": "one of the ids above",
  "reasoning": "...",
  "suggested_hooks": ["...", "...", "..."],
  "structure_template": {{
    "hook": {{"duration": 5, "purpose": "..."}},
    "context": {{"duration": 10, "purpose": "..."}},
    "main": {{"duration": 35, "purpose": "..."}},
    "twist": {{"duration": 10, "purpose": "..."}},
    "cta": {{"duration": 5, "purpose": "..."}}
  }}
}}"""


class ArchitectInput(BaseModel):
    main_topic: str
    sub_topics: list[str] = Field(default_factory=list)
    target_audience: list[str] = Field(default_factory=list)
    emotional_angles: list[str] = Field(default_factory=list)
    controversy_level: int = 5
    unique_angle: str = ""


class ArchitectStage(BaseStage):
    """Select format, hooks and structure template."""

    @property
    def name(self) -> str:
        return "architect"

    @property
    def description(self) -> str:
        return "Select format and design the scene structure"

    def build_input(self, payloads: StagePayloads, context: StageContext) -> ArchitectInput:
        return ArchitectInput(**payloads.output("analyst"))

    @staticmethod
    def _template(raw: object) -> dict[str, dict]:
        template: dict[str, dict] = {}
        raw = raw if isinstance(raw, dict) else {}
        for section, default in DEFAULT_TEMPLATE.items():
            value = raw.get(section)
            if not isinstance(value, dict):
                template[section] = dict(default)
                continue
            template[section] = {
                "duration": clamp(value.get("duration"), 1, 120, default=default["duration"]),
                "purpose": str(value.get("purpose") or default["purpose"]),
            }
        return template

    async def execute(self, inp: ArchitectInput, context: StageContext) -> StageResult:
        started = time.monotonic_ns()
        prompt = _PROMPT_TEMPLATE.format(
            main_topic=inp.main_topic,
            sub_topics=", ".join(inp.sub_topics),
            audience=", ".join(inp.target_audience),
            emotions=", ".join(inp.emotional_angles),
            controversy=inp.controversy_level,
            unique_angle=inp.unique_angle,
            formats="\n".join(f"- {k}: {v}" for k, v in FORMATS.items()),
        )
        response = await self._ask_json(context, prompt, SYSTEM_PROMPT, max_tokens=1536)
        data = response.data

        format_id = data.get("format_id")
        if format_id not in FORMATS:
            format_id = "hook_story"
        template = self._template(data.get("structure_template"))
        hooks = [str(h) for h in data.get("suggested_hooks", []) if str(h).strip()][:3]

        architecture = {
            "format_id": format_id,
            "format_name": FORMATS[format_id],
            "reasoning": str(data.get("reasoning", "")),
            "suggested_hooks": hooks,
            "structure_template": template,
            "total_duration": sum(s["duration"] for s in template.values()),
        }
        logger.info(
            "Format %s, %ds total", architecture["format_id"], architecture["total_duration"]
        )
        return self._result(
            architecture,
            started,
            llm_calls=response.llm_calls,
            tokens_used=response.tokens_used,
            prompt=prompt,
        )
