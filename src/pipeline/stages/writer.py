# src/pipeline/stages/writer.py — v1
"""Writer stage (#4): draft the scene-by-scene script.

The first stage that depends on the draft, so revisions resume here. A
revision rewrites from reviewer feedback; when specific scenes are targeted,
every other scene is carried over verbatim from the current version.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from pydantic import BaseModel, Field

from scriptconveyor.core.errors import StageExecutionError
from scriptconveyor.core.models import RevisionContext, Scene, ScriptContent
from scriptconveyor.pipeline.plugin_kit.base_stage import BaseStage
from scriptconveyor.pipeline.plugin_kit.models import StageContext, StagePayloads, StageResult
from scriptconveyor.pipeline.scene_extraction import extract_scenes

logger = logging.getLogger(__name__)

# Rejection categories seen at least this often become writing constraints.
MIN_PATTERN_COUNT = 2

SYSTEM_PROMPT = (
    "You are a scriptwriter for viral short-form vertical video. You write "
    "spoken, punchy scenes timed to the second. Respond only with valid JSON."
)

_RESPONSE_FORMAT = """Respond ONLY with JSON:
{
  "scenes": [
    {"id": 1, "label": "hook", "text": "voiceover text", "start": 0, "end": 5, "visual_notes": "..."},
    {"id": 2, "label": "context", "text": "...", "start": 5, "end": 15, "visual_notes": "..."}
  ],
  "full_text": "the whole script as one text",
  "estimated_duration": 65
}"""


class WriterInput(BaseModel):
    title: str
    content: str
    analysis: dict[str, Any]
    architecture: dict[str, Any]
    avoid: list[str] = Field(default_factory=list)
    revision: RevisionContext | None = None


def merge_targeted(
    current: list[Scene], rewritten: list[Scene], targeted_ids: list[int]
) -> list[Scene]:
    """Take rewritten scenes for targeted ids, current scenes for the rest."""
    by_id = {s.id: s for s in rewritten}
    merged: list[Scene] = []
    for scene in current:
        if scene.id in targeted_ids and scene.id in by_id:
            new = by_id[scene.id]
            notes = new.visual_notes or scene.visual_notes
            merged.append(scene.model_copy(update={"text": new.text, "visual_notes": notes}))
        else:
            merged.append(scene)
    return merged


class WriterStage(BaseStage):
    """Write or rewrite the script."""

    @property
    def name(self) -> str:
        return "writer"

    @property
    def description(self) -> str:
        return "Write the scene-by-scene script"

    @property
    def depends_on_draft(self) -> bool:
        return True

    def build_input(self, payloads: StagePayloads, context: StageContext) -> WriterInput:
        source = payloads.output("scout")
        avoid = [
            f"{category}: {pattern.last_reason or 'rejected before'}"
            for category, pattern in context.owner.rejection_patterns.items()
            if pattern.count >= MIN_PATTERN_COUNT
        ]
        return WriterInput(
            title=source.get("title", ""),
            content=source.get("content", ""),
            analysis=payloads.output("analyst"),
            architecture=payloads.output("architect"),
            avoid=avoid,
            revision=context.revision,
        )

    def _structure_line(self, architecture: dict[str, Any]) -> str:
        template = architecture.get("structure_template", {})
        return " → ".join(
            f"{section}({slot.get('duration', '?')}s)" for section, slot in template.items()
        )

    def _avoid_block(self, inp: WriterInput) -> str:
        if not inp.avoid:
            return ""
        return "\nAVOID (the reviewer rejected scripts for this):\n" + "\n".join(
            f"- {a}" for a in inp.avoid
        )

    def _fresh_prompt(self, inp: WriterInput) -> str:
        analysis = inp.analysis
        facts = "\n".join(f"- {f}" for f in analysis.get("key_facts", []))
        hooks = "\n".join(f"- {h}" for h in inp.architecture.get("suggested_hooks", []))
        return (
            f"Write a short video script.\n\n"
            f"TITLE: {inp.title}\n"
            f"TOPIC: {analysis.get('main_topic', '')}\n"
            f"UNIQUE ANGLE: {analysis.get('unique_angle', '')}\n"
            f"KEY FACTS:\n{facts}\n\n"
            f"FORMAT: {inp.architecture.get('format_name', '')}\n"
            f"STRUCTURE: {self._structure_line(inp.architecture)}\n"
            f"HOOK IDEAS:\n{hooks}\n"
            f"{self._avoid_block(inp)}\n\n"
            f"SOURCE:\n{inp.content[:3000]}\n\n"
            f"{_RESPONSE_FORMAT}"
        )

    def _revision_prompt(self, inp: WriterInput, revision: RevisionContext) -> str:
        current = "\n".join(
            f"Scene {s.id} ({s.label}): \"{s.text}\"" for s in revision.current_scenes
        ) or "(no scenes)"
        history = "\n\n".join(
            f"Version {v.version_number} (score {v.overall_score}, {v.verdict})"
            + (f", feedback: \"{v.feedback_text}\"" if v.feedback_text else "")
            for v in revision.previous_versions
        )
        if revision.targeted_element_ids:
            ids = ", ".join(str(i) for i in revision.targeted_element_ids)
            scope = (
                f"Rewrite ONLY scenes {ids}. Copy every other scene word for word."
            )
        else:
            scope = "Change only what the feedback asks for; keep the good parts verbatim."
        return (
            f"Revise this short video script (attempt {revision.attempt}).\n\n"
            f"REVIEWER FEEDBACK:\n\"{revision.feedback}\"\n\n"
            f"{scope}\n\n"
            f"CURRENT SCRIPT:\n{current}\n\n"
            f"VERSION HISTORY:\n{history or '(none)'}\n\n"
            f"FORMAT: {inp.architecture.get('format_name', '')}\n"
            f"STRUCTURE: {self._structure_line(inp.architecture)}\n"
            f"{self._avoid_block(inp)}\n\n"
            f"SOURCE (context only):\n{inp.content[:1500]}\n\n"
            f"{_RESPONSE_FORMAT}"
        )

    async def execute(self, inp: WriterInput, context: StageContext) -> StageResult:
        started = time.monotonic_ns()
        revision = inp.revision
        prompt = self._revision_prompt(inp, revision) if revision else self._fresh_prompt(inp)
        response = await self._ask_json(context, prompt, SYSTEM_PROMPT)

        scenes = extract_scenes(response.data)
        if not scenes:
            raise StageExecutionError("Writer returned no usable scenes")

        changed: list[int] | None = None
        if revision and revision.targeted_element_ids and revision.current_scenes:
            scenes = merge_targeted(revision.current_scenes, scenes, revision.targeted_element_ids)
            before = {s.id: s.text for s in revision.current_scenes}
            changed = [s.id for s in scenes if before.get(s.id) != s.text]

        script = ScriptContent.from_scenes(scenes)
        if script.estimated_duration_s == 0:
            fallback = response.data.get("estimated_duration") or inp.architecture.get(
                "total_duration", 0
            )
            try:
                script.estimated_duration_s = float(fallback)
            except (TypeError, ValueError):
                script.estimated_duration_s = 0.0

        output = script.model_dump()
        if revision:
            output["revision_attempt"] = revision.attempt
            output["changed_scene_ids"] = changed
        logger.info(
            "Wrote %d scenes (%.0fs)%s",
            len(scenes),
            script.estimated_duration_s,
            f", revision attempt {revision.attempt}" if revision else "",
        )
        return self._result(
            output,
            started,
            llm_calls=response.llm_calls,
            tokens_used=response.tokens_used,
            prompt=prompt,
        )
