# src/pipeline/stages/optimizer.py — v1
"""Optimizer stage (#6): fix QC weak spots, re-check, repeat.

Each iteration rewrites the scenes flagged as critical or major and runs the
analyzer again. The loop stops when QC passes, when nothing serious is left
to fix, when the model changes nothing, or after max_qc_iterations.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from pydantic import BaseModel

from scriptconveyor.core.errors import StageExecutionError
from scriptconveyor.core.models import Scene, ScriptContent
from scriptconveyor.pipeline.analyzer import ScriptAnalyzer
from scriptconveyor.pipeline.plugin_kit.base_stage import BaseStage
from scriptconveyor.pipeline.plugin_kit.models import StageContext, StagePayloads, StageResult
from scriptconveyor.pipeline.scene_extraction import extract_scenes
from scriptconveyor.pipeline.stages.qc import build_qc_data

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a script optimizer for short-form vertical video. You fix the "
    "listed problems and keep everything that works. Respond only with valid JSON."
)

_PROMPT_TEMPLATE = """Improve the script based on the quality review.

CURRENT SCRIPT:
{scenes}

PROBLEMS:
{issues}

Rules:
1. Fix every problem following its suggestion
2. Keep what works
3. Do not change the overall structure or timings

Respond ONLY with JSON:
{{
  "improved_scenes": [{{"id": 1, "label": "hook", "text": "...", "start": 0, "end": 5}}],
  "changes_applied": [{{"scene_id": 1, "original": "...", "improved": "...", "reason": "..."}}],
  "full_text": "..."
}}"""


class OptimizerInput(BaseModel):
    script: ScriptContent
    qc: dict[str, Any]
    content_type: str = "news"


def _merge_improved(original: list[Scene], improved: list[Scene]) -> list[Scene]:
    """Apply improved scenes onto the original by id.

    Scenes the model left out are kept as they were; ids, labels and timings
    come from the original where the model dropped them.
    """
    by_id = {s.id: s for s in improved}
    known = {s.id for s in original}
    result: list[Scene] = []
    for base in original:
        scene = by_id.get(base.id)
        if scene is None:
            result.append(base)
            continue
        result.append(
            base.model_copy(update={
                "text": scene.text,
                "start": scene.start or base.start,
                "end": scene.end or base.end,
                "visual_notes": scene.visual_notes or base.visual_notes,
            })
        )
    result.extend(s for s in improved if s.id not in known)
    return result


class OptimizerStage(BaseStage):
    """Improve the draft and re-run QC, bounded by max_qc_iterations."""

    def __init__(self, analyzer: ScriptAnalyzer) -> None:
        self._analyzer = analyzer

    @property
    def name(self) -> str:
        return "optimizer"

    @property
    def description(self) -> str:
        return "Fix weak spots and re-check quality"

    @property
    def depends_on_draft(self) -> bool:
        return True

    def build_input(self, payloads: StagePayloads, context: StageContext) -> OptimizerInput:
        return OptimizerInput(
            script=ScriptContent(**payloads.output("writer")),
            qc=payloads.output("qc")["qc"],
            content_type=context.content_type,
        )

    def _format_prompt(self, script: ScriptContent, weak_spots: list[dict[str, Any]]) -> str:
        scenes = "\n\n".join(f"[{s.id}] {s.label.upper()}: \"{s.text}\"" for s in script.scenes)
        issues = "\n\n".join(
            f"- Scene {w['scene_id']} ({w['area']}, {w['severity']}): {w['issue']}\n"
            f"  Suggestion: {w['suggestion']}"
            for w in weak_spots[:5]
        )
        return _PROMPT_TEMPLATE.format(scenes=scenes, issues=issues)

    async def execute(self, inp: OptimizerInput, context: StageContext) -> StageResult:
        started = time.monotonic_ns()
        if context.llm is None:
            raise StageExecutionError("Stage 'optimizer' requires a model client")

        max_iterations = context.settings.max_qc_iterations
        script, qc = inp.script, inp.qc
        changes: list[dict[str, Any]] = []
        iterations = 0
        llm_calls = 0
        tokens = 0

        while iterations < max_iterations and not qc["passed"]:
            serious = [w for w in qc["weak_spots"] if w["severity"] != "minor"]
            if not serious:
                logger.info("No serious weak spots left, stopping")
                break

            iterations += 1
            prompt = self._format_prompt(script, serious)
            response = await self._ask_json(context, prompt, SYSTEM_PROMPT)
            llm_calls += response.llm_calls
            tokens += response.tokens_used

            improved = extract_scenes(response.data)
            applied = [c for c in response.data.get("changes_applied", []) if isinstance(c, dict)]
            if not improved or not applied:
                logger.info("Optimization #%d applied no changes, stopping", iterations)
                break

            script = ScriptContent.from_scenes(_merge_improved(script.scenes, improved))
            changes.extend({**c, "iteration": iterations} for c in applied)

            report = await self._analyzer.analyze(context.llm, script, inp.content_type)
            llm_calls += report.llm_calls
            tokens += report.tokens_used
            qc = build_qc_data(report, script)
            logger.info(
                "Re-QC after optimization #%d: overall=%d, passed=%s",
                iterations, qc["overall_score"], qc["passed"],
            )

        if script.estimated_duration_s == 0:
            script.estimated_duration_s = inp.script.estimated_duration_s

        return self._result(
            {
                "script": script.model_dump(),
                "qc": qc,
                "iterations": iterations,
                "changes_applied": changes,
            },
            started,
            score=qc["overall_score"],
            llm_calls=llm_calls,
            tokens_used=tokens,
        )
