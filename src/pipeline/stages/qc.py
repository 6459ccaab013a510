# src/pipeline/stages/qc.py — v1
"""QC stage (#5): multi-analyst quality check of the draft.

Runs the ScriptAnalyzer fan-out (four analysts + synthesis) and converts the
synthesis into QC data: dimension scores, weak spots and a pass flag.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any

from pydantic import BaseModel

from scriptconveyor.core.errors import StageExecutionError
from scriptconveyor.core.models import ScriptContent
from scriptconveyor.pipeline.agents.synthesizer import Recommendation, SynthesisReport
from scriptconveyor.pipeline.analyzer import ScriptAnalyzer
from scriptconveyor.pipeline.plugin_kit.base_stage import BaseStage
from scriptconveyor.pipeline.plugin_kit.models import StageContext, StagePayloads, StageResult

logger = logging.getLogger(__name__)

QC_PASS_SCORE = 75
QC_MIN_HOOK = 70
QC_CRITICAL_BELOW = 50

_SEVERITY_ORDER = {"critical": 0, "major": 1, "minor": 2}


def _map_area(area: str | None) -> str:
    lower = (area or "").lower()
    if "hook" in lower:
        return "hook"
    if "emotion" in lower:
        return "emotional"
    if "cta" in lower or "call" in lower:
        return "cta"
    return "structure"


def _map_severity(priority: str | None) -> str:
    lower = (priority or "").lower()
    if lower in ("critical", "high"):
        return "critical"
    if lower in ("major", "medium"):
        return "major"
    return "minor"


def _scene_for(rec: Recommendation, scene_count: int) -> int:
    if rec.scene_id:
        return rec.scene_id
    area = _map_area(rec.area)
    if area == "cta":
        return max(scene_count, 1)
    if area == "structure":
        return max(math.ceil(scene_count / 2), 1)
    return 1


def build_qc_data(report: SynthesisReport, script: ScriptContent) -> dict[str, Any]:
    """Convert a synthesis report into QC data.

    The overall score is the synthesizer's weighted score; the plain mean of
    the four dimensions is kept alongside as mean_score.
    """
    scores = [report.hook_score, report.structure_score, report.emotional_score, report.cta_score]
    overall = report.overall_score
    mean = int(round(sum(scores) / len(scores)))
    scene_count = len(script.scenes)

    weak_spots: list[dict[str, Any]] = [
        {
            "scene_id": _scene_for(rec, scene_count),
            "area": _map_area(rec.area),
            "issue": rec.issue or "Issue detected",
            "severity": _map_severity(rec.priority),
            "suggestion": rec.suggestion,
        }
        for rec in report.recommendations
    ]
    if report.hook_score < QC_MIN_HOOK:
        weak_spots.append({
            "scene_id": 1,
            "area": "hook",
            "issue": "Hook score below threshold",
            "severity": "critical" if report.hook_score < QC_CRITICAL_BELOW else "major",
            "suggestion": "Strengthen the opening to grab attention immediately",
        })
    if report.cta_score < QC_MIN_HOOK:
        weak_spots.append({
            "scene_id": max(scene_count, 1),
            "area": "cta",
            "issue": "CTA score below threshold",
            "severity": "critical" if report.cta_score < QC_CRITICAL_BELOW else "major",
            "suggestion": "Add a stronger call to action",
        })
    weak_spots.sort(key=lambda w: _SEVERITY_ORDER[w["severity"]])

    has_critical = any(w["severity"] == "critical" for w in weak_spots)
    passed = overall >= QC_PASS_SCORE and not has_critical and report.hook_score >= QC_MIN_HOOK

    return {
        "overall_score": overall,
        "hook_score": report.hook_score,
        "structure_score": report.structure_score,
        "emotional_score": report.emotional_score,
        "cta_score": report.cta_score,
        "mean_score": mean,
        "verdict": report.verdict,
        "weak_spots": weak_spots,
        "has_critical": has_critical,
        "passed": passed,
        "strengths": report.strengths,
        "weaknesses": report.weaknesses,
    }


class QCInput(BaseModel):
    script: ScriptContent
    content_type: str = "news"


class QCStage(BaseStage):
    """Score the draft with the analyst fan-out."""

    def __init__(self, analyzer: ScriptAnalyzer) -> None:
        self._analyzer = analyzer

    @property
    def name(self) -> str:
        return "qc"

    @property
    def description(self) -> str:
        return "Multi-analyst quality check of the draft"

    @property
    def depends_on_draft(self) -> bool:
        return True

    def build_input(self, payloads: StagePayloads, context: StageContext) -> QCInput:
        return QCInput(
            script=ScriptContent(**payloads.output("writer")),
            content_type=context.content_type,
        )

    async def execute(self, inp: QCInput, context: StageContext) -> StageResult:
        started = time.monotonic_ns()
        if not inp.script.scenes:
            raise StageExecutionError("QC needs a script with scenes")
        if context.llm is None:
            raise StageExecutionError("Stage 'qc' requires a model client")

        report = await self._analyzer.analyze(context.llm, inp.script, inp.content_type)
        qc = build_qc_data(report, inp.script)
        logger.info(
            "QC %s: overall=%d, hook=%d, weak spots=%d",
            "passed" if qc["passed"] else "failed",
            qc["overall_score"],
            qc["hook_score"],
            len(qc["weak_spots"]),
        )
        return self._result(
            {"qc": qc, "analysis": report.model_dump()},
            started,
            score=qc["overall_score"],
            llm_calls=report.llm_calls,
            tokens_used=report.tokens_used,
        )
