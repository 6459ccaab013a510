# src/pipeline/stages/gate.py — v1
"""Gate stage (#7): final PASS / NEEDS_REVIEW / FAIL decision. No model call.

Its output carries the final script and score breakdown; Delivery writes
exactly that script into the artifact.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from pydantic import BaseModel

from scriptconveyor.core.models import ScoreBreakdown, ScriptContent
from scriptconveyor.pipeline.plugin_kit.base_stage import BaseStage, verdict_for
from scriptconveyor.pipeline.plugin_kit.models import StageContext, StagePayloads, StageResult

logger = logging.getLogger(__name__)

DEFAULT_APPROVAL_RATE = 0.5


class GateInput(BaseModel):
    title: str
    script: ScriptContent
    qc: dict[str, Any]
    iterations: int = 0
    approval_rate: float = DEFAULT_APPROVAL_RATE


def decide(
    final_score: int, hook_score: int, has_critical: bool, approval_rate: float
) -> tuple[str, str, float]:
    """Return (decision, reason, confidence)."""
    if final_score >= 85 and not has_critical and hook_score >= 80:
        return "PASS", f"Excellent score ({final_score}), strong hook ({hook_score})", 0.95
    if final_score >= 75 and not has_critical and approval_rate > 0.7:
        return (
            "PASS",
            f"Good score ({final_score}), high owner approval rate ({approval_rate:.0%})",
            0.80,
        )
    if final_score >= 70 and not has_critical:
        return "NEEDS_REVIEW", f"Borderline score ({final_score}), manual review advised", 0.60
    if final_score >= 65 and has_critical:
        return "NEEDS_REVIEW", f"Score {final_score} with critical issues, manual review", 0.50

    reasons: list[str] = []
    if final_score < 65:
        reasons.append(f"score {final_score} below 65")
    if has_critical:
        reasons.append("critical issues")
    if hook_score < 50:
        reasons.append(f"weak hook ({hook_score})")
    return "FAIL", "Below standards: " + ", ".join(reasons or ["insufficient score"]), 0.90


class GateStage(BaseStage):
    """Pure-logic final decision."""

    @property
    def name(self) -> str:
        return "gate"

    @property
    def description(self) -> str:
        return "Final decision on the optimized script"

    @property
    def uses_ai(self) -> bool:
        return False

    @property
    def depends_on_draft(self) -> bool:
        return True

    def build_input(self, payloads: StagePayloads, context: StageContext) -> GateInput:
        optimized = payloads.output("optimizer")
        rate = context.owner.approval_rate
        return GateInput(
            title=payloads.output("scout").get("title", ""),
            script=ScriptContent(**optimized["script"]),
            qc=optimized["qc"],
            iterations=optimized.get("iterations", 0),
            approval_rate=DEFAULT_APPROVAL_RATE if rate is None else rate,
        )

    async def execute(self, inp: GateInput, context: StageContext) -> StageResult:
        started = time.monotonic_ns()
        settings = context.settings
        qc = inp.qc
        final_score = int(qc["overall_score"])
        decision, reason, confidence = decide(
            final_score, int(qc["hook_score"]), bool(qc["has_critical"]), inp.approval_rate
        )

        scores = ScoreBreakdown(
            hook_score=qc["hook_score"],
            structure_score=qc["structure_score"],
            emotional_score=qc["emotional_score"],
            cta_score=qc["cta_score"],
            overall_score=final_score,
            verdict=verdict_for(
                final_score,
                settings.verdict_viral,
                settings.verdict_strong,
                settings.verdict_moderate,
            ),
            gate_decision=decision,
        )
        logger.info("Gate %s (score %d): %s", decision, final_score, reason)
        return self._result(
            {
                "decision": decision,
                "reason": reason,
                "confidence": confidence,
                "final_score": final_score,
                "passed_after_iterations": inp.iterations,
                "title": inp.title,
                "script": inp.script.model_dump(),
                "scores": scores.model_dump(),
            },
            started,
            score=final_score,
        )
