# src/pipeline/analyzer.py — v1
"""ScriptAnalyzer — fan-out of the four analysts, join barrier, synthesis.

The analysts run concurrently; synthesis starts only once all four have
reported. If any analyst fails, the still-pending siblings are cancelled and
the error propagates (no partial synthesis). Results are cached by script
text and content type.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from scriptconveyor.cache.ttl_cache import TTLCache, text_key
from scriptconveyor.core.models import ScriptContent
from scriptconveyor.pipeline.agents.analysts import default_analysts
from scriptconveyor.pipeline.agents.base_analyst import AnalystInput, AnalystReport, BaseAnalyst
from scriptconveyor.pipeline.agents.synthesizer import SynthesisReport, SynthesizerAgent

if TYPE_CHECKING:
    from scriptconveyor.config.settings import Settings
    from scriptconveyor.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)


class ScriptAnalyzer:
    """Run the analyst fan-out and synthesis over one script.

    Args:
        settings: Timeouts, weights and verdict thresholds.
        cache: Analysis cache; built from settings if omitted.
        analysts: Dimension analysts (defaults to hook/structure/emotional/cta).
        synthesizer: Joins the analyst reports.
    """

    def __init__(
        self,
        settings: Settings,
        cache: TTLCache[SynthesisReport] | None = None,
        analysts: list[BaseAnalyst] | None = None,
        synthesizer: SynthesizerAgent | None = None,
    ) -> None:
        self._settings = settings
        self._cache: TTLCache[SynthesisReport] = cache or TTLCache(
            capacity=settings.analysis_cache_capacity,
            ttl_s=settings.analysis_cache_ttl_s,
        )
        self._analysts = analysts or default_analysts()
        self._synthesizer = synthesizer or SynthesizerAgent()

    @property
    def cache(self) -> TTLCache[SynthesisReport]:
        return self._cache

    async def analyze(
        self, llm: BaseLLMClient, script: ScriptContent, content_type: str
    ) -> SynthesisReport:
        key = text_key(script.full_text, content_type)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Analysis cache hit (%s)", key[:12])
            return cached

        inp = AnalystInput(text=script.full_text, scenes=script.scenes, content_type=content_type)
        reports = await self._fan_out(llm, inp)
        report = await self._synthesizer.synthesize(llm, reports, content_type, self._settings)
        report = report.model_copy(update={
            "llm_calls": report.llm_calls + sum(r.llm_calls for r in reports.values()),
            "tokens_used": report.tokens_used + sum(r.tokens_used for r in reports.values()),
        })
        self._cache.put(key, report)

        logger.info(
            "Script analysis: overall=%d (%s), hook=%d, structure=%d, emotional=%d, cta=%d",
            report.overall_score,
            report.verdict,
            report.hook_score,
            report.structure_score,
            report.emotional_score,
            report.cta_score,
        )
        return report

    async def _fan_out(
        self, llm: BaseLLMClient, inp: AnalystInput
    ) -> dict[str, AnalystReport]:
        tasks = [
            asyncio.create_task(a.analyze(llm, inp, self._settings), name=f"analyst:{a.dimension}")
            for a in self._analysts
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return {r.dimension: r for r in results}
