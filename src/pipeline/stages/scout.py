# src/pipeline/stages/scout.py — v1
"""Scout stage (#0): resolve the source reference into normalized content."""

from __future__ import annotations

import logging
import time

from pydantic import BaseModel

from scriptconveyor.core.errors import NotFoundError, StageExecutionError
from scriptconveyor.core.models import SourceRef
from scriptconveyor.pipeline.plugin_kit.base_stage import BaseStage
from scriptconveyor.pipeline.plugin_kit.models import StageContext, StagePayloads, StageResult
from scriptconveyor.sources.base_source_provider import BaseSourceProvider

logger = logging.getLogger(__name__)


class ScoutInput(BaseModel):
    source_ref: SourceRef


class ScoutStage(BaseStage):
    """Fetch and normalize the source. No model call."""

    def __init__(self, provider: BaseSourceProvider) -> None:
        self._provider = provider

    @property
    def name(self) -> str:
        return "scout"

    @property
    def description(self) -> str:
        return "Fetch and normalize source content"

    @property
    def uses_ai(self) -> bool:
        return False

    def build_input(self, payloads: StagePayloads, context: StageContext) -> ScoutInput:
        return ScoutInput(source_ref=context.source_ref)

    async def execute(self, inp: ScoutInput, context: StageContext) -> StageResult:
        started = time.monotonic_ns()
        try:
            source = await self._provider.fetch(inp.source_ref)
        except NotFoundError as exc:
            raise StageExecutionError(str(exc)) from exc

        title = source.title.strip()
        content = source.content.strip()
        if not content:
            raise StageExecutionError(f"Source {inp.source_ref.key} has no content")

        logger.info("Scouted %s: %r (%d chars)", inp.source_ref.key, title[:60], len(content))
        output = source.model_dump(mode="json")
        output.update(title=title, content=content)
        return self._result(output, started)
