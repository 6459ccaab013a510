# src/pipeline/plugin_kit/models.py — v1
"""Stage plugin models: StageMetadata, StageResult, StageContext, StagePayloads.

A StageResult is what gets persisted as a stage payload (model_dump), so a
later stage or a later revision can rebuild its input without recomputation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from scriptconveyor.core.errors import StageExecutionError
from scriptconveyor.core.models import OwnerSettings, RevisionContext, SourceRef

if TYPE_CHECKING:
    from scriptconveyor.config.settings import Settings
    from scriptconveyor.llm.base_client import BaseLLMClient


class StageMetadata(BaseModel):
    """Metadata about a stage execution, attached to every StageResult."""

    stage_name: str
    stage_version: str
    execution_time_ms: int = 0
    llm_calls: int = 0
    tokens_used: int = 0
    prompt_hash: str | None = None


class StageResult(BaseModel):
    """Standard return type for all BaseStage.execute() calls."""

    output: dict[str, Any]
    score: float | None = None
    metadata: StageMetadata
    warnings: list[str] = Field(default_factory=list)


@dataclass
class StageContext:
    """Per-run context handed to every stage.

    The model client is created once per item run from the owner's
    credential; stages never look credentials up themselves.
    """

    item_id: str
    owner_id: str
    source_ref: SourceRef
    settings: Settings
    owner: OwnerSettings
    llm: BaseLLMClient | None = None
    revision: RevisionContext | None = None
    content_type: str = "news"


class StagePayloads:
    """Read access to an item's stored payloads by stage name."""

    def __init__(self, payloads: dict[int, dict[str, Any]], names: list[str]) -> None:
        self._payloads = payloads
        self._index = {name: i for i, name in enumerate(names)}

    def output(self, name: str) -> dict[str, Any]:
        """Stored output of a completed stage.

        Raises:
            StageExecutionError: The stage has no stored payload.
        """
        payload = self._payloads.get(self._index[name])
        if payload is None:
            raise StageExecutionError(f"Missing stored output of stage '{name}'")
        return payload.get("output", {})

    def has(self, name: str) -> bool:
        return self._index.get(name) in self._payloads
