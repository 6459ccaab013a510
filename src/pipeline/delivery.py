# src/pipeline/delivery.py — v1
"""Delivery: turn the gate stage's output into an artifact write.

FAIL writes nothing. A fresh item creates the artifact and its version 1;
a revision item updates the target artifact and appends the next version.
Either write is one store transaction, and the content written is exactly
the gate output's script. Delivering the same item twice writes once.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from pydantic import BaseModel

from scriptconveyor.core.errors import NotFoundError
from scriptconveyor.core.models import (
    Artifact,
    ArtifactStatus,
    ArtifactVersion,
    PipelineItem,
    ScoreBreakdown,
    ScriptContent,
)
from scriptconveyor.storage.base_artifact_store import BaseArtifactStore
from scriptconveyor.storage.base_owner_store import BaseOwnerStore

logger = logging.getLogger(__name__)


class DeliveryOutcome(BaseModel):
    """What Delivery did with a finished item."""

    decision: str
    artifact_id: str | None = None
    version_number: int | None = None


class Delivery:
    """Persist finished items as versioned artifacts."""

    def __init__(self, artifacts: BaseArtifactStore, owners: BaseOwnerStore) -> None:
        self._artifacts = artifacts
        self._owners = owners

    async def deliver(self, item: PipelineItem, gate_payload: dict[str, Any]) -> DeliveryOutcome:
        output = gate_payload["output"]
        decision = output["decision"]

        if decision == "FAIL":
            if item.is_revision and item.artifact_id:
                await self._artifacts.release(item.artifact_id)
            await self._owners.record_outcome(item.owner_id, passed=False)
            logger.info("Item %s failed the gate, nothing delivered", item.id)
            return DeliveryOutcome(decision=decision, artifact_id=item.artifact_id)

        content = ScriptContent(**output["script"])
        scores = ScoreBreakdown(**output["scores"])

        if item.is_revision:
            if item.artifact_id is None:
                raise NotFoundError(f"Revision item {item.id} has no target artifact")
            delivered = await self._delivered_version(item.artifact_id, item.id)
            if delivered is not None:
                return DeliveryOutcome(
                    decision=decision,
                    artifact_id=item.artifact_id,
                    version_number=delivered.version_number,
                )
            revision = item.revision_context
            version = await self._artifacts.deliver_version(
                item.artifact_id,
                content,
                scores,
                feedback_text=revision.feedback if revision else None,
                targeted_element_ids=revision.targeted_element_ids if revision else None,
                item_id=item.id,
            )
            artifact_id = item.artifact_id
        else:
            existing = await self._artifacts.get_by_source(item.owner_id, item.source_ref.key)
            if existing is not None and existing.item_id == item.id:
                # Re-run after a crash between persist and completion.
                current = await self._artifacts.get_current_version(existing.id)
                return DeliveryOutcome(
                    decision=decision,
                    artifact_id=existing.id,
                    version_number=current.version_number if current else None,
                )
            artifact = Artifact(
                id=uuid.uuid4().hex,
                owner_id=item.owner_id,
                source_key=item.source_ref.key,
                title=output.get("title", ""),
                content=content,
                scores=scores,
                status=ArtifactStatus.PENDING,
                item_id=item.id,
            )
            version = await self._artifacts.persist_artifact(artifact)
            artifact_id = artifact.id

        await self._owners.record_outcome(item.owner_id, passed=True)
        logger.info(
            "Delivered item %s → artifact %s v%d (%s)",
            item.id, artifact_id, version.version_number, decision,
        )
        return DeliveryOutcome(
            decision=decision, artifact_id=artifact_id, version_number=version.version_number
        )

    async def _delivered_version(self, artifact_id: str, item_id: str) -> ArtifactVersion | None:
        """Version already written by this item, if a re-run reaches delivery again."""
        for version in await self._artifacts.list_versions(artifact_id):
            if version.item_id == item_id:
                return version
        return None
