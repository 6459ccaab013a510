# src/pipeline/revision.py — v1
"""Revision forker: turn reviewer feedback into a new item.

The child item copies the parent's stage payloads below the resume stage and
starts there, so only the draft-dependent stages run again.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from scriptconveyor.core.errors import ForbiddenError, InvalidStateError, NotFoundError
from scriptconveyor.core.models import PipelineItem, RevisionContext, VersionSummary

if TYPE_CHECKING:
    from scriptconveyor.config.settings import Settings
    from scriptconveyor.pipeline.stage_plan import StagePlan
    from scriptconveyor.storage.base_artifact_store import BaseArtifactStore
    from scriptconveyor.storage.base_item_store import BaseItemStore

logger = logging.getLogger(__name__)


class RevisionForker:
    """Claim the artifact gate and fork the item that produced it."""

    def __init__(
        self,
        items: BaseItemStore,
        artifacts: BaseArtifactStore,
        plan: StagePlan,
        settings: Settings,
    ) -> None:
        self._items = items
        self._artifacts = artifacts
        self._plan = plan
        self._settings = settings

    async def fork(
        self,
        artifact_id: str,
        owner_id: str,
        feedback: str,
        targeted_ids: list[int] | None = None,
    ) -> PipelineItem:
        """Create a revision item for an artifact.

        The gate is claimed before anything is created; if creating the item
        fails the claim is undone.

        Raises:
            NotFoundError: Unknown artifact or missing parent item.
            ForbiddenError: Artifact belongs to another owner.
            InvalidStateError: Empty feedback.
            RevisionLimitExceededError: max_revisions already used.
            ArtifactBusyError: Another item is processing against the artifact.
        """
        artifact = await self._artifacts.get(artifact_id)
        if artifact is None:
            raise NotFoundError(f"Artifact {artifact_id} not found")
        if artifact.owner_id != owner_id:
            raise ForbiddenError(f"Artifact {artifact_id} belongs to another owner")
        if not feedback or not feedback.strip():
            raise InvalidStateError("Revision feedback must not be empty")

        claimed = await self._artifacts.claim_revision(
            artifact_id, self._settings.max_revisions
        )
        try:
            child = await self._fork_claimed(claimed.id, claimed.revision_count, feedback, targeted_ids)
        except Exception:
            await self._artifacts.unclaim_revision(artifact_id)
            raise

        logger.info(
            "Forked revision %d of artifact %s as item %s (resume at stage %d)",
            claimed.revision_count, artifact_id, child.id, child.current_stage,
        )
        return child

    async def _fork_claimed(
        self,
        artifact_id: str,
        attempt: int,
        feedback: str,
        targeted_ids: list[int] | None,
    ) -> PipelineItem:
        versions = await self._artifacts.list_versions(artifact_id)
        current = next((v for v in versions if v.is_current), None)
        if current is None or current.item_id is None:
            raise NotFoundError(f"Artifact {artifact_id} has no current version to revise")

        context = RevisionContext(
            feedback=feedback.strip(),
            targeted_element_ids=sorted(set(targeted_ids or [])),
            attempt=attempt,
            previous_versions=[
                VersionSummary(
                    version_number=v.version_number,
                    overall_score=v.scores.overall_score,
                    verdict=v.scores.verdict,
                    feedback_text=v.feedback_text,
                    full_text=v.content.full_text,
                )
                for v in versions
            ],
            current_scenes=current.content.scenes,
        )
        return await self._items.fork_from(
            current.item_id, self._plan.resume_stage, context, artifact_id
        )
