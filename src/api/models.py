# src/api/models.py — v1
"""API-level results returned by the ConveyorService facade."""

from __future__ import annotations

from pydantic import BaseModel

from scriptconveyor.core.models import ArtifactStatus, ItemStatus


class TriggerResult(BaseModel):
    """A fresh item was queued for a source."""

    item_id: str
    status: ItemStatus = ItemStatus.QUEUED


class RetryResult(BaseModel):
    item_id: str
    retry_count: int


class CancelResult(BaseModel):
    item_id: str
    ok: bool = True


class RevisionResult(BaseModel):
    """A revision item was forked from the artifact's current version."""

    item_id: str
    artifact_id: str
    attempt: int
    resume_stage: int


class ReviewResult(BaseModel):
    """Reviewer decision recorded on an artifact."""

    artifact_id: str
    status: ArtifactStatus
    approval_rate: float | None = None
