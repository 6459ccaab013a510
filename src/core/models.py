# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

No module redefines these types — all imports come from core.models.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Default clock: timezone-aware UTC now."""
    return datetime.now(timezone.utc)


# === STATUSES ===


class ItemStatus(str, Enum):
    """Lifecycle of a PipelineItem."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemStatus.COMPLETED, ItemStatus.FAILED, ItemStatus.CANCELLED)


class ArtifactStatus(str, Enum):
    """Review status of a delivered script."""

    PENDING = "pending"
    REVISION = "revision"
    APPROVED = "approved"
    REJECTED = "rejected"


Verdict = Literal["viral", "strong", "moderate", "weak"]
GateDecision = Literal["PASS", "NEEDS_REVIEW", "FAIL"]
ContentType = Literal["news", "instagram_reel", "custom_script"]


# === SOURCE ===


class SourceRef(BaseModel):
    """Reference to one source content unit (article or reel)."""

    type: Literal["news", "instagram", "custom"]
    item_id: str

    @property
    def key(self) -> str:
        """Stable key identifying the source content unit."""
        return f"{self.type}:{self.item_id}"


class SourceData(BaseModel):
    """Normalized source content, produced by the scout stage."""

    type: Literal["news", "instagram", "custom"]
    item_id: str
    title: str
    content: str
    url: str = ""
    published_at: datetime | None = None
    image_url: str | None = None


# === SCRIPT CONTENT ===


class Scene(BaseModel):
    """One scene of a short-video script."""

    id: int
    label: Literal["hook", "context", "main", "twist", "cta"] = "main"
    text: str
    start: float = 0.0
    end: float = 0.0
    visual_notes: str | None = None


class ScriptContent(BaseModel):
    """Structured scene list plus rendered full text."""

    scenes: list[Scene] = Field(default_factory=list)
    full_text: str = ""
    estimated_duration_s: float = 0.0

    @classmethod
    def from_scenes(cls, scenes: list[Scene]) -> ScriptContent:
        """Build content from scenes, rendering full text and duration."""
        full_text = "\n\n".join(s.text.strip() for s in scenes if s.text.strip())
        duration = max((s.end for s in scenes), default=0.0)
        return cls(scenes=scenes, full_text=full_text, estimated_duration_s=duration)


class ScoreBreakdown(BaseModel):
    """Per-dimension scores plus the synthesized overall score."""

    hook_score: int = 0
    structure_score: int = 0
    emotional_score: int = 0
    cta_score: int = 0
    overall_score: int = 0
    verdict: Verdict = "weak"
    gate_decision: GateDecision | None = None


# === PIPELINE ITEM ===


class StageTiming(BaseModel):
    """Start/end timestamps of one stage execution."""

    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration_s(self) -> float:
        if self.started_at is None or self.completed_at is None:
            return 0.0
        return max((self.completed_at - self.started_at).total_seconds(), 0.0)


class VersionSummary(BaseModel):
    """Compact view of a prior artifact version, carried into revisions."""

    version_number: int
    overall_score: int = 0
    verdict: Verdict = "weak"
    feedback_text: str | None = None
    full_text: str = ""


class RevisionContext(BaseModel):
    """Reviewer feedback carried by a forked item."""

    feedback: str
    targeted_element_ids: list[int] = Field(default_factory=list)
    attempt: int
    previous_versions: list[VersionSummary] = Field(default_factory=list)
    current_scenes: list[Scene] = Field(default_factory=list)


class PipelineItem(BaseModel):
    """One attempt to process a content unit through the stage plan."""

    id: str
    owner_id: str
    parent_id: str | None = None
    source_ref: SourceRef
    artifact_id: str | None = None
    status: ItemStatus = ItemStatus.QUEUED
    current_stage: int = 0
    stage_payloads: dict[int, dict[str, Any]] = Field(default_factory=dict)
    stage_timings: dict[int, StageTiming] = Field(default_factory=dict)
    retry_count: int = 0
    revision_context: RevisionContext | None = None

    error_message: str | None = None
    error_stage: int | None = None
    error_kind: str | None = None

    created_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    locked_by: str | None = None
    lease_expires_at: datetime | None = None

    @property
    def is_revision(self) -> bool:
        return self.revision_context is not None and self.parent_id is not None


# === ARTIFACT ===


class Rejection(BaseModel):
    """Reviewer rejection reason."""

    category: str
    text: str = ""


class Artifact(BaseModel):
    """Delivered script, the long-lived entity reviewers see."""

    id: str
    owner_id: str
    source_key: str
    title: str = ""
    content: ScriptContent = Field(default_factory=ScriptContent)
    scores: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    status: ArtifactStatus = ArtifactStatus.PENDING
    revision_count: int = 0
    item_id: str | None = None
    rejection: Rejection | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ArtifactVersion(BaseModel):
    """Immutable snapshot appended each time an artifact is (re)written."""

    artifact_id: str
    version_number: int
    content: ScriptContent
    scores: ScoreBreakdown
    feedback_text: str | None = None
    targeted_element_ids: list[int] | None = None
    item_id: str | None = None
    is_current: bool = True
    created_at: datetime = Field(default_factory=utc_now)


# === OWNER SETTINGS ===


class RejectionPattern(BaseModel):
    """Learned rejection statistics for one reason category."""

    count: int = 0
    last_reason: str | None = None


class OwnerSettings(BaseModel):
    """Per-owner limits, counters and learned preferences."""

    owner_id: str
    daily_limit: int = 10
    items_processed_today: int = 0
    total_processed: int = 0
    total_passed: int = 0
    total_failed: int = 0
    total_approved: int = 0
    total_rejected: int = 0
    rejection_patterns: dict[str, RejectionPattern] = Field(default_factory=dict)
    avoided_topics: list[str] = Field(default_factory=list)
    learned_threshold: int | None = None

    @property
    def approval_rate(self) -> float | None:
        reviewed = self.total_approved + self.total_rejected
        if reviewed == 0:
            return None
        return self.total_approved / reviewed
