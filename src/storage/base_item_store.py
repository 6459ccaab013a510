# src/storage/base_item_store.py — v1
"""Abstract pipeline item store interface.

All mutations are single-row and last-writer-wins, except fork_from which
creates the child and copies the parent's stage records in one transaction.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from scriptconveyor.core.models import ItemStatus, PipelineItem, RevisionContext


class BaseItemStore(ABC):
    """Durable storage for PipelineItems and their per-stage payloads."""

    @abstractmethod
    async def create(self, item: PipelineItem) -> PipelineItem:
        """Insert a new item (payloads and timings included)."""

    @abstractmethod
    async def get_by_id(self, item_id: str) -> PipelineItem | None:
        """Load an item with its payloads and timings."""

    @abstractmethod
    async def update_stage_payload(
        self, item_id: str, stage_index: int, payload: dict[str, Any]
    ) -> None:
        """Write the payload of one stage.

        Raises:
            PayloadImmutableError: stage_index is below the item's current stage.
            NotFoundError: Unknown item.
        """

    @abstractmethod
    async def mark_stage_started(self, item_id: str, stage_index: int) -> None:
        """Record the start time of a stage execution."""

    @abstractmethod
    async def advance_stage(self, item_id: str, stage_index: int) -> None:
        """Close the stage's timing and move current_stage past it."""

    @abstractmethod
    async def mark_processing(self, item_id: str) -> None:
        """Queued/processing → processing (keeps the first started_at)."""

    @abstractmethod
    async def mark_failed(
        self, item_id: str, stage_index: int, message: str, error_kind: str
    ) -> bool:
        """Set status failed with the failing stage and error, stage unchanged.

        Only a queued or processing item fails; returns False otherwise, so a
        cancelled item stays cancelled.
        """

    @abstractmethod
    async def mark_completed(self, item_id: str, artifact_id: str | None = None) -> None:
        """Set status completed (and the delivered artifact, if any)."""

    @abstractmethod
    async def mark_cancelled(self, item_id: str) -> ItemStatus | None:
        """Cancel a queued or processing item.

        Returns:
            The status the item had before cancelling, or None if it was not
            cancellable.
        """

    @abstractmethod
    async def increment_retry(self, item_id: str, max_retries: int) -> bool:
        """Failed → processing, retry_count += 1, error cleared.

        Conditional on status failed and retry_count < max_retries.
        """

    @abstractmethod
    async def reset(self, item_id: str) -> None:
        """Operator reset: status queued, retry_count 0, lease and error cleared."""

    @abstractmethod
    async def fork_from(
        self,
        parent_id: str,
        resume_stage: int,
        revision_context: RevisionContext,
        artifact_id: str,
        new_id: str | None = None,
    ) -> PipelineItem:
        """Create a child item resuming at resume_stage.

        Payloads below resume_stage are a point-in-time copy of the parent's.
        """

    @abstractmethod
    async def list_by_status(
        self, status: ItemStatus, owner_id: str | None = None
    ) -> list[PipelineItem]:
        """Items in a given status, oldest first."""

    # --- Leases ---

    @abstractmethod
    async def acquire_lease(self, item_id: str, worker_id: str, ttl_s: float) -> bool:
        """Claim the item for a worker if unlocked or the lease expired."""

    @abstractmethod
    async def renew_lease(self, item_id: str, worker_id: str, ttl_s: float) -> bool:
        """Extend the lease held by worker_id."""

    @abstractmethod
    async def release_lease(self, item_id: str, worker_id: str) -> None:
        """Drop the lease held by worker_id."""

    @abstractmethod
    async def find_orphaned(self, now: datetime | None = None) -> list[PipelineItem]:
        """Processing items whose lease is missing or expired."""
