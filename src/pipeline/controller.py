# src/pipeline/controller.py — v1
"""Retry / progress controller.

Manual retry, operator reset, cooperative cancel, and a progress snapshot
derived from the stage timestamps already on the item (no extra stored
fields). Every rejection is raised before the item is mutated.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable, Literal

from pydantic import BaseModel, Field

from scriptconveyor.config.settings import ConfigurationError
from scriptconveyor.core.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFailedError,
    NotFoundError,
    RetryLimitExceededError,
)
from scriptconveyor.core.models import ItemStatus, PipelineItem, utc_now

if TYPE_CHECKING:
    from scriptconveyor.config.settings import Settings
    from scriptconveyor.pipeline.stage_plan import StagePlan
    from scriptconveyor.storage.base_artifact_store import BaseArtifactStore
    from scriptconveyor.storage.base_item_store import BaseItemStore

logger = logging.getLogger(__name__)

Dispatch = Callable[[str], Awaitable[None]]

MAX_PARTIAL_CREDIT = 0.95

StageStatus = Literal["completed", "running", "failed", "cancelled", "pending"]


class StageProgress(BaseModel):
    index: int
    name: str
    status: StageStatus
    duration_seconds: float = 0.0


class ProgressReport(BaseModel):
    """Snapshot returned to a polling client."""

    item_id: str
    status: ItemStatus
    current_stage: int
    total_stages: int
    progress_percent: float
    elapsed_seconds: float
    estimated_remaining_seconds: float
    retry_count: int = 0
    error_message: str | None = None
    error_stage: int | None = None
    error_kind: str | None = None
    artifact_id: str | None = None
    stages: list[StageProgress] = Field(default_factory=list)


class RetryProgressController:
    """Operations a client or operator runs against existing items."""

    def __init__(
        self,
        items: BaseItemStore,
        artifacts: BaseArtifactStore,
        plan: StagePlan,
        settings: Settings,
        dispatch: Dispatch,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if len(settings.stage_duration_estimates_s) != len(plan):
            raise ConfigurationError(
                f"STAGE_DURATION_ESTIMATES_S has {len(settings.stage_duration_estimates_s)} "
                f"entries, the stage plan has {len(plan)} stages"
            )
        self._items = items
        self._artifacts = artifacts
        self._plan = plan
        self._settings = settings
        self._dispatch = dispatch
        self._clock = clock

    # ------------------------------------------------------------------
    # Retry / reset / cancel
    # ------------------------------------------------------------------

    async def retry(self, item_id: str, owner_id: str) -> int:
        """Resume a failed item at its failed stage.

        Returns:
            The item's new retry_count.

        Raises:
            NotFoundError, ForbiddenError, NotFailedError,
            RetryLimitExceededError, ArtifactBusyError
        """
        item = await self._owned_item(item_id, owner_id)
        max_retries = self._settings.max_retries
        self._check_retryable(item, max_retries)

        if item.is_revision and item.artifact_id:
            await self._artifacts.acquire(item.artifact_id)

        if not await self._items.increment_retry(item_id, max_retries):
            # Lost a race with another retry or a reset.
            if item.is_revision and item.artifact_id:
                await self._artifacts.release(item.artifact_id)
            current = await self._items.get_by_id(item_id)
            if current is None:
                raise NotFoundError(f"Item {item_id} not found")
            self._check_retryable(current, max_retries)
            raise NotFailedError(f"Item {item_id} is no longer failed")

        logger.info(
            "Retry %d/%d of item %s from stage %d",
            item.retry_count + 1, max_retries, item_id, item.current_stage,
        )
        await self._dispatch(item_id)
        return item.retry_count + 1

    async def reset(self, item_id: str) -> None:
        """Operator reset of a stuck item: queued, stage kept, retry_count 0.

        Raises:
            NotFoundError: Unknown item.
            InvalidStateError: Item already completed.
            ArtifactBusyError: A revision item's artifact is held by another item.
        """
        item = await self._items.get_by_id(item_id)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found")
        if item.status == ItemStatus.COMPLETED:
            raise InvalidStateError(f"Item {item_id} is completed, nothing to reset")

        if (
            item.is_revision
            and item.artifact_id
            and item.status in (ItemStatus.FAILED, ItemStatus.CANCELLED)
        ):
            await self._artifacts.acquire(item.artifact_id)

        await self._items.reset(item_id)
        logger.warning(
            "Operator reset of item %s (was %s at stage %d)",
            item_id, item.status.value, item.current_stage,
        )
        await self._dispatch(item_id)

    async def cancel(self, item_id: str, owner_id: str) -> None:
        """Cancel a queued or processing item.

        A processing item stops at the next stage boundary; the orchestrator
        releases a revision's artifact gate when it observes the cancel.

        Raises:
            NotFoundError, ForbiddenError, InvalidStateError
        """
        item = await self._owned_item(item_id, owner_id)
        previous = await self._items.mark_cancelled(item_id)
        if previous is None:
            raise InvalidStateError(f"Item {item_id} is {item.status.value}, cannot cancel")

        if previous == ItemStatus.QUEUED and item.is_revision and item.artifact_id:
            await self._artifacts.release(item.artifact_id)
        logger.info("Cancelled item %s (was %s)", item_id, previous.value)

    async def list_orphaned(self) -> list[PipelineItem]:
        """Processing items no live worker holds a lease on."""
        return await self._items.find_orphaned(now=self._clock())

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def get_progress(self, item_id: str, owner_id: str | None = None) -> ProgressReport:
        if owner_id is None:
            item = await self._items.get_by_id(item_id)
            if item is None:
                raise NotFoundError(f"Item {item_id} not found")
        else:
            item = await self._owned_item(item_id, owner_id)
        return self.progress_of(item)

    def progress_of(self, item: PipelineItem) -> ProgressReport:
        now = self._clock()
        total = len(self._plan)
        current = min(item.current_stage, total)
        in_flight = self._in_flight_seconds(item, now)

        if item.status == ItemStatus.COMPLETED:
            percent = 100.0
        else:
            partial = 0.0
            if in_flight is not None:
                estimate = self._estimate(current)
                partial = MAX_PARTIAL_CREDIT if estimate <= 0 else min(
                    in_flight / estimate, MAX_PARTIAL_CREDIT
                )
            percent = round((current + partial) / total * 100, 1)

        if item.started_at is None:
            elapsed = 0.0
        else:
            end = item.completed_at if item.status.is_terminal and item.completed_at else now
            elapsed = max((end - item.started_at).total_seconds(), 0.0)

        if item.status.is_terminal:
            remaining = 0.0
        else:
            remaining = sum(self._estimate(i) for i in range(current, total))
            if in_flight is not None:
                remaining -= min(in_flight, self._estimate(current))
            remaining = max(remaining, 0.0)

        return ProgressReport(
            item_id=item.id,
            status=item.status,
            current_stage=item.current_stage,
            total_stages=total,
            progress_percent=percent,
            elapsed_seconds=round(elapsed, 1),
            estimated_remaining_seconds=round(remaining, 1),
            retry_count=item.retry_count,
            error_message=item.error_message,
            error_stage=item.error_stage,
            error_kind=item.error_kind,
            artifact_id=item.artifact_id,
            stages=[self._stage_progress(item, i, now) for i in range(total)],
        )

    def _stage_progress(self, item: PipelineItem, index: int, now: datetime) -> StageProgress:
        name = self._plan[index].name
        timing = item.stage_timings.get(index)
        status: StageStatus = "pending"
        duration = 0.0

        if index < item.current_stage or item.status == ItemStatus.COMPLETED:
            status = "completed"
            duration = timing.duration_s if timing else 0.0
        elif index == item.current_stage:
            if item.status == ItemStatus.FAILED:
                status = "failed"
            elif item.status == ItemStatus.CANCELLED:
                status = "cancelled"
            elif (
                item.status == ItemStatus.PROCESSING
                and timing is not None
                and timing.started_at is not None
                and timing.completed_at is None
            ):
                status = "running"
                duration = max((now - timing.started_at).total_seconds(), 0.0)

        return StageProgress(
            index=index, name=name, status=status, duration_seconds=round(duration, 1)
        )

    def _in_flight_seconds(self, item: PipelineItem, now: datetime) -> float | None:
        if item.status != ItemStatus.PROCESSING or item.current_stage >= len(self._plan):
            return None
        timing = item.stage_timings.get(item.current_stage)
        if timing is None or timing.started_at is None or timing.completed_at is not None:
            return None
        return max((now - timing.started_at).total_seconds(), 0.0)

    def _estimate(self, index: int) -> float:
        return self._settings.stage_duration_estimates_s[index]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _owned_item(self, item_id: str, owner_id: str) -> PipelineItem:
        item = await self._items.get_by_id(item_id)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found")
        if item.owner_id != owner_id:
            raise ForbiddenError(f"Item {item_id} belongs to another owner")
        return item

    @staticmethod
    def _check_retryable(item: PipelineItem, max_retries: int) -> None:
        if item.status != ItemStatus.FAILED:
            raise NotFailedError(f"Item {item.id} is {item.status.value}, not failed")
        if item.retry_count >= max_retries:
            raise RetryLimitExceededError(item.id, max_retries)
