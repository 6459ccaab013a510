# src/api/facade.py — v1
"""Public API facade — the boundary a web layer or the CLI calls.

Usage:
    runtime = build_runtime(settings, source_provider=provider)
    runtime.start()
    result = await runtime.service.trigger(owner_id, source_ref)
    report = await runtime.service.get_progress(result.item_id)

Every limit and ownership check raises before an item is created or mutated,
so a rejected request never leaves an orphan item behind. Accepted requests
are handed to the dispatcher and return immediately; callers poll progress.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from scriptconveyor.api.models import (
    CancelResult,
    RetryResult,
    ReviewResult,
    RevisionResult,
    TriggerResult,
)
from scriptconveyor.config.settings import Settings
from scriptconveyor.core.errors import (
    DailyLimitExceededError,
    DuplicateSourceError,
    ForbiddenError,
    NotFoundError,
)
from scriptconveyor.core.models import (
    Artifact,
    ArtifactStatus,
    ItemStatus,
    PipelineItem,
    Rejection,
    SourceRef,
)
from scriptconveyor.credentials.static_store import StaticCredentialStore
from scriptconveyor.llm.client_factory import LLMFactory, create_llm_client
from scriptconveyor.pipeline.analyzer import ScriptAnalyzer
from scriptconveyor.pipeline.controller import Dispatch, ProgressReport, RetryProgressController
from scriptconveyor.pipeline.delivery import Delivery
from scriptconveyor.pipeline.events import ProgressEventBus
from scriptconveyor.pipeline.orchestrator import PipelineOrchestrator
from scriptconveyor.pipeline.revision import RevisionForker
from scriptconveyor.pipeline.stage_plan import StagePlan, build_default_plan
from scriptconveyor.pipeline.worker import PipelineWorkerPool
from scriptconveyor.scheduling.daily_reset import DailyCounterResetJob
from scriptconveyor.sources.memory_provider import InMemorySourceProvider
from scriptconveyor.storage.store_factory import Stores, create_stores

if TYPE_CHECKING:
    from scriptconveyor.credentials.base_credential_store import BaseCredentialStore
    from scriptconveyor.sources.base_source_provider import BaseSourceProvider
    from scriptconveyor.storage.base_artifact_store import BaseArtifactStore
    from scriptconveyor.storage.base_item_store import BaseItemStore
    from scriptconveyor.storage.base_owner_store import BaseOwnerStore

logger = logging.getLogger(__name__)


class ConveyorService:
    """Trigger, retry, cancel, progress, revision and review operations."""

    def __init__(
        self,
        items: BaseItemStore,
        artifacts: BaseArtifactStore,
        owners: BaseOwnerStore,
        controller: RetryProgressController,
        forker: RevisionForker,
        dispatch: Dispatch,
    ) -> None:
        self._items = items
        self._artifacts = artifacts
        self._owners = owners
        self._controller = controller
        self._forker = forker
        self._dispatch = dispatch

    async def trigger(self, owner_id: str, source_ref: SourceRef) -> TriggerResult:
        """Queue a fresh item for one source content unit.

        Raises:
            DuplicateSourceError: An artifact or a live item already exists
                for this owner and source.
            DailyLimitExceededError: Owner used today's quota.
        """
        if await self._artifacts.get_by_source(owner_id, source_ref.key) is not None:
            raise DuplicateSourceError(f"Source {source_ref.key} already has an artifact")
        for status in (ItemStatus.QUEUED, ItemStatus.PROCESSING):
            live = await self._items.list_by_status(status, owner_id=owner_id)
            if any(i.source_ref.key == source_ref.key and not i.is_revision for i in live):
                raise DuplicateSourceError(f"Source {source_ref.key} is already in progress")

        if not await self._owners.try_consume_daily(owner_id):
            raise DailyLimitExceededError(f"Owner {owner_id} reached the daily limit")

        item = await self._items.create(
            PipelineItem(id=uuid.uuid4().hex, owner_id=owner_id, source_ref=source_ref)
        )
        logger.info("Triggered item %s for %s (owner %s)", item.id, source_ref.key, owner_id)
        await self._dispatch(item.id)
        return TriggerResult(item_id=item.id, status=item.status)

    async def retry_item(self, item_id: str, owner_id: str) -> RetryResult:
        retry_count = await self._controller.retry(item_id, owner_id)
        return RetryResult(item_id=item_id, retry_count=retry_count)

    async def reset_item(self, item_id: str) -> None:
        """Operator escape hatch for stuck items."""
        await self._controller.reset(item_id)

    async def cancel_item(self, item_id: str, owner_id: str) -> CancelResult:
        await self._controller.cancel(item_id, owner_id)
        return CancelResult(item_id=item_id)

    async def get_progress(self, item_id: str, owner_id: str | None = None) -> ProgressReport:
        return await self._controller.get_progress(item_id, owner_id)

    async def list_orphaned(self) -> list[PipelineItem]:
        return await self._controller.list_orphaned()

    async def submit_revision(
        self,
        artifact_id: str,
        owner_id: str,
        feedback: str,
        targeted_ids: list[int] | None = None,
    ) -> RevisionResult:
        """Fork a revision item from reviewer feedback and queue it.

        Raises:
            NotFoundError, ForbiddenError, InvalidStateError,
            RevisionLimitExceededError, ArtifactBusyError
        """
        child = await self._forker.fork(artifact_id, owner_id, feedback, targeted_ids)
        await self._dispatch(child.id)
        assert child.revision_context is not None
        return RevisionResult(
            item_id=child.id,
            artifact_id=artifact_id,
            attempt=child.revision_context.attempt,
            resume_stage=child.current_stage,
        )

    async def approve_artifact(self, artifact_id: str, owner_id: str) -> ReviewResult:
        await self._owned_artifact(artifact_id, owner_id)
        artifact = await self._artifacts.set_review_status(artifact_id, ArtifactStatus.APPROVED)
        owner = await self._owners.record_review(owner_id, approved=True)
        return ReviewResult(
            artifact_id=artifact.id, status=artifact.status, approval_rate=owner.approval_rate
        )

    async def reject_artifact(
        self,
        artifact_id: str,
        owner_id: str,
        reason_category: str = "other",
        reason_text: str = "",
    ) -> ReviewResult:
        """Record a rejection and feed it into the owner's learned patterns."""
        await self._owned_artifact(artifact_id, owner_id)
        artifact = await self._artifacts.set_review_status(
            artifact_id,
            ArtifactStatus.REJECTED,
            rejection=Rejection(category=reason_category, text=reason_text),
        )
        owner = await self._owners.record_review(
            owner_id, approved=False, category=reason_category, reason=reason_text or None
        )
        return ReviewResult(
            artifact_id=artifact.id, status=artifact.status, approval_rate=owner.approval_rate
        )

    async def _owned_artifact(self, artifact_id: str, owner_id: str) -> Artifact:
        artifact = await self._artifacts.get(artifact_id)
        if artifact is None:
            raise NotFoundError(f"Artifact {artifact_id} not found")
        if artifact.owner_id != owner_id:
            raise ForbiddenError(f"Artifact {artifact_id} belongs to another owner")
        return artifact


@dataclass
class ConveyorRuntime:
    """A fully wired conveyor: stores, orchestrator, worker pool and service.

    start() launches the workers and the daily counter reset; shutdown()
    stops both and closes the stores.
    """

    settings: Settings
    stores: Stores
    plan: StagePlan
    events: ProgressEventBus
    orchestrator: PipelineOrchestrator
    pool: PipelineWorkerPool
    service: ConveyorService
    reset_job: DailyCounterResetJob
    _reset_stop: asyncio.Event | None = field(default=None, init=False, repr=False)
    _reset_task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    @property
    def running(self) -> bool:
        return self.pool.running and self._reset_task is not None

    def start(self) -> None:
        self.pool.start()
        if self._reset_task is None:
            self._reset_stop = asyncio.Event()
            self._reset_task = asyncio.create_task(
                self.reset_job.run_forever(self._reset_stop), name="daily-counter-reset"
            )

    async def shutdown(self) -> None:
        if self._reset_task is not None:
            assert self._reset_stop is not None
            self._reset_stop.set()
            await self._reset_task
            self._reset_task = None
        await self.pool.stop()
        self.stores.close()


def build_runtime(
    settings: Settings | None = None,
    source_provider: BaseSourceProvider | None = None,
    credentials: BaseCredentialStore | None = None,
    llm_factory: LLMFactory = create_llm_client,
) -> ConveyorRuntime:
    """Wire every component from settings.

    Args:
        settings: Global settings. Loaded from .env if None.
        source_provider: Where the scout stage fetches sources.
        credentials: Owner credentials; defaults to the configured
            ANTHROPIC_API_KEY for every owner.
        llm_factory: Model client factory (tests pass a fake).
    """
    settings = settings or Settings()
    source_provider = source_provider or InMemorySourceProvider()
    credentials = credentials or StaticCredentialStore(
        fallback={"anthropic": settings.anthropic_api_key}
    )

    stores = create_stores(settings)
    plan = build_default_plan(settings, source_provider, ScriptAnalyzer(settings))
    events = ProgressEventBus()
    orchestrator = PipelineOrchestrator(
        items=stores.items,
        artifacts=stores.artifacts,
        owners=stores.owners,
        credentials=credentials,
        plan=plan,
        delivery=Delivery(stores.artifacts, stores.owners),
        settings=settings,
        llm_factory=llm_factory,
        events=events,
    )
    pool = PipelineWorkerPool(
        orchestrator,
        stores.items,
        concurrency=settings.worker_concurrency,
        lease_ttl_s=settings.lease_ttl_s,
    )
    controller = RetryProgressController(
        stores.items, stores.artifacts, plan, settings, dispatch=pool.submit
    )
    service = ConveyorService(
        items=stores.items,
        artifacts=stores.artifacts,
        owners=stores.owners,
        controller=controller,
        forker=RevisionForker(stores.items, stores.artifacts, plan, settings),
        dispatch=pool.submit,
    )
    return ConveyorRuntime(
        settings=settings,
        stores=stores,
        plan=plan,
        events=events,
        orchestrator=orchestrator,
        pool=pool,
        service=service,
        reset_job=DailyCounterResetJob.from_settings(stores.owners, settings),
    )
