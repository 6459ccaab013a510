# src/pipeline/orchestrator.py — v1
"""Pipeline orchestrator: drives one item through the ordered stage plan.

One run of one item:
  1. Fetch the owner's model credential and create the client (once per run)
  2. Mark the item processing
  3. For each stage from current_stage: check for cancellation, build the
     input from stored payloads, execute, persist the payload, advance
  4. At current_stage == N: hand the gate output to Delivery, mark completed

Stage errors never escape the loop. They mark the item failed at the stage
that raised them, without advancing, so a retry resumes right there.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from scriptconveyor.core.errors import (
    CredentialMissingError,
    CredentialNotFoundError,
    NotFoundError,
    StageError,
    StageExecutionError,
    StageTimeoutError,
)
from scriptconveyor.core.models import ItemStatus, PipelineItem
from scriptconveyor.llm.client_factory import LLMFactory, create_llm_client
from scriptconveyor.logging.context import clear_context, set_item_context, set_stage_context
from scriptconveyor.pipeline.events import EventType, ProgressEvent, ProgressEventBus
from scriptconveyor.pipeline.plugin_kit.models import StageContext, StagePayloads, StageResult

if TYPE_CHECKING:
    from scriptconveyor.config.settings import Settings
    from scriptconveyor.credentials.base_credential_store import BaseCredentialStore
    from scriptconveyor.llm.base_client import BaseLLMClient
    from scriptconveyor.pipeline.delivery import Delivery
    from scriptconveyor.pipeline.plugin_kit.base_stage import BaseStage
    from scriptconveyor.pipeline.stage_plan import StagePlan
    from scriptconveyor.storage.base_artifact_store import BaseArtifactStore
    from scriptconveyor.storage.base_item_store import BaseItemStore
    from scriptconveyor.storage.base_owner_store import BaseOwnerStore

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "news": "news",
    "instagram": "instagram_reel",
    "custom": "custom_script",
}


class PipelineOrchestrator:
    """Advance items through the stage plan and deliver the result.

    Args:
        items: Item store (payloads, timings, status).
        artifacts: Artifact store (gate release for revision items).
        owners: Owner settings store.
        credentials: Credential store consulted once per run.
        plan: Ordered stage plan.
        delivery: Turns the gate output into an artifact write.
        settings: Application settings.
        llm_factory: Builds the model client from (provider, model, api_key).
        events: Optional progress event bus.
    """

    def __init__(
        self,
        items: BaseItemStore,
        artifacts: BaseArtifactStore,
        owners: BaseOwnerStore,
        credentials: BaseCredentialStore,
        plan: StagePlan,
        delivery: Delivery,
        settings: Settings,
        llm_factory: LLMFactory = create_llm_client,
        events: ProgressEventBus | None = None,
    ) -> None:
        self._items = items
        self._artifacts = artifacts
        self._owners = owners
        self._credentials = credentials
        self._plan = plan
        self._delivery = delivery
        self._settings = settings
        self._llm_factory = llm_factory
        self._events = events or ProgressEventBus()

    @property
    def events(self) -> ProgressEventBus:
        return self._events

    @property
    def plan(self) -> StagePlan:
        return self._plan

    async def run(self, item_id: str, worker_id: str | None = None) -> PipelineItem:
        """Run an item from its current stage to completion, failure or cancel.

        Returns:
            The item as stored after the run.

        Raises:
            NotFoundError: Unknown item.
        """
        item = await self._items.get_by_id(item_id)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found")
        if item.status not in (ItemStatus.QUEUED, ItemStatus.PROCESSING):
            logger.info("Item %s is %s, nothing to run", item_id, item.status.value)
            return item

        set_item_context(item.id, item.owner_id)
        try:
            await self._run(item, worker_id)
        finally:
            clear_context()

        final = await self._items.get_by_id(item_id)
        assert final is not None
        return final

    async def _run(self, item: PipelineItem, worker_id: str | None) -> None:
        start_time = time.monotonic()
        settings = self._settings

        try:
            llm = await self._create_llm(item.owner_id)
        except CredentialMissingError as exc:
            logger.error("Item %s: %s", item.id, exc)
            await self._fail(item, item.current_stage, exc)
            return

        await self._items.mark_processing(item.id)
        await self._emit("item_started", item, data={"resume_stage": item.current_stage})

        owner = await self._owners.get_or_create(item.owner_id)
        context = StageContext(
            item_id=item.id,
            owner_id=item.owner_id,
            source_ref=item.source_ref,
            settings=settings,
            owner=owner,
            llm=llm,
            revision=item.revision_context,
            content_type=CONTENT_TYPES.get(item.source_ref.type, "news"),
        )

        total = len(self._plan)
        while True:
            current = await self._items.get_by_id(item.id)
            if current is None:
                raise NotFoundError(f"Item {item.id} disappeared during processing")
            item = current

            if item.status == ItemStatus.CANCELLED:
                await self._on_cancelled(item)
                return

            if item.current_stage >= total:
                break

            index = item.current_stage
            stage = self._plan[index]
            set_stage_context(stage.name)

            await self._items.mark_stage_started(item.id, index)
            await self._emit("stage_started", item, index, stage.name)

            try:
                result = await self._execute_stage(stage, item, context)
            except StageError as exc:
                logger.error("Stage %d (%s) failed: %s", index, stage.name, exc)
                await self._emit(
                    "stage_failed", item, index, stage.name,
                    data={"error": str(exc), "error_kind": exc.error_kind},
                )
                await self._fail(item, index, exc)
                return

            await self._items.update_stage_payload(
                item.id, index, result.model_dump(mode="json")
            )
            await self._items.advance_stage(item.id, index)
            await self._emit(
                "stage_completed", item, index, stage.name,
                data={
                    "score": result.score,
                    "llm_calls": result.metadata.llm_calls,
                    "execution_time_ms": result.metadata.execution_time_ms,
                },
            )
            logger.info(
                "Stage %d/%d (%s) done in %dms",
                index + 1, total, stage.name, result.metadata.execution_time_ms,
            )

            if worker_id is not None:
                renewed = await self._items.renew_lease(item.id, worker_id, settings.lease_ttl_s)
                if not renewed:
                    logger.warning("Worker %s lost the lease on item %s", worker_id, item.id)

        set_stage_context(None)
        outcome = await self._delivery.deliver(item, item.stage_payloads[total - 1])
        await self._items.mark_completed(item.id, outcome.artifact_id)
        await self._emit(
            "item_completed", item,
            data={
                "decision": outcome.decision,
                "artifact_id": outcome.artifact_id,
                "version_number": outcome.version_number,
            },
        )
        logger.info(
            "Item %s completed (%s) in %.1fs",
            item.id, outcome.decision, time.monotonic() - start_time,
        )

    async def _create_llm(self, owner_id: str) -> BaseLLMClient:
        provider = self._settings.llm_provider
        try:
            api_key = await self._credentials.get_credential(owner_id, provider)
        except CredentialNotFoundError as exc:
            raise CredentialMissingError(owner_id, provider) from exc
        return self._llm_factory(provider, self._settings.llm_model, api_key)

    async def _execute_stage(
        self, stage: BaseStage, item: PipelineItem, context: StageContext
    ) -> StageResult:
        payloads = StagePayloads(item.stage_payloads, self._plan.names)
        try:
            inp = stage.build_input(payloads, context)
        except ValidationError as exc:
            raise StageExecutionError(
                f"Invalid stored input for stage '{stage.name}': {exc.error_count()} errors"
            ) from exc
        except KeyError as exc:
            raise StageExecutionError(
                f"Stored input for stage '{stage.name}' is missing {exc}"
            ) from exc

        attempts = 1 + (
            self._settings.stage_timeout_auto_retries if stage.auto_retry_on_timeout else 0
        )
        for attempt in range(1, attempts + 1):
            try:
                return await stage.execute(inp, context)
            except StageTimeoutError as exc:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "Stage '%s' timed out (%s), re-running (attempt %d/%d)",
                    stage.name, exc, attempt + 1, attempts,
                )
        raise StageExecutionError(f"Stage '{stage.name}' did not run")

    async def _fail(self, item: PipelineItem, index: int, exc: StageError) -> None:
        if not await self._items.mark_failed(item.id, index, str(exc), exc.error_kind):
            # Cancelled while the stage ran.
            await self._on_cancelled(item)
            return
        await self._release_gate(item)
        await self._emit(
            "item_failed", item, index,
            self._plan[index].name if index < len(self._plan) else None,
            data={"error": str(exc), "error_kind": exc.error_kind},
        )

    async def _on_cancelled(self, item: PipelineItem) -> None:
        logger.info("Item %s cancelled at stage %d", item.id, item.current_stage)
        await self._release_gate(item)
        await self._emit("item_cancelled", item, item.current_stage)

    async def _release_gate(self, item: PipelineItem) -> None:
        if item.is_revision and item.artifact_id:
            await self._artifacts.release(item.artifact_id)

    async def _emit(
        self,
        event_type: EventType,
        item: PipelineItem,
        stage_index: int | None = None,
        stage_name: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        await self._events.publish(
            ProgressEvent(
                type=event_type,
                item_id=item.id,
                owner_id=item.owner_id,
                stage_index=stage_index,
                stage_name=stage_name,
                data=data or {},
            )
        )
