# tests/unit/pipeline/test_controller.py — v1
"""Tests for pipeline/controller.py — retry, reset, cancel and progress."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from scriptconveyor.config.settings import ConfigurationError
from scriptconveyor.core.errors import (
    ArtifactBusyError,
    ForbiddenError,
    InvalidStateError,
    NotFailedError,
    NotFoundError,
    RetryLimitExceededError,
)
from scriptconveyor.core.models import ArtifactStatus, ItemStatus, PipelineItem, StageTiming
from scriptconveyor.pipeline.controller import RetryProgressController

GARBAGE = "I am not JSON"
T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _failed_at_architect(harness, fake_llm, source_ref):
    fake_llm.enqueue("architect", GARBAGE, GARBAGE)
    item = await harness.run_fresh(source_ref)
    assert item.status == ItemStatus.FAILED
    return item


class TestRetry:
    @pytest.mark.asyncio
    async def test_resumes_at_failed_stage(self, harness, fake_llm, source_ref):
        failed = await _failed_at_architect(harness, fake_llm, source_ref)
        assert failed.error_stage == 3

        result = await harness.service.retry_item(failed.id, "owner-1")
        assert result.retry_count == 1
        assert harness.dispatched == [failed.id]
        await harness.drain()

        item = await harness.items.get_by_id(failed.id)
        assert item.status == ItemStatus.COMPLETED
        assert item.retry_count == 1
        assert item.error_message is None
        assert fake_llm.count("scorer") == 1
        assert fake_llm.count("analyst") == 1
        assert fake_llm.count("architect") == 3

    @pytest.mark.asyncio
    async def test_only_failed_items(self, harness, source_ref):
        item = await harness.run_fresh(source_ref)
        with pytest.raises(NotFailedError):
            await harness.service.retry_item(item.id, "owner-1")
        assert harness.dispatched == []

    @pytest.mark.asyncio
    async def test_limit(self, harness, fake_llm, source_ref):
        fake_llm.set("architect", GARBAGE)
        item = await harness.run_fresh(source_ref)
        for _ in range(harness.settings.max_retries):
            await harness.service.retry_item(item.id, "owner-1")
            await harness.drain()
        with pytest.raises(RetryLimitExceededError):
            await harness.service.retry_item(item.id, "owner-1")

        item = await harness.items.get_by_id(item.id)
        assert item.status == ItemStatus.FAILED
        assert item.retry_count == harness.settings.max_retries

    @pytest.mark.asyncio
    async def test_other_owner(self, harness, fake_llm, source_ref):
        failed = await _failed_at_architect(harness, fake_llm, source_ref)
        with pytest.raises(ForbiddenError):
            await harness.service.retry_item(failed.id, "owner-2")

    @pytest.mark.asyncio
    async def test_unknown_item(self, harness):
        with pytest.raises(NotFoundError):
            await harness.service.retry_item("nope", "owner-1")

    @pytest.mark.asyncio
    async def test_revision_retry_reacquires_gate(self, harness, fake_llm, source_ref):
        parent = await harness.run_fresh(source_ref)
        fake_llm.enqueue("writer", {"note": "nothing"})
        revision = await harness.service.submit_revision(parent.artifact_id, "owner-1", "Redo")
        await harness.drain()
        assert (await harness.artifacts.get(parent.artifact_id)).status == ArtifactStatus.PENDING

        await harness.service.retry_item(revision.item_id, "owner-1")
        assert (await harness.artifacts.get(parent.artifact_id)).status == ArtifactStatus.REVISION
        await harness.drain()

        child = await harness.items.get_by_id(revision.item_id)
        assert child.status == ItemStatus.COMPLETED
        assert len(await harness.artifacts.list_versions(parent.artifact_id)) == 2

    @pytest.mark.asyncio
    async def test_revision_retry_blocked_by_busy_gate(self, harness, fake_llm, source_ref):
        parent = await harness.run_fresh(source_ref)
        fake_llm.enqueue("writer", {"note": "nothing"})
        revision = await harness.service.submit_revision(parent.artifact_id, "owner-1", "Redo")
        await harness.drain()
        await harness.artifacts.acquire(parent.artifact_id)

        with pytest.raises(ArtifactBusyError):
            await harness.service.retry_item(revision.item_id, "owner-1")
        child = await harness.items.get_by_id(revision.item_id)
        assert child.status == ItemStatus.FAILED
        assert child.retry_count == 0


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_exhausted_item(self, harness, fake_llm, source_ref):
        fake_llm.set("architect", GARBAGE)
        item = await harness.run_fresh(source_ref)
        for _ in range(harness.settings.max_retries):
            await harness.service.retry_item(item.id, "owner-1")
            await harness.drain()

        await harness.service.reset_item(item.id)
        reset = await harness.items.get_by_id(item.id)
        assert reset.status == ItemStatus.QUEUED
        assert reset.retry_count == 0
        assert reset.current_stage == 3
        assert reset.error_message is None

        fake_llm.set("architect", {"format_id": "explainer"})
        await harness.drain()
        done = await harness.items.get_by_id(item.id)
        assert done.status == ItemStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_completed_cannot_reset(self, harness, source_ref):
        item = await harness.run_fresh(source_ref)
        with pytest.raises(InvalidStateError):
            await harness.service.reset_item(item.id)

    @pytest.mark.asyncio
    async def test_unknown_item(self, harness):
        with pytest.raises(NotFoundError):
            await harness.service.reset_item("nope")


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_queued(self, harness, source_ref):
        result = await harness.service.trigger("owner-1", source_ref)
        await harness.service.cancel_item(result.item_id, "owner-1")
        item = await harness.items.get_by_id(result.item_id)
        assert item.status == ItemStatus.CANCELLED

        with pytest.raises(InvalidStateError):
            await harness.service.cancel_item(result.item_id, "owner-1")

    @pytest.mark.asyncio
    async def test_cancel_other_owner(self, harness, source_ref):
        result = await harness.service.trigger("owner-1", source_ref)
        with pytest.raises(ForbiddenError):
            await harness.service.cancel_item(result.item_id, "owner-2")

    @pytest.mark.asyncio
    async def test_cancel_queued_revision_releases_gate(self, harness, source_ref):
        parent = await harness.run_fresh(source_ref)
        revision = await harness.service.submit_revision(parent.artifact_id, "owner-1", "Redo")
        await harness.service.cancel_item(revision.item_id, "owner-1")

        artifact = await harness.artifacts.get(parent.artifact_id)
        assert artifact.status == ArtifactStatus.PENDING
        assert artifact.revision_count == 1


class TestProgress:
    @pytest.fixture
    def controller(self, harness):
        return RetryProgressController(
            harness.items,
            harness.artifacts,
            harness.plan,
            harness.settings,
            harness.dispatcher,
            clock=lambda: T0 + timedelta(seconds=25),
        )

    def test_estimates_must_cover_every_stage(self, harness):
        short = harness.settings.model_copy(update={"stage_duration_estimates_s": [5.0] * 7})
        with pytest.raises(ConfigurationError, match="7 entries"):
            RetryProgressController(
                harness.items, harness.artifacts, harness.plan, short, harness.dispatcher
            )

    def _item(self, source_ref, **kwargs) -> PipelineItem:
        return PipelineItem(id="item-1", owner_id="owner-1", source_ref=source_ref, **kwargs)

    def test_mid_stage(self, controller, source_ref):
        item = self._item(
            source_ref,
            status=ItemStatus.PROCESSING,
            current_stage=2,
            started_at=T0,
            stage_timings={
                0: StageTiming(started_at=T0, completed_at=T0 + timedelta(seconds=5)),
                1: StageTiming(
                    started_at=T0 + timedelta(seconds=5),
                    completed_at=T0 + timedelta(seconds=20),
                ),
                2: StageTiming(started_at=T0 + timedelta(seconds=20)),
            },
        )
        report = controller.progress_of(item)

        assert report.progress_percent == 28.1
        assert report.estimated_remaining_seconds == 181.0
        assert report.elapsed_seconds == 25.0
        assert [(s.status, s.duration_seconds) for s in report.stages[:4]] == [
            ("completed", 5.0),
            ("completed", 15.0),
            ("running", 5.0),
            ("pending", 0.0),
        ]

    def test_partial_credit_is_capped(self, controller, source_ref):
        item = self._item(
            source_ref,
            status=ItemStatus.PROCESSING,
            current_stage=0,
            started_at=T0,
            stage_timings={0: StageTiming(started_at=T0)},
        )
        report = controller.progress_of(item)
        assert report.progress_percent == round(0.95 / 8 * 100, 1)
        assert report.estimated_remaining_seconds == 201.0

    def test_queued(self, controller, source_ref):
        report = controller.progress_of(self._item(source_ref))
        assert report.progress_percent == 0.0
        assert report.elapsed_seconds == 0.0
        assert report.estimated_remaining_seconds == 206.0
        assert {s.status for s in report.stages} == {"pending"}

    def test_failed(self, controller, source_ref):
        item = self._item(
            source_ref,
            status=ItemStatus.FAILED,
            current_stage=3,
            started_at=T0,
            error_stage=3,
            error_message="bad json",
            error_kind="malformed_output",
        )
        report = controller.progress_of(item)
        assert report.progress_percent == 37.5
        assert report.estimated_remaining_seconds == 0.0
        assert report.stages[3].status == "failed"
        assert report.error_kind == "malformed_output"

    @pytest.mark.asyncio
    async def test_completed_item(self, harness, source_ref):
        item = await harness.run_fresh(source_ref)
        report = await harness.service.get_progress(item.id, "owner-1")
        assert report.progress_percent == 100.0
        assert report.estimated_remaining_seconds == 0.0
        assert report.artifact_id == item.artifact_id
        assert {s.status for s in report.stages} == {"completed"}

    @pytest.mark.asyncio
    async def test_other_owner(self, harness, source_ref):
        item = await harness.run_fresh(source_ref)
        with pytest.raises(ForbiddenError):
            await harness.service.get_progress(item.id, "owner-2")

    @pytest.mark.asyncio
    async def test_orphans(self, harness, source_ref):
        await harness.create_item("owner-1", source_ref)
        await harness.items.mark_processing("item-1")
        orphans = await harness.service.list_orphaned()
        assert [o.id for o in orphans] == ["item-1"]
