# tests/unit/pipeline/test_revision.py — v1
"""Tests for pipeline/revision.py — forking and delivering revisions."""

from __future__ import annotations

import pytest

from scriptconveyor.core.errors import (
    ArtifactBusyError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    RevisionLimitExceededError,
)
from scriptconveyor.core.models import Artifact, ArtifactStatus, ItemStatus

LOW = {"score": 40, "breakdown": {}, "issues": [], "summary": "weak"}
NEW_HOOK = "Five minutes. Full battery. Zero cobalt."


async def _delivered(harness, source_ref):
    item = await harness.run_fresh(source_ref)
    assert item.artifact_id is not None
    return item


async def _item_ids(harness) -> set[str]:
    ids: set[str] = set()
    for status in ItemStatus:
        ids.update(i.id for i in await harness.items.list_by_status(status))
    return ids


class TestTargetedRevision:
    @pytest.mark.asyncio
    async def test_rewrites_only_targeted_scene(self, harness, fake_llm, source_ref):
        parent = await _delivered(harness, source_ref)
        artifact_id = parent.artifact_id
        v1 = await harness.artifacts.get_current_version(artifact_id)

        fake_llm.set("writer", {"scenes": [{"id": 1, "label": "hook", "text": NEW_HOOK}]})
        result = await harness.service.submit_revision(
            artifact_id, "owner-1", "Punchier hook", [1]
        )
        assert result.resume_stage == 4
        assert result.attempt == 1
        assert (await harness.artifacts.get(artifact_id)).status == ArtifactStatus.REVISION

        await harness.drain()
        child = await harness.items.get_by_id(result.item_id)
        assert child.status == ItemStatus.COMPLETED
        assert child.parent_id == parent.id
        assert fake_llm.count("scorer") == 1
        assert fake_llm.count("analyst") == 1

        versions = await harness.artifacts.list_versions(artifact_id)
        assert [(v.version_number, v.is_current) for v in versions] == [(1, False), (2, True)]
        v2 = versions[1]
        assert v2.feedback_text == "Punchier hook"
        assert v2.targeted_element_ids == [1]
        assert v2.content.scenes[0].text == NEW_HOOK
        assert v2.content.scenes[1:] == v1.content.scenes[1:]

        artifact = await harness.artifacts.get(artifact_id)
        assert artifact.status == ArtifactStatus.PENDING
        assert artifact.revision_count == 1
        assert artifact.content == v2.content

    @pytest.mark.asyncio
    async def test_child_reuses_upstream_payloads(self, harness, source_ref):
        parent = await _delivered(harness, source_ref)
        result = await harness.service.submit_revision(parent.artifact_id, "owner-1", "Shorter")
        child = await harness.items.get_by_id(result.item_id)

        assert child.status == ItemStatus.QUEUED
        assert child.current_stage == 4
        assert sorted(child.stage_payloads) == [0, 1, 2, 3]
        for index in range(4):
            assert child.stage_payloads[index] == parent.stage_payloads[index]
        assert child.revision_context.previous_versions[0].version_number == 1
        assert len(child.revision_context.current_scenes) == 5
        assert harness.dispatched == [result.item_id]

    @pytest.mark.asyncio
    async def test_rerun_after_crash_keeps_one_version(self, harness, monkeypatch, source_ref):
        parent = await _delivered(harness, source_ref)
        result = await harness.service.submit_revision(parent.artifact_id, "owner-1", "Shorter")

        mark_completed = harness.items.mark_completed
        crashes = []

        async def crash_once(item_id, artifact_id=None):
            if not crashes:
                crashes.append(item_id)
                raise RuntimeError("process died")
            await mark_completed(item_id, artifact_id)

        monkeypatch.setattr(harness.items, "mark_completed", crash_once)
        with pytest.raises(RuntimeError):
            await harness.drain()
        stuck = await harness.items.get_by_id(result.item_id)
        assert stuck.status == ItemStatus.PROCESSING

        await harness.controller.reset(result.item_id)
        await harness.drain()

        child = await harness.items.get_by_id(result.item_id)
        assert child.status == ItemStatus.COMPLETED
        versions = await harness.artifacts.list_versions(parent.artifact_id)
        assert [(v.version_number, v.is_current) for v in versions] == [(1, False), (2, True)]
        assert versions[1].item_id == result.item_id

    @pytest.mark.asyncio
    async def test_revision_does_not_use_daily_quota(self, harness, source_ref):
        parent = await _delivered(harness, source_ref)
        await harness.service.submit_revision(parent.artifact_id, "owner-1", "Shorter")
        owner = await harness.owners.get_or_create("owner-1")
        assert owner.items_processed_today == 1


class TestRevisionGate:
    @pytest.mark.asyncio
    async def test_busy_while_in_flight(self, harness, source_ref):
        parent = await _delivered(harness, source_ref)
        await harness.service.submit_revision(parent.artifact_id, "owner-1", "Shorter")
        with pytest.raises(ArtifactBusyError):
            await harness.service.submit_revision(parent.artifact_id, "owner-1", "Longer")
        assert (await harness.artifacts.get(parent.artifact_id)).revision_count == 1

    @pytest.mark.asyncio
    async def test_empty_feedback(self, harness, source_ref):
        parent = await _delivered(harness, source_ref)
        with pytest.raises(InvalidStateError):
            await harness.service.submit_revision(parent.artifact_id, "owner-1", "   ")
        artifact = await harness.artifacts.get(parent.artifact_id)
        assert artifact.revision_count == 0
        assert artifact.status == ArtifactStatus.PENDING

    @pytest.mark.asyncio
    async def test_other_owner(self, harness, source_ref):
        parent = await _delivered(harness, source_ref)
        with pytest.raises(ForbiddenError):
            await harness.service.submit_revision(parent.artifact_id, "owner-2", "Shorter")

    @pytest.mark.asyncio
    async def test_unknown_artifact(self, harness):
        with pytest.raises(NotFoundError):
            await harness.service.submit_revision("nope", "owner-1", "Shorter")

    @pytest.mark.asyncio
    async def test_limit(self, harness, source_ref):
        parent = await _delivered(harness, source_ref)
        for n in range(harness.settings.max_revisions):
            await harness.service.submit_revision(parent.artifact_id, "owner-1", f"Round {n}")
            await harness.drain()
        before = await harness.artifacts.get(parent.artifact_id)
        items_before = await _item_ids(harness)

        with pytest.raises(RevisionLimitExceededError):
            await harness.service.submit_revision(parent.artifact_id, "owner-1", "Once more")

        versions = await harness.artifacts.list_versions(parent.artifact_id)
        assert len(versions) == harness.settings.max_revisions + 1
        after = await harness.artifacts.get(parent.artifact_id)
        assert after.revision_count == before.revision_count == harness.settings.max_revisions
        assert after.status == ArtifactStatus.PENDING
        assert await _item_ids(harness) == items_before
        assert harness.dispatched == []

    @pytest.mark.asyncio
    async def test_claim_undone_when_fork_fails(self, harness, sample_script, source_ref):
        await harness.artifacts.persist_artifact(
            Artifact(
                id="orphan-artifact",
                owner_id="owner-1",
                source_key=source_ref.key,
                content=sample_script,
                item_id="deleted-item",
            )
        )
        with pytest.raises(NotFoundError):
            await harness.forker.fork("orphan-artifact", "owner-1", "Shorter")
        artifact = await harness.artifacts.get("orphan-artifact")
        assert artifact.revision_count == 0
        assert artifact.status == ArtifactStatus.PENDING
        assert harness.dispatched == []

    @pytest.mark.asyncio
    async def test_failed_gate_consumes_revision(self, harness, fake_llm, source_ref):
        parent = await _delivered(harness, source_ref)
        for route in ("hook", "structure", "emotional", "cta"):
            fake_llm.set(route, LOW)
        result = await harness.service.submit_revision(parent.artifact_id, "owner-1", "Worse")
        await harness.drain()

        child = await harness.items.get_by_id(result.item_id)
        assert child.stage_payloads[7]["output"]["decision"] == "FAIL"
        artifact = await harness.artifacts.get(parent.artifact_id)
        assert artifact.status == ArtifactStatus.PENDING
        assert artifact.revision_count == 1
        assert len(await harness.artifacts.list_versions(parent.artifact_id)) == 1

    @pytest.mark.asyncio
    async def test_stage_failure_releases_gate(self, harness, fake_llm, source_ref):
        parent = await _delivered(harness, source_ref)
        fake_llm.set("writer", {"note": "nothing"})
        result = await harness.service.submit_revision(parent.artifact_id, "owner-1", "Redo")
        await harness.drain()

        child = await harness.items.get_by_id(result.item_id)
        assert child.status == ItemStatus.FAILED
        assert child.error_stage == 4
        artifact = await harness.artifacts.get(parent.artifact_id)
        assert artifact.status == ArtifactStatus.PENDING
