# tests/unit/pipeline/stages/test_writer_stage.py — v1
"""Tests for pipeline/stages/writer.py — fresh drafts and targeted revisions."""

from __future__ import annotations

import pytest

from scriptconveyor.core.errors import StageExecutionError
from scriptconveyor.core.models import (
    RejectionPattern,
    RevisionContext,
    Scene,
    VersionSummary,
)
from scriptconveyor.pipeline.plugin_kit.models import StagePayloads
from scriptconveyor.pipeline.stages.writer import WriterStage, merge_targeted

NAMES = ["scout", "scorer", "analyst", "architect", "writer"]


@pytest.fixture
def payloads(sample_source):
    return StagePayloads(
        {
            0: {"output": sample_source.model_dump(mode="json")},
            2: {"output": {"main_topic": "EV charging", "key_facts": ["a", "b", "c"]}},
            3: {"output": {
                "format_name": "Hook & Story",
                "suggested_hooks": ["Five minutes."],
                "structure_template": {"hook": {"duration": 5}, "cta": {"duration": 5}},
                "total_duration": 10,
            }},
        },
        NAMES,
    )


def _prompt(fake_llm) -> str:
    _, messages, _ = fake_llm.calls[-1]
    return messages[0].content


class TestFreshDraft:
    @pytest.mark.asyncio
    async def test_writes_scenes(self, stage_context, fake_llm, payloads):
        stage = WriterStage()
        result = await stage.execute(stage.build_input(payloads, stage_context), stage_context)
        assert len(result.output["scenes"]) == 5
        assert result.output["estimated_duration_s"] == 65
        assert "revision_attempt" not in result.output
        assert "KEY FACTS" in _prompt(fake_llm)

    @pytest.mark.asyncio
    async def test_duration_fallback(self, stage_context, fake_llm, payloads):
        fake_llm.set("writer", {"scenes": [{"id": 1, "text": "Untimed"}], "estimated_duration": 42})
        stage = WriterStage()
        result = await stage.execute(stage.build_input(payloads, stage_context), stage_context)
        assert result.output["estimated_duration_s"] == 42.0

    @pytest.mark.asyncio
    async def test_no_scenes(self, stage_context, fake_llm, payloads):
        fake_llm.set("writer", {"note": "I could not write this"})
        stage = WriterStage()
        with pytest.raises(StageExecutionError, match="no usable scenes"):
            await stage.execute(stage.build_input(payloads, stage_context), stage_context)

    @pytest.mark.asyncio
    async def test_repeated_rejections_become_constraints(self, stage_context, fake_llm, payloads):
        stage_context.owner.rejection_patterns = {
            "tone": RejectionPattern(count=2, last_reason="too clickbaity"),
            "length": RejectionPattern(count=1, last_reason="too long"),
        }
        stage = WriterStage()
        inp = stage.build_input(payloads, stage_context)
        assert inp.avoid == ["tone: too clickbaity"]
        await stage.execute(inp, stage_context)
        assert "too clickbaity" in _prompt(fake_llm)
        assert "too long" not in _prompt(fake_llm)


class TestRevision:
    @pytest.fixture
    def revision(self, sample_script):
        return RevisionContext(
            feedback="Make the hook punchier",
            targeted_element_ids=[1],
            attempt=1,
            previous_versions=[VersionSummary(version_number=1, overall_score=86, verdict="strong")],
            current_scenes=sample_script.scenes,
        )

    @pytest.mark.asyncio
    async def test_only_targeted_scenes_change(self, stage_context, fake_llm, payloads, revision):
        fake_llm.set("writer", {"scenes": [
            {"id": 1, "label": "hook", "text": "Five minutes. Full battery."},
            {"id": 3, "label": "main", "text": "Untargeted rewrite that must be ignored."},
        ]})
        stage_context.revision = revision
        stage = WriterStage()
        result = await stage.execute(stage.build_input(payloads, stage_context), stage_context)

        scenes = result.output["scenes"]
        assert scenes[0]["text"] == "Five minutes. Full battery."
        assert scenes[0]["end"] == 5
        for before, after in zip(revision.current_scenes[1:], scenes[1:]):
            assert after["text"] == before.text
        assert result.output["changed_scene_ids"] == [1]
        assert result.output["revision_attempt"] == 1
        prompt = _prompt(fake_llm)
        assert "Make the hook punchier" in prompt
        assert "Rewrite ONLY scenes 1" in prompt

    @pytest.mark.asyncio
    async def test_whole_script_revision(self, stage_context, fake_llm, payloads, revision):
        stage_context.revision = revision.model_copy(update={"targeted_element_ids": []})
        stage = WriterStage()
        result = await stage.execute(stage.build_input(payloads, stage_context), stage_context)
        assert result.output["changed_scene_ids"] is None
        assert "Change only what the feedback asks for" in _prompt(fake_llm)


class TestMergeTargeted:
    def test_missing_rewrite_keeps_current(self):
        current = [Scene(id=1, text="a"), Scene(id=2, text="b")]
        merged = merge_targeted(current, [Scene(id=1, text="A")], targeted_ids=[1, 2])
        assert [s.text for s in merged] == ["A", "b"]
