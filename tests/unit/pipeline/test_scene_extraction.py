# tests/unit/pipeline/test_scene_extraction.py — v1
"""Tests for pipeline/scene_extraction.py — scene list normalization."""

from __future__ import annotations

from scriptconveyor.pipeline.scene_extraction import (
    extract_scenes,
    full_text_of,
    normalize_scenes,
)


class TestNormalizeScenes:
    def test_labels_and_ids(self):
        scenes = normalize_scenes([
            {"id": 1, "label": "HOOK", "text": "a", "start": 0, "end": "5"},
            {"sceneNumber": "2", "content": "b"},
            {"narration": "c", "visualNotes": "close-up"},
        ])
        assert [s.id for s in scenes] == [1, 2, 3]
        assert [s.label for s in scenes] == ["hook", "main", "cta"]
        assert scenes[0].end == 5.0
        assert scenes[2].visual_notes == "close-up"

    def test_skips_entries_without_text(self):
        scenes = normalize_scenes([{"id": 1, "text": "  "}, "junk", {"id": 2, "text": "ok"}])
        assert len(scenes) == 1
        assert scenes[0].text == "ok"

    def test_none_when_nothing_usable(self):
        assert normalize_scenes([{"id": 1}]) is None

    def test_bad_timing_defaults_to_zero(self):
        scenes = normalize_scenes([{"text": "x", "start": "soon"}])
        assert scenes[0].start == 0.0


class TestExtractScenes:
    def test_scenes_key(self):
        scenes = extract_scenes({"scenes": [{"id": 1, "text": "Hello"}]})
        assert scenes[0].text == "Hello"

    def test_nested_script(self):
        scenes = extract_scenes({"script": {"scenes": [{"id": 1, "text": "Nested"}]}})
        assert scenes[0].text == "Nested"

    def test_improved_scenes(self):
        scenes = extract_scenes({"improvedScenes": [{"id": 4, "text": "Better"}]})
        assert scenes[0].id == 4

    def test_any_list_of_scene_dicts(self):
        scenes = extract_scenes({"segments": [{"text": "One"}, {"text": "Two"}]})
        assert [s.text for s in scenes] == ["One", "Two"]

    def test_paragraph_fallback(self):
        scenes = extract_scenes({"full_text": "Hook line.\n\nMiddle.\n\nComment below!"})
        assert [s.label for s in scenes] == ["hook", "main", "cta"]

    def test_nothing(self):
        assert extract_scenes({"unrelated": 1}) == []


class TestFullText:
    def test_prefers_known_keys(self):
        assert full_text_of({"fullScript": "  text  "}) == "text"
        assert full_text_of({"other": "x"}) == ""
