# src/pipeline/scene_extraction.py — v1
"""Normalize model output into a list of Scenes.

Models return scenes under different shapes depending on the prompt and the
model's mood. Each strategy inspects the parsed JSON and returns
``list[Scene] | None``; strategies run in order and the first hit wins.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable

from scriptconveyor.core.models import Scene

logger = logging.getLogger(__name__)

SceneStrategy = Callable[[dict[str, Any]], "list[Scene] | None"]

_LABELS = ("hook", "context", "main", "twist", "cta")
_TEXT_KEYS = ("text", "content", "narration", "voiceover")
_FULL_TEXT_KEYS = ("full_text", "fullScript", "full_script", "script")


def _label_for(raw: Any, position: int, total: int) -> str:
    if isinstance(raw, str) and raw.lower() in _LABELS:
        return raw.lower()
    if position == 0:
        return "hook"
    if total > 1 and position == total - 1:
        return "cta"
    return "main"


def _scene_text(raw: dict[str, Any]) -> str:
    for key in _TEXT_KEYS:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def normalize_scenes(raw_scenes: list[Any]) -> list[Scene] | None:
    """Turn a list of scene-like dicts into Scenes (None if none has text)."""
    candidates = [r for r in raw_scenes if isinstance(r, dict) and _scene_text(r)]
    if not candidates:
        return None
    scenes: list[Scene] = []
    for i, raw in enumerate(candidates):
        raw_id = raw.get("id", raw.get("sceneNumber"))
        scene_id = int(raw_id) if isinstance(raw_id, (int, float)) or str(raw_id).isdigit() else i + 1
        notes = raw.get("visual_notes", raw.get("visualNotes"))
        scenes.append(
            Scene(
                id=scene_id,
                label=_label_for(raw.get("label"), i, len(candidates)),
                text=_scene_text(raw),
                start=_as_float(raw.get("start")),
                end=_as_float(raw.get("end")),
                visual_notes=notes if isinstance(notes, str) else None,
            )
        )
    return scenes


def _from_scenes_key(data: dict[str, Any]) -> list[Scene] | None:
    value = data.get("scenes")
    return normalize_scenes(value) if isinstance(value, list) else None


def _from_nested_script(data: dict[str, Any]) -> list[Scene] | None:
    script = data.get("script")
    if isinstance(script, dict) and isinstance(script.get("scenes"), list):
        return normalize_scenes(script["scenes"])
    return None


def _from_improved_scenes(data: dict[str, Any]) -> list[Scene] | None:
    for key in ("improvedScenes", "improved_scenes"):
        value = data.get(key)
        if isinstance(value, list):
            return normalize_scenes(value)
    return None


def _from_first_scene_list(data: dict[str, Any]) -> list[Scene] | None:
    for value in data.values():
        if isinstance(value, list):
            scenes = normalize_scenes(value)
            if scenes:
                return scenes
    return None


def _from_paragraphs(data: dict[str, Any]) -> list[Scene] | None:
    text = full_text_of(data)
    if not text:
        return None
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", text) if p.strip()]
    if not paragraphs:
        return None
    return [
        Scene(id=i + 1, label=_label_for(None, i, len(paragraphs)), text=p)
        for i, p in enumerate(paragraphs)
    ]


STRATEGIES: list[tuple[str, SceneStrategy]] = [
    ("scenes", _from_scenes_key),
    ("script.scenes", _from_nested_script),
    ("improvedScenes", _from_improved_scenes),
    ("first_scene_list", _from_first_scene_list),
    ("paragraphs", _from_paragraphs),
]


def full_text_of(data: dict[str, Any]) -> str:
    """Rendered full script text, if the model returned one."""
    for key in _FULL_TEXT_KEYS:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def extract_scenes(
    data: dict[str, Any],
    strategies: list[tuple[str, SceneStrategy]] | None = None,
) -> list[Scene]:
    """Run strategies in order; empty list if none matches."""
    for name, strategy in strategies or STRATEGIES:
        scenes = strategy(data)
        if scenes:
            logger.debug("Scenes extracted via '%s' (%d scenes)", name, len(scenes))
            return scenes
    return []
