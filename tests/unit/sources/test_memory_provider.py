# tests/unit/sources/test_memory_provider.py — v1
"""Tests for sources/memory_provider.py."""

from __future__ import annotations

import json

import pytest

from scriptconveyor.core.errors import NotFoundError
from scriptconveyor.core.models import SourceRef
from scriptconveyor.sources.memory_provider import InMemorySourceProvider


class TestInMemorySourceProvider:
    @pytest.mark.asyncio
    async def test_fetch_registered(self, sample_source, source_ref):
        provider = InMemorySourceProvider([sample_source])
        assert (await provider.fetch(source_ref)).title == sample_source.title

    @pytest.mark.asyncio
    async def test_fetch_unknown(self):
        with pytest.raises(NotFoundError):
            await InMemorySourceProvider().fetch(SourceRef(type="news", item_id="missing"))

    @pytest.mark.asyncio
    async def test_register_file(self, tmp_path):
        path = tmp_path / "reel.json"
        path.write_text(json.dumps({
            "type": "instagram", "item_id": "reel-7", "title": "Reel", "content": "Transcript",
        }), encoding="utf-8")
        provider = InMemorySourceProvider()
        ref = provider.register_file(path)
        assert ref.key == "instagram:reel-7"
        assert (await provider.fetch(ref)).content == "Transcript"
