# src/sources/memory_provider.py — v1
"""In-memory source provider, also loadable from JSON files."""

from __future__ import annotations

import json
from pathlib import Path

from scriptconveyor.core.errors import NotFoundError
from scriptconveyor.core.models import SourceData, SourceRef
from scriptconveyor.sources.base_source_provider import BaseSourceProvider


class InMemorySourceProvider(BaseSourceProvider):
    """Sources registered up front, keyed by SourceRef.key."""

    def __init__(self, sources: list[SourceData] | None = None) -> None:
        self._sources: dict[str, SourceData] = {}
        for source in sources or []:
            self.register(source)

    def register(self, source: SourceData) -> SourceRef:
        ref = SourceRef(type=source.type, item_id=source.item_id)
        self._sources[ref.key] = source
        return ref

    def register_file(self, path: Path | str) -> SourceRef:
        """Register a source stored as one JSON object (SourceData fields)."""
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        return self.register(SourceData(**raw))

    async def fetch(self, source_ref: SourceRef) -> SourceData:
        source = self._sources.get(source_ref.key)
        if source is None:
            raise NotFoundError(f"Source {source_ref.key} not found")
        return source
