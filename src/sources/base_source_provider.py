# src/sources/base_source_provider.py — v1
"""Abstract source provider: resolve a SourceRef into normalized content.

Fetching (RSS, article extraction, reel transcription) happens outside the
conveyor; providers only hand back what was already collected.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from scriptconveyor.core.models import SourceData, SourceRef


class BaseSourceProvider(ABC):
    """Lookup of source content by reference."""

    @abstractmethod
    async def fetch(self, source_ref: SourceRef) -> SourceData:
        """Return the content for source_ref.

        Raises:
            NotFoundError: Unknown reference.
        """
