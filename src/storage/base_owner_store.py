# src/storage/base_owner_store.py — v1
"""Abstract owner settings store: daily limits, counters, learned preferences."""

from __future__ import annotations

from abc import ABC, abstractmethod

from scriptconveyor.core.models import OwnerSettings


class BaseOwnerStore(ABC):
    """Per-owner counters and reviewer-learning state."""

    @abstractmethod
    async def get_or_create(self, owner_id: str) -> OwnerSettings:
        """Load settings, creating defaults on first use."""

    @abstractmethod
    async def save(self, settings: OwnerSettings) -> None:
        """Overwrite limits and preferences (counters included)."""

    @abstractmethod
    async def try_consume_daily(self, owner_id: str) -> bool:
        """Count one item against today's limit; False if the limit is reached."""

    @abstractmethod
    async def reset_daily_counts(self) -> int:
        """Zero every owner's daily counter. Returns the number of owners reset."""

    @abstractmethod
    async def record_outcome(self, owner_id: str, passed: bool) -> None:
        """Count one finished item as passed (delivered) or failed (gate FAIL)."""

    @abstractmethod
    async def record_review(
        self,
        owner_id: str,
        approved: bool,
        category: str | None = None,
        reason: str | None = None,
    ) -> OwnerSettings:
        """Count a reviewer decision; rejections update the rejection patterns."""
