# src/scheduling/daily_reset.py — v1
"""Daily reset of per-owner processing counters.

Runs at a fixed wall-clock time in one configured timezone (UTC by default),
never host-local time, so every deployment resets at the same instant.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time, timedelta, timezone
from typing import TYPE_CHECKING, Callable
from zoneinfo import ZoneInfo

from scriptconveyor.core.models import utc_now

if TYPE_CHECKING:
    from scriptconveyor.config.settings import Settings
    from scriptconveyor.storage.base_owner_store import BaseOwnerStore

logger = logging.getLogger(__name__)


class DailyCounterResetJob:
    """Reset items_processed_today for every owner once a day."""

    def __init__(
        self,
        owners: BaseOwnerStore,
        hour: int = 0,
        minute: int = 0,
        tz_name: str = "UTC",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._owners = owners
        self._at = time(hour=hour, minute=minute)
        self._tz = ZoneInfo(tz_name)
        self._clock = clock

    @classmethod
    def from_settings(cls, owners: BaseOwnerStore, settings: Settings) -> DailyCounterResetJob:
        return cls(
            owners,
            hour=settings.daily_reset_hour,
            minute=settings.daily_reset_minute,
            tz_name=settings.scheduler_timezone,
        )

    def next_run_at(self, now: datetime | None = None) -> datetime:
        """Next reset instant strictly after now, as aware UTC."""
        now = now or self._clock()
        local_now = now.astimezone(self._tz)
        target = datetime.combine(local_now.date(), self._at, tzinfo=self._tz)
        if target <= local_now:
            target = datetime.combine(
                local_now.date() + timedelta(days=1), self._at, tzinfo=self._tz
            )
        return target.astimezone(timezone.utc)

    def seconds_until_next_run(self, now: datetime | None = None) -> float:
        now = now or self._clock()
        return (self.next_run_at(now) - now.astimezone(timezone.utc)).total_seconds()

    async def run_once(self) -> int:
        count = await self._owners.reset_daily_counts()
        logger.info("Daily counters reset for %d owners", count)
        return count

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Sleep until each reset time and run it, until stop_event is set."""
        while not stop_event.is_set():
            delay = self.seconds_until_next_run()
            logger.debug("Next daily reset in %.0fs", delay)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                await self.run_once()
