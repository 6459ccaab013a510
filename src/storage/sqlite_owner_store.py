# src/storage/sqlite_owner_store.py — v1
"""SQLite-backed owner settings store.

Uses stdlib sqlite3. Counter updates are single conditional UPDATEs; the
rejection pattern map is read-modified-written inside one transaction.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Callable

from scriptconveyor.core.models import OwnerSettings, RejectionPattern, utc_now
from scriptconveyor.storage.base_owner_store import BaseOwnerStore
from scriptconveyor.storage.sqlite_db import connect, dump_json, load_json, to_iso

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS owners (
    owner_id TEXT PRIMARY KEY,
    daily_limit INTEGER NOT NULL,
    items_processed_today INTEGER NOT NULL DEFAULT 0,
    total_processed INTEGER NOT NULL DEFAULT 0,
    total_passed INTEGER NOT NULL DEFAULT 0,
    total_failed INTEGER NOT NULL DEFAULT 0,
    total_approved INTEGER NOT NULL DEFAULT 0,
    total_rejected INTEGER NOT NULL DEFAULT 0,
    rejection_patterns TEXT,
    avoided_topics TEXT,
    learned_threshold INTEGER,
    updated_at TEXT NOT NULL
);
"""


class SqliteOwnerStore(BaseOwnerStore):
    """Owner settings in a sqlite database."""

    def __init__(
        self,
        db_path: Path | str,
        default_daily_limit: int = 10,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._conn = connect(db_path, _SCHEMA)
        self._default_daily_limit = default_daily_limit
        self._clock = clock

    async def get_or_create(self, owner_id: str) -> OwnerSettings:
        with self._conn:
            self._ensure(owner_id)
            row = self._conn.execute(
                "SELECT * FROM owners WHERE owner_id = ?", (owner_id,)
            ).fetchone()
        return self._load(row)

    async def save(self, settings: OwnerSettings) -> None:
        with self._conn:
            self._conn.execute(
                """INSERT OR REPLACE INTO owners
                   (owner_id, daily_limit, items_processed_today, total_processed,
                    total_passed, total_failed, total_approved, total_rejected,
                    rejection_patterns, avoided_topics, learned_threshold, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    settings.owner_id,
                    settings.daily_limit,
                    settings.items_processed_today,
                    settings.total_processed,
                    settings.total_passed,
                    settings.total_failed,
                    settings.total_approved,
                    settings.total_rejected,
                    dump_json({k: v.model_dump() for k, v in settings.rejection_patterns.items()}),
                    dump_json(settings.avoided_topics),
                    settings.learned_threshold,
                    to_iso(self._clock()),
                ),
            )

    async def try_consume_daily(self, owner_id: str) -> bool:
        with self._conn:
            self._ensure(owner_id)
            cursor = self._conn.execute(
                """UPDATE owners
                   SET items_processed_today = items_processed_today + 1, updated_at = ?
                   WHERE owner_id = ? AND items_processed_today < daily_limit""",
                (to_iso(self._clock()), owner_id),
            )
        return cursor.rowcount == 1

    async def reset_daily_counts(self) -> int:
        with self._conn:
            cursor = self._conn.execute(
                """UPDATE owners SET items_processed_today = 0, updated_at = ?
                   WHERE items_processed_today != 0""",
                (to_iso(self._clock()),),
            )
        logger.info("Reset daily counters for %d owner(s)", cursor.rowcount)
        return cursor.rowcount

    async def record_outcome(self, owner_id: str, passed: bool) -> None:
        column = "total_passed" if passed else "total_failed"
        with self._conn:
            self._ensure(owner_id)
            self._conn.execute(
                f"""UPDATE owners
                    SET total_processed = total_processed + 1, {column} = {column} + 1,
                        updated_at = ?
                    WHERE owner_id = ?""",  # noqa: S608
                (to_iso(self._clock()), owner_id),
            )

    async def record_review(
        self,
        owner_id: str,
        approved: bool,
        category: str | None = None,
        reason: str | None = None,
    ) -> OwnerSettings:
        with self._conn:
            self._ensure(owner_id)
            row = self._conn.execute(
                "SELECT * FROM owners WHERE owner_id = ?", (owner_id,)
            ).fetchone()
            settings = self._load(row)
            if approved:
                settings.total_approved += 1
            else:
                settings.total_rejected += 1
                key = category or "other"
                pattern = settings.rejection_patterns.get(key, RejectionPattern())
                pattern.count += 1
                pattern.last_reason = reason or pattern.last_reason
                settings.rejection_patterns[key] = pattern
            self._conn.execute(
                """UPDATE owners
                   SET total_approved = ?, total_rejected = ?, rejection_patterns = ?,
                       updated_at = ?
                   WHERE owner_id = ?""",
                (
                    settings.total_approved,
                    settings.total_rejected,
                    dump_json({k: v.model_dump() for k, v in settings.rejection_patterns.items()}),
                    to_iso(self._clock()),
                    owner_id,
                ),
            )
        return settings

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def _ensure(self, owner_id: str) -> None:
        self._conn.execute(
            """INSERT OR IGNORE INTO owners (owner_id, daily_limit, updated_at)
               VALUES (?, ?, ?)""",
            (owner_id, self._default_daily_limit, to_iso(self._clock())),
        )

    @staticmethod
    def _load(row: sqlite3.Row) -> OwnerSettings:
        patterns = load_json(row["rejection_patterns"], {})
        return OwnerSettings(
            owner_id=row["owner_id"],
            daily_limit=row["daily_limit"],
            items_processed_today=row["items_processed_today"],
            total_processed=row["total_processed"],
            total_passed=row["total_passed"],
            total_failed=row["total_failed"],
            total_approved=row["total_approved"],
            total_rejected=row["total_rejected"],
            rejection_patterns={k: RejectionPattern(**v) for k, v in patterns.items()},
            avoided_topics=load_json(row["avoided_topics"], []),
            learned_threshold=row["learned_threshold"],
        )
