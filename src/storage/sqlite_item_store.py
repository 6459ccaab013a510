# src/storage/sqlite_item_store.py — v1
"""SQLite-backed pipeline item store.

Uses stdlib sqlite3. Stage payloads live in their own table keyed by
(item_id, stage_index) so a fork can copy them with one INSERT ... SELECT
inside the transaction that creates the child.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

from scriptconveyor.core.errors import NotFoundError, PayloadImmutableError
from scriptconveyor.core.models import (
    ItemStatus,
    PipelineItem,
    RevisionContext,
    SourceRef,
    StageTiming,
    utc_now,
)
from scriptconveyor.storage.base_item_store import BaseItemStore
from scriptconveyor.storage.sqlite_db import connect, dump_json, from_iso, load_json, to_iso

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS items (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    parent_id TEXT,
    source_type TEXT NOT NULL,
    source_item_id TEXT NOT NULL,
    artifact_id TEXT,
    status TEXT NOT NULL,
    current_stage INTEGER NOT NULL DEFAULT 0,
    retry_count INTEGER NOT NULL DEFAULT 0,
    revision_context TEXT,
    error_message TEXT,
    error_stage INTEGER,
    error_kind TEXT,
    created_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT,
    locked_by TEXT,
    lease_expires_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_items_status ON items(status);
CREATE INDEX IF NOT EXISTS idx_items_owner ON items(owner_id);

CREATE TABLE IF NOT EXISTS stage_records (
    item_id TEXT NOT NULL REFERENCES items(id) ON DELETE CASCADE,
    stage_index INTEGER NOT NULL,
    payload TEXT,
    started_at TEXT,
    completed_at TEXT,
    PRIMARY KEY (item_id, stage_index)
);
"""

_CANCELLABLE = (ItemStatus.QUEUED.value, ItemStatus.PROCESSING.value)


class SqliteItemStore(BaseItemStore):
    """Pipeline items and stage records in a sqlite database."""

    def __init__(
        self,
        db_path: Path | str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._conn = connect(db_path, _SCHEMA)
        self._clock = clock

    async def create(self, item: PipelineItem) -> PipelineItem:
        with self._conn:
            self._conn.execute(
                """INSERT INTO items
                   (id, owner_id, parent_id, source_type, source_item_id, artifact_id,
                    status, current_stage, retry_count, revision_context,
                    error_message, error_stage, error_kind,
                    created_at, started_at, completed_at, locked_by, lease_expires_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    item.id,
                    item.owner_id,
                    item.parent_id,
                    item.source_ref.type,
                    item.source_ref.item_id,
                    item.artifact_id,
                    item.status.value,
                    item.current_stage,
                    item.retry_count,
                    item.revision_context.model_dump_json() if item.revision_context else None,
                    item.error_message,
                    item.error_stage,
                    item.error_kind,
                    to_iso(item.created_at),
                    to_iso(item.started_at),
                    to_iso(item.completed_at),
                    item.locked_by,
                    to_iso(item.lease_expires_at),
                ),
            )
            indices = set(item.stage_payloads) | set(item.stage_timings)
            for index in sorted(indices):
                timing = item.stage_timings.get(index, StageTiming())
                self._conn.execute(
                    """INSERT INTO stage_records
                       (item_id, stage_index, payload, started_at, completed_at)
                       VALUES (?, ?, ?, ?, ?)""",
                    (
                        item.id,
                        index,
                        dump_json(item.stage_payloads.get(index)),
                        to_iso(timing.started_at),
                        to_iso(timing.completed_at),
                    ),
                )
        logger.debug("Created item %s for owner %s", item.id, item.owner_id)
        return item

    async def get_by_id(self, item_id: str) -> PipelineItem | None:
        row = self._conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
        if row is None:
            return None
        return self._load(row)

    async def update_stage_payload(
        self, item_id: str, stage_index: int, payload: dict[str, Any]
    ) -> None:
        with self._conn:
            current = self._current_stage(item_id)
            if stage_index < current:
                raise PayloadImmutableError(
                    f"Item {item_id}: stage {stage_index} is already completed "
                    f"(current stage {current})"
                )
            self._conn.execute(
                """INSERT INTO stage_records (item_id, stage_index, payload)
                   VALUES (?, ?, ?)
                   ON CONFLICT(item_id, stage_index) DO UPDATE SET payload = excluded.payload""",
                (item_id, stage_index, dump_json(payload)),
            )

    async def mark_stage_started(self, item_id: str, stage_index: int) -> None:
        with self._conn:
            self._conn.execute(
                """INSERT INTO stage_records (item_id, stage_index, started_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(item_id, stage_index) DO UPDATE
                   SET started_at = excluded.started_at, completed_at = NULL""",
                (item_id, stage_index, to_iso(self._clock())),
            )

    async def advance_stage(self, item_id: str, stage_index: int) -> None:
        now = to_iso(self._clock())
        with self._conn:
            self._conn.execute(
                """INSERT INTO stage_records (item_id, stage_index, started_at, completed_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(item_id, stage_index) DO UPDATE
                   SET completed_at = excluded.completed_at""",
                (item_id, stage_index, now, now),
            )
            self._conn.execute(
                "UPDATE items SET current_stage = ? WHERE id = ? AND current_stage = ?",
                (stage_index + 1, item_id, stage_index),
            )

    async def mark_processing(self, item_id: str) -> None:
        with self._conn:
            self._conn.execute(
                """UPDATE items
                   SET status = ?, started_at = COALESCE(started_at, ?),
                       error_message = NULL, error_stage = NULL, error_kind = NULL
                   WHERE id = ? AND status IN (?, ?)""",
                (ItemStatus.PROCESSING.value, to_iso(self._clock()), item_id, *_CANCELLABLE),
            )

    async def mark_failed(
        self, item_id: str, stage_index: int, message: str, error_kind: str
    ) -> bool:
        with self._conn:
            cursor = self._conn.execute(
                """UPDATE items
                   SET status = ?, error_stage = ?, error_message = ?, error_kind = ?
                   WHERE id = ? AND status IN (?, ?)""",
                (ItemStatus.FAILED.value, stage_index, message, error_kind, item_id, *_CANCELLABLE),
            )
        return cursor.rowcount == 1

    async def mark_completed(self, item_id: str, artifact_id: str | None = None) -> None:
        with self._conn:
            self._conn.execute(
                """UPDATE items
                   SET status = ?, completed_at = ?, artifact_id = COALESCE(?, artifact_id)
                   WHERE id = ?""",
                (ItemStatus.COMPLETED.value, to_iso(self._clock()), artifact_id, item_id),
            )

    async def mark_cancelled(self, item_id: str) -> ItemStatus | None:
        with self._conn:
            row = self._conn.execute(
                "SELECT status FROM items WHERE id = ?", (item_id,)
            ).fetchone()
            if row is None or row["status"] not in _CANCELLABLE:
                return None
            self._conn.execute(
                "UPDATE items SET status = ?, completed_at = ? WHERE id = ?",
                (ItemStatus.CANCELLED.value, to_iso(self._clock()), item_id),
            )
        return ItemStatus(row["status"])

    async def increment_retry(self, item_id: str, max_retries: int) -> bool:
        with self._conn:
            cursor = self._conn.execute(
                """UPDATE items
                   SET retry_count = retry_count + 1, status = ?,
                       error_message = NULL, error_stage = NULL, error_kind = NULL
                   WHERE id = ? AND status = ? AND retry_count < ?""",
                (ItemStatus.PROCESSING.value, item_id, ItemStatus.FAILED.value, max_retries),
            )
        return cursor.rowcount == 1

    async def reset(self, item_id: str) -> None:
        with self._conn:
            cursor = self._conn.execute(
                """UPDATE items
                   SET status = ?, retry_count = 0, locked_by = NULL, lease_expires_at = NULL,
                       error_message = NULL, error_stage = NULL, error_kind = NULL,
                       completed_at = NULL
                   WHERE id = ?""",
                (ItemStatus.QUEUED.value, item_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Item {item_id} not found")

    async def fork_from(
        self,
        parent_id: str,
        resume_stage: int,
        revision_context: RevisionContext,
        artifact_id: str,
        new_id: str | None = None,
    ) -> PipelineItem:
        child_id = new_id or uuid.uuid4().hex
        now = to_iso(self._clock())
        with self._conn:
            parent = self._conn.execute(
                "SELECT owner_id, source_type, source_item_id FROM items WHERE id = ?",
                (parent_id,),
            ).fetchone()
            if parent is None:
                raise NotFoundError(f"Parent item {parent_id} not found")
            self._conn.execute(
                """INSERT INTO items
                   (id, owner_id, parent_id, source_type, source_item_id, artifact_id,
                    status, current_stage, retry_count, revision_context, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)""",
                (
                    child_id,
                    parent["owner_id"],
                    parent_id,
                    parent["source_type"],
                    parent["source_item_id"],
                    artifact_id,
                    ItemStatus.QUEUED.value,
                    resume_stage,
                    revision_context.model_dump_json(),
                    now,
                ),
            )
            self._conn.execute(
                """INSERT INTO stage_records
                   (item_id, stage_index, payload, started_at, completed_at)
                   SELECT ?, stage_index, payload, started_at, completed_at
                   FROM stage_records WHERE item_id = ? AND stage_index < ?""",
                (child_id, parent_id, resume_stage),
            )
        logger.info(
            "Forked item %s from %s at stage %d (artifact %s)",
            child_id, parent_id, resume_stage, artifact_id,
        )
        child = await self.get_by_id(child_id)
        assert child is not None
        return child

    async def list_by_status(
        self, status: ItemStatus, owner_id: str | None = None
    ) -> list[PipelineItem]:
        query = "SELECT * FROM items WHERE status = ?"
        params: list[Any] = [status.value]
        if owner_id is not None:
            query += " AND owner_id = ?"
            params.append(owner_id)
        query += " ORDER BY created_at"
        rows = self._conn.execute(query, params).fetchall()
        return [self._load(row) for row in rows]

    # --- Leases ---

    async def acquire_lease(self, item_id: str, worker_id: str, ttl_s: float) -> bool:
        now = self._clock()
        with self._conn:
            cursor = self._conn.execute(
                """UPDATE items SET locked_by = ?, lease_expires_at = ?
                   WHERE id = ?
                     AND (locked_by IS NULL OR locked_by = ?
                          OR lease_expires_at IS NULL OR lease_expires_at < ?)""",
                (
                    worker_id,
                    to_iso(now + timedelta(seconds=ttl_s)),
                    item_id,
                    worker_id,
                    to_iso(now),
                ),
            )
        return cursor.rowcount == 1

    async def renew_lease(self, item_id: str, worker_id: str, ttl_s: float) -> bool:
        expires = to_iso(self._clock() + timedelta(seconds=ttl_s))
        with self._conn:
            cursor = self._conn.execute(
                "UPDATE items SET lease_expires_at = ? WHERE id = ? AND locked_by = ?",
                (expires, item_id, worker_id),
            )
        return cursor.rowcount == 1

    async def release_lease(self, item_id: str, worker_id: str) -> None:
        with self._conn:
            self._conn.execute(
                """UPDATE items SET locked_by = NULL, lease_expires_at = NULL
                   WHERE id = ? AND locked_by = ?""",
                (item_id, worker_id),
            )

    async def find_orphaned(self, now: datetime | None = None) -> list[PipelineItem]:
        rows = self._conn.execute(
            """SELECT * FROM items
               WHERE status = ?
                 AND (locked_by IS NULL OR lease_expires_at IS NULL OR lease_expires_at < ?)
               ORDER BY created_at""",
            (ItemStatus.PROCESSING.value, to_iso(now or self._clock())),
        ).fetchall()
        return [self._load(row) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- Internals ---

    def _current_stage(self, item_id: str) -> int:
        row = self._conn.execute(
            "SELECT current_stage FROM items WHERE id = ?", (item_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Item {item_id} not found")
        return row["current_stage"]

    def _load(self, row: sqlite3.Row) -> PipelineItem:
        payloads: dict[int, dict[str, Any]] = {}
        timings: dict[int, StageTiming] = {}
        records = self._conn.execute(
            """SELECT stage_index, payload, started_at, completed_at
               FROM stage_records WHERE item_id = ? ORDER BY stage_index""",
            (row["id"],),
        ).fetchall()
        for record in records:
            index = record["stage_index"]
            payload = load_json(record["payload"])
            if payload is not None:
                payloads[index] = payload
            if record["started_at"] or record["completed_at"]:
                timings[index] = StageTiming(
                    started_at=from_iso(record["started_at"]),
                    completed_at=from_iso(record["completed_at"]),
                )

        revision = load_json(row["revision_context"])
        return PipelineItem(
            id=row["id"],
            owner_id=row["owner_id"],
            parent_id=row["parent_id"],
            source_ref=SourceRef(type=row["source_type"], item_id=row["source_item_id"]),
            artifact_id=row["artifact_id"],
            status=ItemStatus(row["status"]),
            current_stage=row["current_stage"],
            stage_payloads=payloads,
            stage_timings=timings,
            retry_count=row["retry_count"],
            revision_context=RevisionContext(**revision) if revision else None,
            error_message=row["error_message"],
            error_stage=row["error_stage"],
            error_kind=row["error_kind"],
            created_at=from_iso(row["created_at"]),
            started_at=from_iso(row["started_at"]),
            completed_at=from_iso(row["completed_at"]),
            locked_by=row["locked_by"],
            lease_expires_at=from_iso(row["lease_expires_at"]),
        )
