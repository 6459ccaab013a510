# src/storage/sqlite_artifact_store.py — v1
"""SQLite-backed artifact store with version history.

Uses stdlib sqlite3. A partial unique index on (artifact_id) WHERE
is_current = 1 rejects any second current version at the storage level.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Callable

from scriptconveyor.core.errors import (
    ArtifactBusyError,
    NotFoundError,
    RevisionLimitExceededError,
)
from scriptconveyor.core.models import (
    Artifact,
    ArtifactStatus,
    ArtifactVersion,
    Rejection,
    ScoreBreakdown,
    ScriptContent,
    utc_now,
)
from scriptconveyor.storage.base_artifact_store import BaseArtifactStore
from scriptconveyor.storage.sqlite_db import connect, dump_json, from_iso, load_json, to_iso

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS artifacts (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    source_key TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL,
    scores TEXT NOT NULL,
    status TEXT NOT NULL,
    revision_count INTEGER NOT NULL DEFAULT 0,
    item_id TEXT,
    rejection TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_artifacts_source ON artifacts(owner_id, source_key);

CREATE TABLE IF NOT EXISTS artifact_versions (
    artifact_id TEXT NOT NULL REFERENCES artifacts(id) ON DELETE CASCADE,
    version_number INTEGER NOT NULL,
    content TEXT NOT NULL,
    scores TEXT NOT NULL,
    feedback_text TEXT,
    targeted_element_ids TEXT,
    item_id TEXT,
    is_current INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    PRIMARY KEY (artifact_id, version_number)
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_versions_single_current
    ON artifact_versions(artifact_id) WHERE is_current = 1;
"""

_GATE = ArtifactStatus.REVISION.value


class SqliteArtifactStore(BaseArtifactStore):
    """Artifacts and artifact versions in a sqlite database."""

    def __init__(
        self,
        db_path: Path | str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._conn = connect(db_path, _SCHEMA)
        self._clock = clock

    async def persist_artifact(self, artifact: Artifact) -> ArtifactVersion:
        now = self._clock()
        with self._conn:
            self._conn.execute(
                """INSERT INTO artifacts
                   (id, owner_id, source_key, title, content, scores, status,
                    revision_count, item_id, rejection, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    artifact.id,
                    artifact.owner_id,
                    artifact.source_key,
                    artifact.title,
                    artifact.content.model_dump_json(),
                    artifact.scores.model_dump_json(),
                    artifact.status.value,
                    artifact.revision_count,
                    artifact.item_id,
                    artifact.rejection.model_dump_json() if artifact.rejection else None,
                    to_iso(artifact.created_at),
                    to_iso(now),
                ),
            )
            version = self._insert_version(
                artifact.id,
                artifact.content,
                artifact.scores,
                feedback_text=None,
                targeted_element_ids=None,
                item_id=artifact.item_id,
                now=now,
            )
        logger.info("Persisted artifact %s (v1) for owner %s", artifact.id, artifact.owner_id)
        return version

    async def append_version(
        self,
        artifact_id: str,
        content: ScriptContent,
        scores: ScoreBreakdown,
        feedback_text: str | None = None,
        targeted_element_ids: list[int] | None = None,
        item_id: str | None = None,
    ) -> ArtifactVersion:
        with self._conn:
            self._require(artifact_id)
            return self._insert_version(
                artifact_id,
                content,
                scores,
                feedback_text,
                targeted_element_ids,
                item_id,
                self._clock(),
            )

    async def deliver_version(
        self,
        artifact_id: str,
        content: ScriptContent,
        scores: ScoreBreakdown,
        feedback_text: str | None,
        targeted_element_ids: list[int] | None,
        item_id: str,
    ) -> ArtifactVersion:
        now = self._clock()
        with self._conn:
            cursor = self._conn.execute(
                """UPDATE artifacts
                   SET content = ?, scores = ?, status = ?, item_id = ?,
                       rejection = NULL, updated_at = ?
                   WHERE id = ?""",
                (
                    content.model_dump_json(),
                    scores.model_dump_json(),
                    ArtifactStatus.PENDING.value,
                    item_id,
                    to_iso(now),
                    artifact_id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Artifact {artifact_id} not found")
            version = self._insert_version(
                artifact_id, content, scores, feedback_text, targeted_element_ids, item_id, now
            )
        logger.info("Delivered artifact %s v%d", artifact_id, version.version_number)
        return version

    async def get(self, artifact_id: str) -> Artifact | None:
        row = self._conn.execute(
            "SELECT * FROM artifacts WHERE id = ?", (artifact_id,)
        ).fetchone()
        return self._load_artifact(row) if row else None

    async def get_by_source(self, owner_id: str, source_key: str) -> Artifact | None:
        row = self._conn.execute(
            """SELECT * FROM artifacts WHERE owner_id = ? AND source_key = ?
               ORDER BY created_at LIMIT 1""",
            (owner_id, source_key),
        ).fetchone()
        return self._load_artifact(row) if row else None

    async def claim_revision(self, artifact_id: str, max_revisions: int) -> Artifact:
        with self._conn:
            cursor = self._conn.execute(
                """UPDATE artifacts
                   SET status = ?, revision_count = revision_count + 1, updated_at = ?
                   WHERE id = ? AND status != ? AND revision_count < ?""",
                (_GATE, to_iso(self._clock()), artifact_id, _GATE, max_revisions),
            )
            if cursor.rowcount == 0:
                row = self._require(artifact_id)
                if row["revision_count"] >= max_revisions:
                    raise RevisionLimitExceededError(artifact_id, max_revisions)
                raise ArtifactBusyError(f"Artifact {artifact_id} is already being revised")
        artifact = await self.get(artifact_id)
        assert artifact is not None
        return artifact

    async def unclaim_revision(self, artifact_id: str) -> None:
        with self._conn:
            self._conn.execute(
                """UPDATE artifacts
                   SET status = ?, revision_count = MAX(revision_count - 1, 0), updated_at = ?
                   WHERE id = ? AND status = ?""",
                (ArtifactStatus.PENDING.value, to_iso(self._clock()), artifact_id, _GATE),
            )

    async def acquire(self, artifact_id: str) -> None:
        with self._conn:
            cursor = self._conn.execute(
                "UPDATE artifacts SET status = ?, updated_at = ? WHERE id = ? AND status != ?",
                (_GATE, to_iso(self._clock()), artifact_id, _GATE),
            )
            if cursor.rowcount == 0:
                self._require(artifact_id)
                raise ArtifactBusyError(f"Artifact {artifact_id} is already being revised")

    async def release(self, artifact_id: str) -> None:
        with self._conn:
            self._conn.execute(
                "UPDATE artifacts SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                (ArtifactStatus.PENDING.value, to_iso(self._clock()), artifact_id, _GATE),
            )

    async def set_review_status(
        self,
        artifact_id: str,
        status: ArtifactStatus,
        rejection: Rejection | None = None,
    ) -> Artifact:
        with self._conn:
            cursor = self._conn.execute(
                """UPDATE artifacts SET status = ?, rejection = ?, updated_at = ?
                   WHERE id = ? AND status != ?""",
                (
                    status.value,
                    rejection.model_dump_json() if rejection else None,
                    to_iso(self._clock()),
                    artifact_id,
                    _GATE,
                ),
            )
            if cursor.rowcount == 0:
                self._require(artifact_id)
                raise ArtifactBusyError(f"Artifact {artifact_id} has a revision in flight")
        artifact = await self.get(artifact_id)
        assert artifact is not None
        return artifact

    async def list_versions(self, artifact_id: str) -> list[ArtifactVersion]:
        rows = self._conn.execute(
            """SELECT * FROM artifact_versions WHERE artifact_id = ?
               ORDER BY version_number""",
            (artifact_id,),
        ).fetchall()
        return [self._load_version(row) for row in rows]

    async def get_current_version(self, artifact_id: str) -> ArtifactVersion | None:
        row = self._conn.execute(
            "SELECT * FROM artifact_versions WHERE artifact_id = ? AND is_current = 1",
            (artifact_id,),
        ).fetchone()
        return self._load_version(row) if row else None

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- Internals (callers hold the transaction) ---

    def _require(self, artifact_id: str) -> sqlite3.Row:
        row = self._conn.execute(
            "SELECT status, revision_count FROM artifacts WHERE id = ?", (artifact_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Artifact {artifact_id} not found")
        return row

    def _insert_version(
        self,
        artifact_id: str,
        content: ScriptContent,
        scores: ScoreBreakdown,
        feedback_text: str | None,
        targeted_element_ids: list[int] | None,
        item_id: str | None,
        now: datetime,
    ) -> ArtifactVersion:
        row = self._conn.execute(
            "SELECT COALESCE(MAX(version_number), 0) FROM artifact_versions WHERE artifact_id = ?",
            (artifact_id,),
        ).fetchone()
        version_number = row[0] + 1
        self._conn.execute(
            "UPDATE artifact_versions SET is_current = 0 WHERE artifact_id = ? AND is_current = 1",
            (artifact_id,),
        )
        self._conn.execute(
            """INSERT INTO artifact_versions
               (artifact_id, version_number, content, scores, feedback_text,
                targeted_element_ids, item_id, is_current, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?)""",
            (
                artifact_id,
                version_number,
                content.model_dump_json(),
                scores.model_dump_json(),
                feedback_text,
                dump_json(targeted_element_ids),
                item_id,
                to_iso(now),
            ),
        )
        return ArtifactVersion(
            artifact_id=artifact_id,
            version_number=version_number,
            content=content,
            scores=scores,
            feedback_text=feedback_text,
            targeted_element_ids=targeted_element_ids,
            item_id=item_id,
            is_current=True,
            created_at=now,
        )

    @staticmethod
    def _load_artifact(row: sqlite3.Row) -> Artifact:
        rejection = load_json(row["rejection"])
        return Artifact(
            id=row["id"],
            owner_id=row["owner_id"],
            source_key=row["source_key"],
            title=row["title"],
            content=ScriptContent.model_validate_json(row["content"]),
            scores=ScoreBreakdown.model_validate_json(row["scores"]),
            status=ArtifactStatus(row["status"]),
            revision_count=row["revision_count"],
            item_id=row["item_id"],
            rejection=Rejection(**rejection) if rejection else None,
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
        )

    @staticmethod
    def _load_version(row: sqlite3.Row) -> ArtifactVersion:
        return ArtifactVersion(
            artifact_id=row["artifact_id"],
            version_number=row["version_number"],
            content=ScriptContent.model_validate_json(row["content"]),
            scores=ScoreBreakdown.model_validate_json(row["scores"]),
            feedback_text=row["feedback_text"],
            targeted_element_ids=load_json(row["targeted_element_ids"]),
            item_id=row["item_id"],
            is_current=bool(row["is_current"]),
            created_at=from_iso(row["created_at"]),
        )
