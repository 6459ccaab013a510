# src/storage/sqlite_db.py — v1
"""Shared sqlite3 connection helpers for the durable stores.

Uses stdlib sqlite3. Every store owns one connection; `:memory:` gives a
private in-process database (tests, one-shot CLI runs).
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

MEMORY = ":memory:"


def connect(db_path: Path | str, schema: str) -> sqlite3.Connection:
    """Open a connection, apply pragmas and create the schema if missing."""
    if str(db_path) == MEMORY:
        conn = sqlite3.connect(MEMORY, check_same_thread=False)
    else:
        path = Path(db_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path), check_same_thread=False, timeout=30.0)
        conn.execute("PRAGMA journal_mode=WAL")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(schema)
    return conn


def to_iso(value: datetime | None) -> str | None:
    """Fixed-width UTC ISO string, so stored timestamps compare lexically."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def dump_json(value: Any) -> str | None:
    return json.dumps(value, default=str) if value is not None else None


def load_json(value: str | None, default: Any = None) -> Any:
    return json.loads(value) if value else default
