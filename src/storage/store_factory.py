# src/storage/store_factory.py — v1
"""Factory: instantiate the durable stores from configuration."""

from __future__ import annotations

from dataclasses import dataclass

from scriptconveyor.config.settings import Settings
from scriptconveyor.storage.sqlite_artifact_store import SqliteArtifactStore
from scriptconveyor.storage.sqlite_item_store import SqliteItemStore
from scriptconveyor.storage.sqlite_owner_store import SqliteOwnerStore


@dataclass
class Stores:
    """The three stores a conveyor instance runs against."""

    items: SqliteItemStore
    artifacts: SqliteArtifactStore
    owners: SqliteOwnerStore

    def close(self) -> None:
        self.items.close()
        self.artifacts.close()
        self.owners.close()


def create_stores(settings: Settings) -> Stores:
    """Create sqlite stores on settings.db_path.

    Args:
        settings: Application settings (DB_PATH, DAILY_LIMIT_DEFAULT).

    Returns:
        Stores sharing one database file (or private in-memory databases).
    """
    return Stores(
        items=SqliteItemStore(settings.db_path),
        artifacts=SqliteArtifactStore(settings.db_path),
        owners=SqliteOwnerStore(
            settings.db_path, default_daily_limit=settings.daily_limit_default
        ),
    )
