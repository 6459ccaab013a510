# src/logging/context.py — v1
"""Contextual logging support — attach item_id, owner_id, stage to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per item run.
_item_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "item_id", default=None
)
_owner_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "owner_id", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    item_id: str | None = None
    owner_id: str | None = None
    stage: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        item_id=_item_id.get(),
        owner_id=_owner_id.get(),
        stage=_stage.get(),
    )


def set_item_context(item_id: str, owner_id: str) -> None:
    """Set item-level context (called once per item run)."""
    _item_id.set(item_id)
    _owner_id.set(owner_id)
    _stage.set(None)


def set_stage_context(stage: str | None) -> None:
    """Set stage-level context (called per stage execution)."""
    _stage.set(stage)


def clear_context() -> None:
    """Reset all context variables."""
    _item_id.set(None)
    _owner_id.set(None)
    _stage.set(None)
