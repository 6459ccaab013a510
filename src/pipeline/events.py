# src/pipeline/events.py — v1
"""Progress events emitted by the orchestrator.

Listeners subscribe to a ProgressEventBus; a failing listener is logged and
never interrupts the pipeline. The bus keeps a short history for the most
recently active items so a polling client can read recent events.
"""

from __future__ import annotations

import inspect
import logging
from collections import OrderedDict, deque
from datetime import datetime
from typing import Any, Awaitable, Callable, Literal, Union

from pydantic import BaseModel, Field

from scriptconveyor.core.models import utc_now

logger = logging.getLogger(__name__)

EventType = Literal[
    "item_started",
    "stage_started",
    "stage_completed",
    "stage_failed",
    "item_completed",
    "item_failed",
    "item_cancelled",
]

Listener = Callable[["ProgressEvent"], Union[None, Awaitable[None]]]


class ProgressEvent(BaseModel):
    """One progress notification."""

    type: EventType
    item_id: str
    owner_id: str
    stage_index: int | None = None
    stage_name: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)


class ProgressEventBus:
    """Fan progress events out to subscribed listeners."""

    def __init__(self, history_size: int = 50, max_items: int = 500) -> None:
        self._listeners: list[Listener] = []
        self._history_size = history_size
        self._max_items = max_items
        self._history: OrderedDict[str, deque[ProgressEvent]] = OrderedDict()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish(self, event: ProgressEvent) -> None:
        self._record(event)
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Progress listener failed on %s", event.type)

    def history(self, item_id: str) -> list[ProgressEvent]:
        return list(self._history.get(item_id, ()))

    def _record(self, event: ProgressEvent) -> None:
        events = self._history.get(event.item_id)
        if events is None:
            events = self._history[event.item_id] = deque(maxlen=self._history_size)
        else:
            self._history.move_to_end(event.item_id)
        events.append(event)
        while len(self._history) > self._max_items:
            self._history.popitem(last=False)
