from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List

from docvault.models import NodeKind

logger = logging.getLogger(__name__)


class SyncEventType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    MOVE = "move"
    RENAME = "rename"
    UPLOAD = "upload"


@dataclass(frozen=True)
class SyncEvent:
    type: SyncEventType
    item_id: str
    item_kind: NodeKind
    timestamp: float = field(default_factory=time.time)


Listener = Callable[[SyncEvent], None]


class SyncNotifier:
    """Fan-out of change events to views that show the same scope."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, event: SyncEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # Keep notifying the remaining listeners
                logger.exception(f"Sync listener failed for {event.type.value}")

    def emit(self, kind: SyncEventType, item_id: str, item_kind: NodeKind) -> None:
        self.notify(SyncEvent(kind, item_id, item_kind))
