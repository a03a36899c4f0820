"""Pull backend: notifications are buffered per listener until the client fetches them."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Dict, List, Optional, Tuple

from .backend import NotificationBackend
from .resources import Notification


class PullSubscription:
    __slots__ = ("client_id", "handle", "handback", "entries", "dropped", "closed", "lock")

    def __init__(self, client_id: str, handle: str, handback: Any, max_entries: int) -> None:
        self.client_id = client_id
        self.handle = handle
        self.handback = handback
        self.entries: deque[Dict[str, Any]] = deque(maxlen=max_entries)
        self.dropped = 0
        self.closed = False
        self.lock = threading.Lock()


class PullBackend(NotificationBackend):
    mode = "pull"

    def __init__(self, store: str, max_entries: int = 100, freshness: float = 60.0) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.store = store
        self.max_entries = max_entries
        self.freshness = float(freshness)

    def config(self) -> Dict[str, Any]:
        return {"store": self.store, "maxEntries": self.max_entries}

    def subscribe(
        self,
        client_id: str,
        handle: str,
        resource: str,
        filter: Optional[List[str]],
        handback: Any,
    ) -> Tuple[PullSubscription, float]:
        return PullSubscription(client_id, handle, handback, self.max_entries), self.freshness

    def deliver(self, state: PullSubscription, notification: Notification) -> None:
        entry = notification.model_dump()
        if state.handback is not None:
            entry["handback"] = state.handback
        with state.lock:
            if state.closed:
                return
            if len(state.entries) == state.entries.maxlen:
                state.dropped += 1
            state.entries.append(entry)

    def unsubscribe(self, state: PullSubscription) -> None:
        with state.lock:
            state.closed = True
            state.entries.clear()

    def pull(self, state: PullSubscription) -> Dict[str, Any]:
        """Drain buffered notifications, reporting how many were dropped since the last pull."""
        with state.lock:
            notifications = list(state.entries)
            dropped = state.dropped
            state.entries.clear()
            state.dropped = 0
        return {
            "handle": state.handle,
            "dropped": dropped,
            "notifications": notifications,
        }
