"""Client and listener bookkeeping.

Clients live in an arena keyed by client id. The arena lock only guards
membership; every client record carries its own lock which serializes
add/remove/ping/list and eviction for that client. Backend and resource
layer calls happen outside of any lock. A record that has been removed
from the arena is marked dead, and late commits against it are rolled back.

Lock order is client lock before arena lock, never the reverse.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from .backend import NotificationBackend
from .errors import UnknownClient, UnknownListener
from .resources import ResourceLayer

logger = logging.getLogger(__name__)


class Listener:
    __slots__ = (
        "handle",
        "resource",
        "mode",
        "filter",
        "handback",
        "freshness",
        "backend",
        "state",
        "resources",
        "token",
    )

    def __init__(
        self,
        handle: str,
        resource: str,
        mode: str,
        filter: Optional[List[str]],
        handback: Any,
        freshness: float,
        backend: NotificationBackend,
        state: Any,
        resources: ResourceLayer,
        token: str,
    ) -> None:
        self.handle = handle
        self.resource = resource
        self.mode = mode
        self.filter = filter
        self.handback = handback
        self.freshness = freshness
        self.backend = backend
        self.state = state
        self.resources = resources
        self.token = token

    def to_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {"mbean": self.resource, "mode": self.mode}
        if self.filter is not None:
            config["filter"] = list(self.filter)
        if self.handback is not None:
            config["handback"] = self.handback
        return config

    def release(self) -> None:
        try:
            self.resources.uninstall(self.token)
        finally:
            self.backend.unsubscribe(self.state)


class ClientState:
    __slots__ = ("id", "lock", "last_refresh", "listeners", "alive")

    def __init__(self, client_id: str, now: float) -> None:
        self.id = client_id
        self.lock = threading.Lock()
        self.last_refresh = now
        self.listeners: Dict[str, Listener] = {}
        self.alive = True

    def timeout(self, default: float) -> float:
        if not self.listeners:
            return default
        return min(listener.freshness for listener in self.listeners.values())

    def touch(self, now: float) -> None:
        if now > self.last_refresh:
            self.last_refresh = now


def _release_all(listeners: List[Listener]) -> List[BaseException]:
    errors: List[BaseException] = []
    for listener in listeners:
        try:
            listener.release()
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)
    return errors


class ListenerDelegate:
    def __init__(
        self,
        default_freshness: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_freshness = float(default_freshness)
        self._clock = clock
        self._lock = threading.Lock()
        self._clients: Dict[str, ClientState] = {}

    def _get(self, client_id: str) -> Optional[ClientState]:
        with self._lock:
            return self._clients.get(client_id)

    def _detach(self, client: ClientState) -> List[Listener]:
        # caller holds client.lock
        client.alive = False
        with self._lock:
            if self._clients.get(client.id) is client:
                del self._clients[client.id]
        listeners = list(client.listeners.values())
        client.listeners.clear()
        return listeners

    def register(self) -> str:
        client_id = secrets.token_urlsafe(16)
        with self._lock:
            while client_id in self._clients:
                client_id = secrets.token_urlsafe(16)
            self._clients[client_id] = ClientState(client_id, self._clock())
        logger.info("Registered notification client %s", client_id)
        return client_id

    def unregister(self, client_id: str) -> None:
        """Drop a client and release all of its listeners. Unknown ids are ignored."""
        client = self._get(client_id)
        if client is None:
            return
        with client.lock:
            if not client.alive:
                return
            listeners = self._detach(client)
        logger.info(
            "Unregistered notification client %s (%d listeners)", client_id, len(listeners)
        )
        errors = _release_all(listeners)
        if errors:
            raise errors[0]

    def add_listener(
        self,
        resources: ResourceLayer,
        backend: NotificationBackend,
        client_id: str,
        resource: str,
        filter: Optional[List[str]] = None,
        handback: Any = None,
    ) -> Dict[str, Any]:
        if self._get(client_id) is None:
            raise UnknownClient(client_id)

        resolved = resources.resolve(resource)
        handle = uuid.uuid4().hex
        state, freshness = backend.subscribe(client_id, handle, resolved, filter, handback)
        try:
            token = resources.install_listener(
                resolved, filter, lambda notification: backend.deliver(state, notification)
            )
        except Exception:
            backend.unsubscribe(state)
            raise
        listener = Listener(
            handle,
            resource,
            backend.mode,
            list(filter) if filter is not None else None,
            handback,
            float(freshness),
            backend,
            state,
            resources,
            token,
        )

        client = self._get(client_id)
        committed = False
        if client is not None:
            with client.lock:
                if client.alive:
                    client.listeners[handle] = listener
                    committed = True
        if not committed:
            listener.release()
            raise UnknownClient(client_id)
        logger.debug("Added listener %s for client %s on %s", handle, client_id, resolved)
        return {"handle": handle, "freshness": listener.freshness}

    def remove_listener(self, client_id: str, handle: str) -> None:
        """Remove a listener. Unknown clients and handles are ignored.

        The listener is uninstalled from the resource layer it was added through.
        """
        client = self._get(client_id)
        if client is None:
            return
        with client.lock:
            listener = client.listeners.pop(handle, None)
        if listener is None:
            return
        listener.release()

    def refresh(self, client_id: str) -> None:
        client = self._get(client_id)
        if client is None:
            return
        with client.lock:
            if client.alive:
                client.touch(self._clock())

    def list(self, client_id: str) -> Dict[str, Dict[str, Any]]:
        client = self._get(client_id)
        if client is None:
            return {}
        with client.lock:
            if not client.alive:
                return {}
            return {
                handle: listener.to_config()
                for handle, listener in client.listeners.items()
            }

    def subscription(self, client_id: str, handle: str) -> Tuple[str, Any]:
        """Return ``(mode, backend_state)`` of a live listener."""
        client = self._get(client_id)
        if client is None:
            raise UnknownClient(client_id)
        with client.lock:
            listener = client.listeners.get(handle) if client.alive else None
        if listener is None:
            raise UnknownListener(client_id, handle)
        return listener.mode, listener.state

    def sweep(self) -> List[str]:
        """Evict every client whose last ping is older than its timeout."""
        with self._lock:
            clients = list(self._clients.values())
        evicted: List[str] = []
        for client in clients:
            with client.lock:
                if not client.alive:
                    continue
                timeout = client.timeout(self.default_freshness)
                if self._clock() - client.last_refresh <= timeout:
                    continue
                listeners = self._detach(client)
            evicted.append(client.id)
            logger.info(
                "Evicted stale client %s (%d listeners, timeout %.1fs)",
                client.id,
                len(listeners),
                timeout,
            )
            for exc in _release_all(listeners):
                logger.error(
                    "Failed to release listener of client %s", client.id, exc_info=exc
                )
        return evicted

    def close(self) -> None:
        """Unregister every client, releasing whatever can be released."""
        with self._lock:
            clients = list(self._clients.values())
        for client in clients:
            with client.lock:
                if not client.alive:
                    continue
                listeners = self._detach(client)
            for exc in _release_all(listeners):
                logger.error(
                    "Failed to release listener of client %s", client.id, exc_info=exc
                )

    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def listener_count(self) -> int:
        with self._lock:
            clients = list(self._clients.values())
        total = 0
        for client in clients:
            with client.lock:
                total += len(client.listeners)
        return total
