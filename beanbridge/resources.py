"""Managed-resource access layer.

The delegate only relies on the :class:`ResourceLayer` protocol. The
:class:`ResourceRegistry` is the in-process implementation used by the
service: it holds named beans and fans emitted notifications out to the
listeners installed on them.
"""

from __future__ import annotations

import itertools
import logging
import re
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from .errors import MalformedResourceName, ResourceNotFound

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[^:,=*?]+:[^=,:]+=[^=,]*(,[^=,:]+=[^=,]*)*$")


class Notification(BaseModel):
    type: str
    source: str
    sequence: int
    timestamp: float = Field(default_factory=time.time)
    message: Optional[str] = None
    user_data: Any = None


NotificationCallback = Callable[[Notification], None]


class ResourceLayer(Protocol):
    def resolve(self, name: str) -> str: ...

    def install_listener(
        self,
        resource: str,
        filter: Optional[List[str]],
        callback: NotificationCallback,
    ) -> str: ...

    def uninstall(self, token: str) -> None: ...


def parse_resource_name(name: str) -> tuple[str, Dict[str, str]]:
    """Split ``domain:key=value,...`` into its domain and key properties."""
    if not name or not _NAME_RE.match(name):
        raise MalformedResourceName(name)
    domain, props = name.split(":", 1)
    properties = dict(pair.split("=", 1) for pair in props.split(","))
    return domain, properties


def canonical_name(name: str) -> str:
    domain, properties = parse_resource_name(name)
    ordered = ",".join(f"{k}={properties[k]}" for k in sorted(properties))
    return f"{domain}:{ordered}"


def matches_filter(notification_type: str, filter: Optional[List[str]]) -> bool:
    if not filter:
        return True
    return any(notification_type.startswith(prefix) for prefix in filter)


class _Installed:
    __slots__ = ("resource", "filter", "callback")

    def __init__(
        self,
        resource: str,
        filter: Optional[List[str]],
        callback: NotificationCallback,
    ) -> None:
        self.resource = resource
        self.filter = filter
        self.callback = callback


class ResourceRegistry:
    """Thread-safe registry of managed beans addressed by canonical name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._resources: set[str] = set()
        self._installed: Dict[str, _Installed] = {}
        self._sequence = itertools.count(1)

    def add_resource(self, name: str) -> str:
        canonical = canonical_name(name)
        with self._lock:
            self._resources.add(canonical)
        return canonical

    def remove_resource(self, name: str) -> None:
        canonical = canonical_name(name)
        with self._lock:
            self._resources.discard(canonical)

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._resources)

    def resolve(self, name: str) -> str:
        canonical = canonical_name(name)
        with self._lock:
            if canonical not in self._resources:
                raise ResourceNotFound(name)
        return canonical

    def install_listener(
        self,
        resource: str,
        filter: Optional[List[str]],
        callback: NotificationCallback,
    ) -> str:
        canonical = self.resolve(resource)
        token = uuid.uuid4().hex
        with self._lock:
            self._installed[token] = _Installed(canonical, filter, callback)
        return token

    def uninstall(self, token: str) -> None:
        with self._lock:
            self._installed.pop(token, None)

    def listener_count(self) -> int:
        with self._lock:
            return len(self._installed)

    def emit(
        self,
        resource: str,
        notification_type: str,
        message: Optional[str] = None,
        user_data: Any = None,
    ) -> int:
        """Send a notification from ``resource``; returns the number of deliveries."""
        canonical = self.resolve(resource)
        notification = Notification(
            type=notification_type,
            source=canonical,
            sequence=next(self._sequence),
            message=message,
            user_data=user_data,
        )
        with self._lock:
            targets = [
                entry.callback
                for entry in self._installed.values()
                if entry.resource == canonical
                and matches_filter(notification_type, entry.filter)
            ]
        delivered = 0
        for callback in targets:
            try:
                callback(notification)
            except Exception:  # noqa: BLE001
                logger.exception("Listener failed for notification from %s", canonical)
                continue
            delivered += 1
        return delivered
