from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import UnknownBackend
from .resources import Notification


class NotificationBackend(ABC):
    """Delivery mechanism used to get notifications to a listener's client.

    A backend is selected by its ``mode`` name when a listener is added.
    Subscription state is opaque to the delegate and handed back to the
    backend for delivery and release.
    """

    mode: str

    @abstractmethod
    def config(self) -> Dict[str, Any]:
        """Default configuration surfaced to clients on ``register``."""

    @abstractmethod
    def subscribe(
        self,
        client_id: str,
        handle: str,
        resource: str,
        filter: Optional[List[str]],
        handback: Any,
    ) -> Tuple[Any, float]:
        """Create subscription state; returns ``(state, freshness_seconds)``."""

    @abstractmethod
    def deliver(self, state: Any, notification: Notification) -> None:
        ...

    @abstractmethod
    def unsubscribe(self, state: Any) -> None:
        ...


class BackendRegistry:
    """Backends by mode name, filled once at startup."""

    def __init__(self, backends: Iterable[NotificationBackend] = ()) -> None:
        self._backends: Dict[str, NotificationBackend] = {}
        self._configs: Dict[str, Dict[str, Any]] = {}
        for backend in backends:
            self.register(backend)

    def register(self, backend: NotificationBackend) -> None:
        if backend.mode in self._backends:
            raise ValueError(f"backend '{backend.mode}' already registered")
        self._backends[backend.mode] = backend
        self._configs[backend.mode] = dict(backend.config())

    def lookup(self, mode: str) -> NotificationBackend:
        backend = self._backends.get(mode)
        if backend is None:
            raise UnknownBackend(mode)
        return backend

    def configs(self) -> Mapping[str, Dict[str, Any]]:
        return {mode: dict(config) for mode, config in self._configs.items()}

    def modes(self) -> List[str]:
        return sorted(self._backends)
