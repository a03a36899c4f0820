from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from .backend import BackendRegistry
from .commands import (
    AddCommand,
    CommandType,
    ListCommand,
    NotificationCommand,
    PingCommand,
    RegisterCommand,
    RemoveCommand,
    UnregisterCommand,
)
from .delegate import ListenerDelegate
from .errors import InternalError
from .metrics import COMMANDS
from .resources import ResourceLayer

logger = logging.getLogger(__name__)

Handler = Callable[[ResourceLayer, Any], Any]


class NotificationDispatcher:
    """Routes notification commands to the listener delegate.

    This is the entry point used by the transport layer. It is safe to call
    :meth:`dispatch` concurrently; all state lives in the delegate.
    """

    def __init__(self, backends: BackendRegistry, delegate: ListenerDelegate) -> None:
        self.backends = backends
        self.delegate = delegate
        self._handlers: Dict[CommandType, Handler] = {
            CommandType.REGISTER: self._register,
            CommandType.UNREGISTER: self._unregister,
            CommandType.ADD: self._add,
            CommandType.REMOVE: self._remove,
            CommandType.PING: self._ping,
            CommandType.LIST: self._list,
        }
        missing = set(CommandType) - set(self._handlers)
        if missing:
            raise InternalError(
                "No dispatch action for " + ", ".join(sorted(m.value for m in missing))
            )

    def dispatch(self, command: NotificationCommand, resources: ResourceLayer) -> Any:
        try:
            command_type = CommandType(command.type)
        except (AttributeError, ValueError) as exc:
            raise InternalError(f"Internal: unknown command {command!r}") from exc
        handler = self._handlers.get(command_type)
        if handler is None:
            raise InternalError(
                f"Internal: No dispatch action for {command_type.value} registered"
            )
        try:
            result = handler(resources, command)
        except Exception as exc:
            COMMANDS.labels(command_type.value, type(exc).__name__).inc()
            raise
        COMMANDS.labels(command_type.value, "ok").inc()
        return result

    def _register(self, resources: ResourceLayer, command: RegisterCommand) -> Dict[str, Any]:
        client_id = self.delegate.register()
        return {"id": client_id, "backend": self.backends.configs()}

    def _unregister(self, resources: ResourceLayer, command: UnregisterCommand) -> None:
        self.delegate.unregister(command.client)
        return None

    def _add(self, resources: ResourceLayer, command: AddCommand) -> Dict[str, Any]:
        backend = self.backends.lookup(command.mode)
        return self.delegate.add_listener(
            resources,
            backend,
            command.client,
            command.resource,
            command.filter,
            command.handback,
        )

    def _remove(self, resources: ResourceLayer, command: RemoveCommand) -> None:
        self.delegate.remove_listener(command.client, command.handle)
        return None

    def _ping(self, resources: ResourceLayer, command: PingCommand) -> None:
        self.delegate.refresh(command.client)
        return None

    def _list(self, resources: ResourceLayer, command: ListCommand) -> Dict[str, Any]:
        return self.delegate.list(command.client)
