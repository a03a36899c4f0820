"""Error taxonomy for notification commands."""

from __future__ import annotations


class BeanBridgeError(Exception):
    """Base class for every error raised by beanbridge."""


class InternalError(BeanBridgeError):
    """A programming error, e.g. a command type without a handler."""


class UnknownBackend(BeanBridgeError):
    def __init__(self, mode: str) -> None:
        super().__init__(f"No backend of type '{mode}' registered")
        self.mode = mode


class UnknownClient(BeanBridgeError):
    def __init__(self, client_id: str) -> None:
        super().__init__(f"No client with id '{client_id}' registered")
        self.client_id = client_id


class UnknownListener(BeanBridgeError):
    def __init__(self, client_id: str, handle: str) -> None:
        super().__init__(f"No listener '{handle}' registered for client '{client_id}'")
        self.client_id = client_id
        self.handle = handle


class ResourceResolutionError(BeanBridgeError):
    """Raised by the managed-resource layer when a name cannot be resolved."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(message)
        self.name = name


class ResourceNotFound(ResourceResolutionError):
    def __init__(self, name: str) -> None:
        super().__init__(name, f"No managed resource '{name}'")


class MalformedResourceName(ResourceResolutionError):
    def __init__(self, name: str) -> None:
        super().__init__(name, f"Invalid resource name '{name}'")
