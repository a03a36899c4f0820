from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class CommandType(str, Enum):
    REGISTER = "register"
    UNREGISTER = "unregister"
    ADD = "add"
    REMOVE = "remove"
    PING = "ping"
    LIST = "list"


class _Command(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class RegisterCommand(_Command):
    type: Literal["register"] = "register"


class UnregisterCommand(_Command):
    type: Literal["unregister"] = "unregister"
    client: str


class AddCommand(_Command):
    type: Literal["add"] = "add"
    client: str
    resource: str = Field(alias="mbean")
    mode: str
    filter: Optional[List[str]] = None
    handback: Any = None


class RemoveCommand(_Command):
    type: Literal["remove"] = "remove"
    client: str
    handle: str


class PingCommand(_Command):
    type: Literal["ping"] = "ping"
    client: str


class ListCommand(_Command):
    type: Literal["list"] = "list"
    client: str


NotificationCommand = Annotated[
    Union[
        RegisterCommand,
        UnregisterCommand,
        AddCommand,
        RemoveCommand,
        PingCommand,
        ListCommand,
    ],
    Field(discriminator="type"),
]

_adapter: TypeAdapter[NotificationCommand] = TypeAdapter(NotificationCommand)


def parse_command(payload: dict[str, Any]) -> NotificationCommand:
    """Decode a request payload into one of the six typed commands.

    Raises ``pydantic.ValidationError`` for an unknown ``type`` or missing fields.
    """
    return _adapter.validate_python(payload)
