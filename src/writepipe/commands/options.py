"""Command configuration — enums and the frozen options model.

Every command is built from a dataset handle plus a :class:`CommandOptions`
value. Options are validated once at construction and never mutated;
derived commands get a fresh options value.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from writepipe.commands.hooks import HookSpec, coerce_hooks


class CommandType(StrEnum):
    """Kind of mutation a command performs."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ResultArity(StrEnum):
    """Shape of a command's return value."""

    ONE = "one"
    MANY = "many"


class CommandKind(StrEnum):
    """Sealed variant for polymorphic dispatch over command objects."""

    PLAIN = "plain"
    COMPOSITE = "composite"
    GRAPH = "graph"
    LAZY = "lazy"


def passthrough(tuples: Any) -> Any:
    """Default input transform: return *tuples* unchanged."""
    return tuples


class CommandOptions(BaseModel):
    """Validated configuration bundle for a command.

    Attributes:
        schema_: Opaque schema handle (passed as ``schema``).
        type: Mutation kind, one of create/update/delete.
        source: Dataset the command was derived from (defaults to its dataset).
        result: Result arity, one or many.
        input: Tuple processing function applied to each input tuple.
        curry_args: Arguments prepended to every call.
        before: Hooks applied to input before ``execute``.
        after: Hooks applied to the result of ``execute``.
        name: Registration name of the command.
        gateway: Identifier of the gateway owning the dataset.
    """

    model_config = {
        "frozen": True,
        "extra": "forbid",
        "arbitrary_types_allowed": True,
        "populate_by_name": True,
    }

    schema_: Any = Field(default=None, alias="schema")
    type: CommandType | None = None
    source: Any = None
    result: ResultArity = ResultArity.MANY
    input: Callable[[Any], Any] = passthrough
    curry_args: tuple[Any, ...] = ()
    before: tuple[HookSpec, ...] = ()
    after: tuple[HookSpec, ...] = ()
    name: str | None = None
    gateway: str | None = None

    @field_validator("before", "after", mode="before")
    @classmethod
    def _coerce_hooks(cls, value: Any) -> tuple[HookSpec, ...]:
        return coerce_hooks(value)

    @field_validator("curry_args", mode="before")
    @classmethod
    def _freeze_curry_args(cls, value: Any) -> tuple[Any, ...]:
        if value is None:
            return ()
        return tuple(value)

    def to_kwargs(self) -> dict[str, Any]:
        """Return options as constructor keyword arguments (values not copied)."""
        kwargs = {name: getattr(self, name) for name in type(self).model_fields}
        kwargs["schema"] = kwargs.pop("schema_")
        return kwargs
