"""Abstract Create/Update/Delete commands.

Adapters subclass these and implement ``execute``. Each fixes the command
type; the shared hook operations used by nested writes live here.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, ClassVar

from writepipe.commands.base import Command
from writepipe.commands.hooks import hook_operation
from writepipe.commands.options import CommandType
from writepipe.errors import ExecutionError, KeyMissing


class Create(Command):
    """Insert tuples into a dataset."""

    command_type: ClassVar[CommandType] = CommandType.CREATE

    @hook_operation
    def associate(
        self,
        tuples: Any,
        parent: Any = None,
        *,
        key: str,
        parent_key: str = "id",
    ) -> Any:
        """Copy ``parent[parent_key]`` into each child tuple under *key*.

        Used as a before hook on dependent commands in a graph, where the
        parent tuple is passed as the trailing hook argument.

        Raises:
            KeyMissing: If there is no parent or it lacks *parent_key*.
        """
        if isinstance(parent, list | tuple):
            parent = parent[0] if parent else None
        if not isinstance(parent, Mapping) or parent_key not in parent:
            msg = f"Cannot associate {key!r}: parent tuple has no {parent_key!r}"
            raise KeyMissing(msg)

        value = parent[parent_key]
        return self.map_input_tuples(tuples, lambda t: {**t, key: value})


class Update(Command):
    """Update tuples matching the dataset's restriction."""

    command_type: ClassVar[CommandType] = CommandType.UPDATE
    timestamp_fields: ClassVar[tuple[str, ...]] = ("updated_at",)

    def prepare_attributes(self, attributes: Any) -> Mapping[str, Any]:
        """Run *attributes* through the input transform; the result must be a mapping.

        Raises:
            ExecutionError: The transformed attributes are not a mapping.
        """
        prepared = self.input(attributes)
        if not isinstance(prepared, Mapping):
            kind = type(prepared).__name__
            msg = f"{type(self).__name__} expects a mapping of attributes, got {kind}"
            raise ExecutionError(msg)
        return prepared


class Delete(Command):
    """Delete tuples matching the dataset's restriction."""

    command_type: ClassVar[CommandType] = CommandType.DELETE
