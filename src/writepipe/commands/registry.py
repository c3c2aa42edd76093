"""Command factory, registry, and nested graph builder.

- :func:`build_command` picks an adapter's Create/Update/Delete class and
  builds a command from a dataset plus explicit options.
- :class:`CommandRegistry` holds built commands by relation and name.
- :meth:`CommandRegistry.graph` turns a nested spec into a graph of lazy
  commands that accepts one nested input mapping.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from typing import Any

from writepipe.commands.base import Command
from writepipe.commands.graph import Graph, InputEvaluator
from writepipe.commands.lazy import Lazy, Restrict
from writepipe.commands.options import CommandType
from writepipe.errors import ConfigurationError, KeyMissing

logger = logging.getLogger(__name__)

ADAPTERS: dict[str, dict[CommandType, type[Command]]] = {}


def register_adapter(command_cls: type[Command]) -> type[Command]:
    """Class decorator registering an adapter command class.

    The class must declare both ``adapter`` and ``command_type``.
    """
    if not command_cls.adapter or command_cls.command_type is None:
        msg = f"{command_cls.__name__} must declare adapter and command_type"
        raise ConfigurationError(msg)
    ADAPTERS.setdefault(command_cls.adapter, {})[command_cls.command_type] = command_cls
    return command_cls


def build_command(
    adapter: str,
    command_type: CommandType | str,
    dataset: Any,
    **options: Any,
) -> Command:
    """Build a command for *adapter* and *command_type*.

    Raises:
        ConfigurationError: If the adapter or command type is unknown.
    """
    try:
        ctype = CommandType(command_type)
    except ValueError as exc:
        msg = f"Unknown command type {command_type!r}"
        raise ConfigurationError(msg) from exc

    classes = ADAPTERS.get(adapter)
    if classes is None or ctype not in classes:
        msg = f"No {ctype} command registered for adapter {adapter!r}"
        raise ConfigurationError(msg)
    return classes[ctype].build(dataset, **options)


class RelationCommands(Mapping[str, Any]):
    """Commands registered for a single relation."""

    def __init__(self, relation: str) -> None:
        self.relation = relation
        self._commands: dict[str, Any] = {}

    def __getitem__(self, name: str) -> Any:
        try:
            return self._commands[name]
        except KeyError:
            msg = f"No command {name!r} registered for relation {self.relation!r}"
            raise KeyMissing(msg) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._commands)

    def __len__(self) -> int:
        return len(self._commands)


class CommandRegistry(Mapping[str, RelationCommands]):
    """Built commands keyed by relation name, then command name."""

    def __init__(self) -> None:
        self._relations: dict[str, RelationCommands] = {}

    def register(self, relation: str, name: str, command: Any) -> Any:
        """Register *command* under ``registry[relation][name]`` and return it."""
        commands = self._relations.setdefault(relation, RelationCommands(relation))
        commands._commands[name] = command
        logger.debug("Registered command %s.%s", relation, name)
        return command

    def __getitem__(self, relation: str) -> RelationCommands:
        try:
            return self._relations[relation]
        except KeyError:
            msg = f"No commands registered for relation {relation!r}"
            raise KeyMissing(msg) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._relations)

    def __len__(self) -> int:
        return len(self._relations)

    def graph(self, spec: Sequence[Any]) -> Lazy | Graph:
        """Build a command graph from a nested spec.

        Spec grammar::

            node     := [key, [command, children?]]
            key      := "users" | {"user": "users"}     # input key -> relation
            command  := "create" | {"update": restrict}
            children := node | [node, node, ...]

        Usage::

            graph = registry.graph(["user", ["create", ["tasks", ["create"]]]])
            graph.call({"user": {"name": "Jane", "tasks": [{"title": "t"}]}})
        """
        return _build_node(self, spec, ())


def _build_node(registry: CommandRegistry, spec: Sequence[Any], path: tuple[Any, ...]) -> Any:
    if len(spec) != 2 or not isinstance(spec[1], list | tuple) or not spec[1]:
        msg = f"Invalid graph node spec: {spec!r}"
        raise ConfigurationError(msg)

    key_spec, command_spec = spec
    if isinstance(key_spec, Mapping):
        ((key, relation),) = key_spec.items()
    else:
        key, relation = key_spec, key_spec

    name_spec = command_spec[0]
    nodes = command_spec[1] if len(command_spec) > 1 else None
    restrict: Restrict | None
    if isinstance(name_spec, Mapping):
        ((name, restrict),) = name_spec.items()
    else:
        name, restrict = name_spec, None

    tuple_path = (*path, key)
    evaluator = InputEvaluator.build(tuple_path, nodes)
    lazy = Lazy.for_command(registry[relation][name], evaluator, restrict)

    if not nodes:
        return lazy
    if all(isinstance(node, list | tuple) for node in nodes):
        children = [_build_node(registry, node, tuple_path) for node in nodes]
    else:
        children = [_build_node(registry, nodes, tuple_path)]
    return lazy.combine(*children)
