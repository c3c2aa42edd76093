"""Command layer — commands, hooks, composition, graphs and lazy commands.

This layer depends only on stdlib, pydantic and :mod:`writepipe.telemetry`.
It must never import from datasets, plugins, or config.
"""

from writepipe.commands.base import Command, ComposedRelation, InputTuples
from writepipe.commands.composite import Composite, is_command
from writepipe.commands.graph import Graph, GraphResult, InputEvaluator
from writepipe.commands.hooks import (
    ParameterizedHook,
    PlainHook,
    hook_operation,
    register_hook_operation,
)
from writepipe.commands.lazy import Lazy, LazyCreate, LazyDelete, LazyUpdate
from writepipe.commands.options import CommandKind, CommandOptions, CommandType, ResultArity
from writepipe.commands.registry import CommandRegistry, build_command, register_adapter
from writepipe.commands.types import Create, Delete, Update

__all__ = [
    "Command",
    "CommandKind",
    "CommandOptions",
    "CommandRegistry",
    "CommandType",
    "ComposedRelation",
    "Composite",
    "Create",
    "Delete",
    "Graph",
    "GraphResult",
    "InputEvaluator",
    "InputTuples",
    "Lazy",
    "LazyCreate",
    "LazyDelete",
    "LazyUpdate",
    "ParameterizedHook",
    "PlainHook",
    "ResultArity",
    "Update",
    "build_command",
    "hook_operation",
    "is_command",
    "register_adapter",
    "register_hook_operation",
]
