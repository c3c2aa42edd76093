"""Composite — a sequential pipe of two commands.

``(left >> right).call(*args)`` calls *left*, passes its output across the
dataset boundary of *right* and calls *right* with it. The right side may
also be a plain callable (a mapper) that post-processes the output.

Failures of either stage propagate unchanged.
"""

from __future__ import annotations

from typing import Any, ClassVar

from writepipe.commands.base import ComposedRelation, first_tuple
from writepipe.commands.options import CommandKind, ResultArity
from writepipe.telemetry import trace_span

__all__ = ["ComposedRelation", "Composite", "is_command"]


def is_command(obj: Any) -> bool:
    """Whether *obj* is any command variant (plain, composite, graph or lazy)."""
    return isinstance(getattr(obj, "kind", None), CommandKind)


class Composite:
    """Left command piped into a right command or mapper."""

    kind: ClassVar[CommandKind] = CommandKind.COMPOSITE

    def __init__(self, left: Any, right: Any) -> None:
        self.left = left
        self.right = right

    def call(self, *args: Any) -> Any:
        with trace_span("Composite.call"):
            response = self.left.call(*args)

            if is_command(self.right):
                return self.right.call(self.right.wrap_dataset(response))

            if self.is_one and not self.is_graph:
                return first_tuple(self.right([response]))
            return self.right(response)

    def __call__(self, *args: Any) -> Any:
        return self.call(*args)

    def __getitem__(self, args: Any) -> Any:
        if isinstance(args, tuple):
            return self.call(*args)
        return self.call(args)

    def __rshift__(self, other: Any) -> Composite:
        return Composite(self, other)

    def wrap_dataset(self, tuples: Any) -> Any:
        return self.left.wrap_dataset(tuples)

    @property
    def result(self) -> ResultArity:
        return self.left.result

    @property
    def is_one(self) -> bool:
        return bool(self.left.is_one)

    @property
    def is_many(self) -> bool:
        return bool(self.left.is_many)

    @property
    def is_graph(self) -> bool:
        return bool(self.left.is_graph)

    @property
    def is_lazy(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"Composite({self.left!r} >> {self.right!r})"
