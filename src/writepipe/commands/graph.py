"""Graph — a root command with dependent commands.

Graphs write associated data in one logical call: the root runs first and
its result is threaded into every dependent, in declaration order. A
dependent may be a plain command, a lazy command, or another graph.

Execution order:

1. ``left = root.call(*args)``
2. For each dependent: lazy dependents receive ``(args[0], left)`` so they
   can resolve their own slice of the nested input; others receive
   ``(left,)``.
3. Return ``GraphResult(root=left, dependents=[...])``.

INVARIANT: No dependent runs unless the root succeeded. Nothing is rolled
back here; transactions belong to the dataset collaborator.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, ClassVar, NamedTuple

from writepipe.commands.options import CommandKind, ResultArity
from writepipe.errors import KeyMissing
from writepipe.telemetry import trace_span

logger = logging.getLogger(__name__)


class GraphResult(NamedTuple):
    """Root result plus dependent results in declaration order."""

    root: Any
    dependents: list[Any]


class Graph:
    """Root command composed with dependent commands."""

    kind: ClassVar[CommandKind] = CommandKind.GRAPH

    def __init__(self, root: Any, nodes: Iterable[Any]) -> None:
        self.root = root
        self.nodes: tuple[Any, ...] = tuple(nodes)

    def call(self, *args: Any) -> GraphResult:
        with trace_span("Graph.call") as span:
            left = self.root.call(*args)

            nested_input = args[0] if args else None
            right: list[Any] = []
            for index, node in enumerate(self.nodes):
                logger.debug("Graph dependent %d: %r", index, node)
                if node.is_lazy:
                    right.append(node.call(nested_input, left))
                else:
                    right.append(node.call(left))

            if span is not None:
                span.annotate("dependents", len(self.nodes))
            return GraphResult(root=left, dependents=right)

    def __call__(self, *args: Any) -> GraphResult:
        return self.call(*args)

    def __getitem__(self, args: Any) -> GraphResult:
        if isinstance(args, tuple):
            return self.call(*args)
        return self.call(args)

    def combine(self, *others: Any) -> Graph:
        """Return a new graph with *others* appended to the dependents."""
        return Graph(self.root, (*self.nodes, *others))

    def __rshift__(self, other: Any) -> Any:
        from writepipe.commands.composite import Composite

        return Composite(self, other)

    def wrap_dataset(self, tuples: Any) -> Any:
        return self.root.wrap_dataset(tuples)

    @property
    def result(self) -> ResultArity:
        return self.root.result

    @property
    def is_one(self) -> bool:
        return bool(self.root.is_one)

    @property
    def is_many(self) -> bool:
        return bool(self.root.is_many)

    @property
    def is_graph(self) -> bool:
        return True

    @property
    def is_lazy(self) -> bool:
        return bool(self.root.is_lazy)

    def __repr__(self) -> str:
        return f"Graph(root={self.root!r}, nodes={list(self.nodes)!r})"


# ---------------------------------------------------------------------------
# Input evaluation
# ---------------------------------------------------------------------------


class InputEvaluator:
    """Resolve a command's slice of a nested input structure.

    Parameters:
        tuple_path: Keys leading from the top-level input to this command's
            tuples, e.g. ``("user", "tasks")``.
        excluded_keys: Keys naming nested dependents; stripped from the
            resolved tuple(s) so the command only sees its own attributes.

    Usage::

        evaluator = InputEvaluator(("user",), excluded_keys=["tasks"])
        evaluator({"user": {"name": "Jane", "tasks": [...]}})
        # => {"name": "Jane"}
    """

    def __init__(
        self,
        tuple_path: Sequence[Any],
        excluded_keys: Iterable[Any] | None = None,
    ) -> None:
        self.tuple_path: tuple[Any, ...] = tuple(tuple_path)
        self.excluded_keys: frozenset[Any] | None = (
            frozenset(excluded_keys) if excluded_keys is not None else None
        )

    @classmethod
    def build(cls, tuple_path: Sequence[Any], nodes: Any = None) -> InputEvaluator:
        """Build an evaluator, excluding the keys that *nodes* consume."""
        return cls(tuple_path, extract_excluded_keys(nodes))

    def __call__(self, data: Any, index: int | None = None) -> Any:
        try:
            if index is None:
                value = _fetch_path(data, self.tuple_path)
            else:
                collection = _fetch_path(data, self.tuple_path[:-1])
                value = collection[index][self.tuple_path[-1]]
        except (KeyError, IndexError, TypeError) as exc:
            msg = f"Missing input at {list(self.tuple_path)!r}: {exc}"
            raise KeyMissing(msg) from exc

        if not self.excluded_keys:
            return value
        if isinstance(value, Mapping):
            return self._exclude(value)
        return [self._exclude(item) for item in value]

    def _exclude(self, item: Mapping[Any, Any]) -> dict[Any, Any]:
        assert self.excluded_keys is not None
        return {k: v for k, v in item.items() if k not in self.excluded_keys}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InputEvaluator):
            return NotImplemented
        return (
            self.tuple_path == other.tuple_path and self.excluded_keys == other.excluded_keys
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"InputEvaluator({list(self.tuple_path)!r}, excluded={self.excluded_keys!r})"


def _fetch_path(data: Any, path: Sequence[Any]) -> Any:
    value = data
    for key in path:
        value = value[key]
    return value


def extract_excluded_keys(nodes: Any) -> list[Any] | None:
    """Return the input keys consumed by nested graph *nodes*.

    *nodes* is either a single node spec (``["tasks", ["create"]]``) or a
    list of node specs. Aliased keys (``{"tasks": "todo_items"}``) yield the
    input key.
    """
    if not nodes:
        return None

    keys: list[Any] = []
    for item in nodes:
        if isinstance(item, list | tuple) and len(item) > 1:
            item = item[0]
        if item is None:
            continue
        if isinstance(item, Mapping):
            item = next(iter(item))
        if isinstance(item, list | tuple):
            continue
        keys.append(item)
    return keys
