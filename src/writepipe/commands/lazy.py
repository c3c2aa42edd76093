"""Lazy commands — defer a command until nested input is resolved.

A lazy command pairs a command with an :class:`InputEvaluator`. It is what
``Command.curry(evaluator)`` returns, and what the graph builder uses for
every node: a single top-level call can take a deeply nested mapping, and
each node pulls out its own fragment only when the enclosing graph runs it.

When the enclosing graph passes a collection of parent tuples, the
command runs once per parent and the results are concatenated.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, ClassVar

from writepipe.commands.base import Command
from writepipe.commands.graph import Graph, InputEvaluator
from writepipe.commands.options import CommandKind, CommandType, ResultArity
from writepipe.errors import Unimplemented

Restrict = Callable[..., Any]


def _unrestricted(command: Any, *_: Any) -> Any:
    return command


def _concat(responses: list[Any]) -> list[Any]:
    out: list[Any] = []
    for response in responses:
        if isinstance(response, list | tuple):
            out.extend(response)
        elif response is not None:
            out.append(response)
    return out


class Lazy:
    """Command paired with a deferred input evaluator.

    Parameters:
        command: The wrapped command.
        evaluator: Resolves this command's input from the nested input.
        restrict: ``restrict(command, parent, children) -> command`` used to
            narrow the command per parent tuple (e.g. ``command.new(...)``).
            Defaults to returning *command* unchanged.
    """

    kind: ClassVar[CommandKind] = CommandKind.LAZY

    def __init__(
        self,
        command: Command,
        evaluator: InputEvaluator,
        restrict: Restrict | None = None,
    ) -> None:
        self.command = command
        self.evaluator = evaluator
        self.restrict: Restrict = restrict or _unrestricted

    @staticmethod
    def for_command(
        command: Command,
        evaluator: InputEvaluator,
        restrict: Restrict | None = None,
    ) -> Lazy:
        """Return the lazy variant matching *command*'s type."""
        variant = _VARIANTS.get(command.type, Lazy) if command.type else Lazy
        return variant(command, evaluator, restrict)

    def call(self, *args: Any) -> Any:
        msg = f"{type(self).__name__}.call must be implemented"
        raise Unimplemented(msg)

    def __call__(self, *args: Any) -> Any:
        return self.call(*args)

    def __getitem__(self, args: Any) -> Any:
        if isinstance(args, tuple):
            return self.call(*args)
        return self.call(args)

    # ------------------------------------------------------------------
    # Composition and delegation
    # ------------------------------------------------------------------

    def combine(self, *others: Any) -> Graph:
        return Graph(self, others)

    def __rshift__(self, other: Any) -> Any:
        from writepipe.commands.composite import Composite

        return Composite(self, other)

    def unwrap(self) -> Command:
        return self.command

    def _rewrap(self, command: Command) -> Lazy:
        return type(self)(command, self.evaluator, self.restrict)

    def before(self, *hooks: Any) -> Lazy:
        return self._rewrap(self.command.before(*hooks))

    def after(self, *hooks: Any) -> Lazy:
        return self._rewrap(self.command.after(*hooks))

    def new(self, dataset: Any) -> Lazy:
        return self._rewrap(self.command.new(dataset))

    def wrap_dataset(self, tuples: Any) -> Any:
        return self.command.wrap_dataset(tuples)

    @property
    def result(self) -> ResultArity:
        return self.command.result

    @property
    def is_one(self) -> bool:
        return self.command.is_one

    @property
    def is_many(self) -> bool:
        return self.command.is_many

    @property
    def is_lazy(self) -> bool:
        return True

    @property
    def is_graph(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.command!r}, {self.evaluator!r})"


class LazyCreate(Lazy):
    """Evaluate nested input, then create children for each parent."""

    def call(self, *args: Any) -> Any:
        first, *rest = args
        if rest and isinstance(rest[-1], list | tuple):
            parents = rest[-1]
            responses = []
            for index, parent in enumerate(parents):
                children = self.evaluator(first, index)
                command = self.restrict(self.command, parent, children)
                responses.append(command.call(children, parent))
            return _concat(responses)

        return self.command.call(self.evaluator(first), *rest)


class LazyUpdate(Lazy):
    """Evaluate nested input, then update per parent tuple."""

    def call(self, *args: Any) -> Any:
        first, *rest = args
        data = self.evaluator(first)

        if rest and isinstance(rest[-1], list | tuple):
            parents = rest[-1]
            responses = []
            for index, item in enumerate(data):
                command = self.restrict(self.command, parents[index], item)
                responses.append(command.call(item, *rest))
            return _concat(responses)

        if rest:
            command = self.restrict(self.command, rest[-1], data)
        else:
            command = self.restrict(self.command, data)
        return command.call(data, *rest)


class LazyDelete(Lazy):
    """Delete per parent tuple, or evaluate nested input and delete once."""

    def call(self, *args: Any) -> Any:
        first, *rest = args
        if rest and isinstance(rest[-1], list | tuple):
            parents = rest[-1]
            responses = []
            for index, parent in enumerate(parents):
                children = self.evaluator(first, index)
                command = self.restrict(self.command, parent, children)
                responses.append(command.call(parent))
            return _concat(responses)

        return self.command.call(self.evaluator(first), *rest)


_VARIANTS: dict[CommandType, type[Lazy]] = {
    CommandType.CREATE: LazyCreate,
    CommandType.UPDATE: LazyUpdate,
    CommandType.DELETE: LazyDelete,
}
