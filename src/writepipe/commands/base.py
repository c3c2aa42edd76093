"""Command — abstract base for all data-mutation commands.

A command owns a dataset handle and a frozen :class:`CommandOptions` value.
Calling a command runs the before-hook pipeline, the abstract
:meth:`Command.execute`, then the after-hook pipeline, and shapes the result
by arity.

INVARIANT: Commands are immutable. ``curry``, ``before``, ``after`` and
``new`` return fresh commands; the original is never touched.

Typically command subclasses inherit from :class:`Create`, :class:`Update`
or :class:`Delete` (see :mod:`writepipe.commands.types`), not this one.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence, Sized
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar, cast

from pydantic import ValidationError

from writepipe.commands.hooks import (
    HookSpec,
    apply_hooks,
    coerce_hooks,
    collect_operations,
    hook_operation,
)
from writepipe.commands.options import CommandKind, CommandOptions, CommandType, ResultArity
from writepipe.errors import ConfigurationError, Unimplemented
from writepipe.telemetry import trace_span

if TYPE_CHECKING:
    from writepipe.commands.composite import Composite
    from writepipe.commands.graph import Graph
    from writepipe.commands.lazy import Lazy

logger = logging.getLogger(__name__)


class ComposedRelation(ABC):
    """A dataset that derives tuples by piping them through a relation chain.

    :meth:`Command.wrap_dataset` re-resolves tuples through such a relation
    before they reach the command.
    """

    @abstractmethod
    def new(self, dataset: Any) -> Iterable[Any]:
        """Return the relation rebound to *dataset*, iterable as tuples."""


class InputTuples:
    """Restartable, unevaluated view over command input tuples.

    A single mapping is treated as a one-element collection. Each iteration
    starts from the beginning.
    """

    def __init__(self, tuples: Any) -> None:
        self._tuples = tuples

    def __iter__(self) -> Iterator[Any]:
        if isinstance(self._tuples, Mapping):
            yield self._tuples
        else:
            yield from self._tuples

    def __repr__(self) -> str:
        return f"InputTuples({self._tuples!r})"


class Command:
    """Abstract command with hooks, currying and composition.

    Parameters:
        dataset: Target data source handle. Held by reference, never copied.
        **options: Validated into :class:`CommandOptions`. ``source`` defaults
            to *dataset*; ``before``/``after`` default to the class-level
            ``default_before``/``default_after``.

    Raises:
        ConfigurationError: If any option is invalid (e.g. an unknown
            ``type`` or ``result``).
    """

    #: Command type fixed by the class (Create/Update/Delete set this).
    command_type: ClassVar[CommandType | None] = None
    #: Adapter identifier used by :func:`writepipe.commands.registry.build_command`.
    adapter: ClassVar[str | None] = None
    default_result: ClassVar[ResultArity] = ResultArity.MANY
    default_before: ClassVar[tuple[HookSpec, ...]] = ()
    default_after: ClassVar[tuple[HookSpec, ...]] = ()
    #: Hook operation name -> attribute name, rebuilt for every subclass.
    hook_operations: ClassVar[dict[str, str]] = {}

    kind: ClassVar[CommandKind] = CommandKind.PLAIN

    __slots__ = ("_dataset", "_options")

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.default_before = coerce_hooks(cls.default_before)
        cls.default_after = coerce_hooks(cls.default_after)
        cls.hook_operations = collect_operations(cls)

    def __init__(self, dataset: Any, **options: Any) -> None:
        options.setdefault("source", dataset)
        options.setdefault("type", self.command_type)
        options.setdefault("result", self.default_result)
        options.setdefault("before", self.default_before)
        options.setdefault("after", self.default_after)
        try:
            validated = CommandOptions(**options)
        except ValidationError as exc:
            msg = f"Invalid options for {type(self).__name__}: {exc}"
            raise ConfigurationError(msg) from exc
        self._dataset = dataset
        self._options = validated

    @classmethod
    def build(cls, dataset: Any, **options: Any) -> Command:
        """Construct a command of this class (factory entry point)."""
        return cls(dataset, **options)

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    @property
    def dataset(self) -> Any:
        return self._dataset

    @property
    def options(self) -> CommandOptions:
        return self._options

    @property
    def source(self) -> Any:
        return self._options.source

    @property
    def schema(self) -> Any:
        return self._options.schema_

    @property
    def type(self) -> CommandType | None:
        return self._options.type

    @property
    def result(self) -> ResultArity:
        return self._options.result

    @property
    def input(self) -> Callable[[Any], Any]:
        return self._options.input

    @property
    def curry_args(self) -> tuple[Any, ...]:
        return self._options.curry_args

    @property
    def before_hooks(self) -> tuple[HookSpec, ...]:
        return self._options.before

    @property
    def after_hooks(self) -> tuple[HookSpec, ...]:
        return self._options.after

    @property
    def name(self) -> str | None:
        return self._options.name

    @property
    def gateway(self) -> str | None:
        return self._options.gateway

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    @property
    def is_curried(self) -> bool:
        return bool(self.curry_args)

    @property
    def has_hooks(self) -> bool:
        return bool(self.before_hooks) or bool(self.after_hooks)

    @property
    def is_one(self) -> bool:
        return self.result is ResultArity.ONE

    @property
    def is_many(self) -> bool:
        return self.result is ResultArity.MANY

    @property
    def is_lazy(self) -> bool:
        return False

    @property
    def is_graph(self) -> bool:
        return False

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, *args: Any) -> Any:
        """Perform the persistence operation and return the written tuples.

        Concrete adapters override this.
        """
        msg = f"{type(self).__name__}.execute must be implemented"
        raise Unimplemented(msg)

    def call(self, *args: Any) -> Any:
        """Call the command and return one or many tuples.

        Before/after hooks are applied automatically when configured.
        """
        with trace_span(f"{type(self).__name__}.call") as span:
            if self.has_hooks:
                tuples = self._call_with_hooks(args)
            else:
                tuples = self.execute(*self.curry_args, *args)

            shaped = self._shape(tuples)
            if span is not None:
                span.annotate("type", str(self.type))
                span.annotate("result", str(self.result))
                if self.is_many and isinstance(tuples, Sized):
                    span.annotate("count", len(tuples))
            logger.debug(
                "Called %s (type=%s, result=%s, curried=%s)",
                type(self).__name__,
                self.type,
                self.result,
                self.is_curried,
            )
            return shaped

    def __call__(self, *args: Any) -> Any:
        return self.call(*args)

    def __getitem__(self, args: Any) -> Any:
        if isinstance(args, tuple):
            return self.call(*args)
        return self.call(args)

    def _call_with_hooks(self, args: tuple[Any, ...]) -> Any:
        if self.is_curried:
            prepared = self._apply_before(*self.curry_args, *args)
        else:
            prepared = self._apply_before(*args)

        if _is_blank(prepared):
            result = self.execute()
        else:
            result = self.execute(prepared)

        return apply_hooks(self, self.after_hooks, result, *self._after_hook_args(args))

    def _apply_before(self, *values: Any) -> Any:
        if not values:
            return apply_hooks(self, self.before_hooks, None)
        first, *rest = values
        return apply_hooks(self, self.before_hooks, first, *rest)

    def _after_hook_args(self, args: tuple[Any, ...]) -> tuple[Any, ...]:
        if not self.is_curried:
            return args[1:]
        if args:
            return args[1:]
        if len(self.curry_args) > 1:
            return (self.curry_args[1],)
        return ()

    def _shape(self, tuples: Any) -> Any:
        if self.is_many:
            return tuples
        return first_tuple(tuples)

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def _derive(self, dataset: Any, **overrides: Any) -> Command:
        kwargs = self._options.to_kwargs()
        kwargs.update(overrides)
        return type(self).build(dataset, **kwargs)

    def curry(self, *args: Any) -> Command | Lazy:
        """Curry this command with *args*.

        If the command is not curried yet and the first argument is a graph
        :class:`~writepipe.commands.graph.InputEvaluator`, a lazy command is
        returned instead; it resolves nested input when a graph calls it.
        """
        from writepipe.commands.graph import InputEvaluator
        from writepipe.commands.lazy import Lazy

        if not self.curry_args and args and isinstance(args[0], InputEvaluator):
            return Lazy.for_command(self, *args)
        return self._derive(self._dataset, curry_args=args)

    def combine(self, *others: Any) -> Graph:
        """Compose this command with dependent commands into a graph."""
        from writepipe.commands.graph import Graph

        return Graph(self, others)

    def __rshift__(self, other: Any) -> Composite:
        from writepipe.commands.composite import Composite

        return Composite(self, other)

    def before(self, *hooks: Any) -> Command:
        """Return a new command with *hooks* appended to the before hooks."""
        return self._derive(self._dataset, before=self.before_hooks + coerce_hooks(hooks))

    def after(self, *hooks: Any) -> Command:
        """Return a new command with *hooks* appended to the after hooks."""
        return self._derive(self._dataset, after=self.after_hooks + coerce_hooks(hooks))

    def new(self, dataset: Any) -> Command:
        """Return a new command bound to *dataset*, remembering the current one as source.

        This is how a command is restricted to a narrower dataset.
        """
        return self._derive(dataset, source=self._dataset)

    # ------------------------------------------------------------------
    # Input helpers
    # ------------------------------------------------------------------

    def map_input_tuples(
        self,
        tuples: Any,
        mapper: Callable[[Any], Any] | None = None,
    ) -> Any:
        """Apply *mapper* to input tuples, or return a lazy view without one.

        A mapping is mapped as a whole; any other collection is mapped
        element-wise, preserving order.
        """
        if mapper is None:
            return InputTuples(tuples)
        if isinstance(tuples, Mapping):
            return mapper(tuples)
        return [mapper(t) for t in tuples]

    def wrap_dataset(self, tuples: Any) -> Any:
        """Pipe *tuples* through this command's dataset if it is a composed relation."""
        if isinstance(self._dataset, ComposedRelation):
            return list(self._dataset.new(tuples))
        return tuples

    # ------------------------------------------------------------------
    # Built-in hook operations
    # ------------------------------------------------------------------

    timestamp_fields: ClassVar[tuple[str, ...]] = ("created_at", "updated_at")

    @hook_operation
    def set_timestamps(
        self,
        tuples: Any,
        *args: Any,
        fields: Sequence[str] | None = None,
    ) -> Any:
        """Stamp each input tuple with the current UTC time."""
        if tuples is None:
            return None
        names = tuple(fields) if fields is not None else self.timestamp_fields
        now = datetime.now(UTC).isoformat()

        def stamp(t: Mapping[str, Any]) -> dict[str, Any]:
            return {**t, **dict.fromkeys(names, now)}

        return self.map_input_tuples(tuples, stamp)

    # ------------------------------------------------------------------
    # Equality
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        peer = cast(Command, other)
        return self._dataset == peer._dataset and self._options == peer._options

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(dataset={self._dataset!r}, "
            f"type={self.type}, result={self.result}, curry_args={self.curry_args!r})"
        )


def first_tuple(tuples: Any) -> Any:
    """Return the first tuple of *tuples*; mappings and scalars pass through."""
    if tuples is None or isinstance(tuples, Mapping | str | bytes):
        return tuples
    if isinstance(tuples, Sequence):
        return tuples[0] if tuples else None
    if isinstance(tuples, Iterable):
        return next(iter(tuples), None)
    return tuples


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, Sized) and not isinstance(value, str | bytes) and len(value) == 0


Command.hook_operations = collect_operations(Command)
