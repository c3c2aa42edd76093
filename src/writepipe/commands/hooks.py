"""Hook specifications and the hook pipeline.

A hook is a named operation applied around ``Command.execute``. Hooks are
stored as a tagged union (:class:`PlainHook` | :class:`ParameterizedHook`)
and resolved against an operation table at apply time:

1. Methods decorated with :func:`hook_operation` on the command class
   hierarchy.
2. Functions registered globally with :func:`register_hook_operation`
   (typically by plugins).

INVARIANT: Hooks run exactly once each, in list order. An unresolvable
operation raises :class:`HookResolutionError`; no hook failure is caught.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Literal, TypeVar

from pydantic import BaseModel, Field

from writepipe.errors import ConfigurationError, HookResolutionError

if TYPE_CHECKING:
    from writepipe.commands.base import Command

_F = TypeVar("_F", bound=Callable[..., Any])

_OPERATION_ATTR = "__writepipe_hook_operation__"


# ---------------------------------------------------------------------------
# Hook specs
# ---------------------------------------------------------------------------


class PlainHook(BaseModel):
    """A hook that invokes ``operation(value, *trailing)``."""

    model_config = {"frozen": True}

    kind: Literal["plain"] = "plain"
    name: str


class ParameterizedHook(BaseModel):
    """A hook that invokes ``operation(value, *trailing, **arguments)``."""

    model_config = {"frozen": True}

    kind: Literal["parameterized"] = "parameterized"
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


HookSpec = PlainHook | ParameterizedHook


def coerce_hook(raw: Any) -> HookSpec:
    """Normalize a raw hook spec into the tagged union.

    Accepted shapes: an existing spec, ``"name"``, ``{"name": {...}}`` or
    ``("name", {...})``.
    """
    if isinstance(raw, PlainHook | ParameterizedHook):
        return raw
    if isinstance(raw, str):
        return PlainHook(name=raw)
    if isinstance(raw, Mapping):
        if len(raw) != 1:
            msg = f"Parameterized hook must map exactly one operation, got {dict(raw)!r}"
            raise ConfigurationError(msg)
        ((name, arguments),) = raw.items()
        return ParameterizedHook(name=name, arguments=dict(arguments or {}))
    if isinstance(raw, tuple) and len(raw) == 2 and isinstance(raw[0], str):
        return ParameterizedHook(name=raw[0], arguments=dict(raw[1] or {}))
    msg = f"Unsupported hook spec: {raw!r}"
    raise ConfigurationError(msg)


def coerce_hooks(raw: Any) -> tuple[HookSpec, ...]:
    """Normalize a single spec or an iterable of specs into a tuple."""
    if raw is None:
        return ()
    if isinstance(raw, str | Mapping | PlainHook | ParameterizedHook):
        return (coerce_hook(raw),)
    return tuple(coerce_hook(item) for item in raw)


# ---------------------------------------------------------------------------
# Operation table
# ---------------------------------------------------------------------------

HOOK_OPERATIONS: dict[str, Callable[..., Any]] = {}


def hook_operation(func: _F | None = None, *, name: str | None = None) -> Any:
    """Mark a command method as a named hook operation.

    Usage::

        class CreateUser(MemoryCreate):
            @hook_operation
            def downcase_email(self, tuples, *args): ...
    """

    def decorate(f: _F) -> _F:
        setattr(f, _OPERATION_ATTR, name or f.__name__)
        return f

    if func is not None:
        return decorate(func)
    return decorate


def collect_operations(cls: type) -> dict[str, str]:
    """Build ``operation name -> attribute name`` for *cls* and its bases."""
    table: dict[str, str] = {}
    for klass in reversed(cls.__mro__):
        for attr, value in vars(klass).items():
            op_name = getattr(value, _OPERATION_ATTR, None)
            if op_name is not None:
                table[op_name] = attr
    return table


def register_hook_operation(name: str, func: Callable[..., Any]) -> None:
    """Register a global hook operation called as ``func(command, value, *args, **kw)``.

    Raises:
        ValueError: If *name* is empty or already bound to another function.
        TypeError: If *func* is not callable.
    """
    normalized = name.strip()
    if not normalized:
        msg = "Hook operation name must not be empty"
        raise ValueError(msg)
    if not callable(func):
        msg = f"Hook operation {normalized!r} must be callable"
        raise TypeError(msg)
    existing = HOOK_OPERATIONS.get(normalized)
    if existing is not None and existing is not func:
        msg = f"Hook operation {normalized!r} is already registered"
        raise ValueError(msg)
    HOOK_OPERATIONS[normalized] = func


def unregister_hook_operation(name: str) -> None:
    """Remove a global hook operation (no-op if absent)."""
    HOOK_OPERATIONS.pop(name, None)


def resolve_operation(command: Command, name: str) -> Callable[..., Any]:
    """Return a bound callable for hook operation *name* on *command*."""
    attr = type(command).hook_operations.get(name)
    if attr is not None:
        bound: Callable[..., Any] = getattr(command, attr)
        return bound

    func = HOOK_OPERATIONS.get(name)
    if func is None:
        raise HookResolutionError(name, command)

    def call_global(value: Any, *args: Any, **kwargs: Any) -> Any:
        return func(command, value, *args, **kwargs)

    return call_global


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def apply_hooks(
    command: Command,
    hooks: Sequence[HookSpec] | Iterable[HookSpec],
    value: Any,
    *args: Any,
) -> Any:
    """Fold *hooks* left-to-right over *value*, passing *args* to each hook."""
    acc = value
    for hook in hooks:
        operation = resolve_operation(command, hook.name)
        if isinstance(hook, ParameterizedHook):
            acc = operation(acc, *args, **hook.arguments)
        else:
            acc = operation(acc, *args)
    return acc
