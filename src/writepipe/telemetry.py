"""Telemetry for command execution — spans recorded per call.

Recording is off unless a caller opens :func:`capture_spans`; while off,
instrumented code pays one ``ContextVar.get`` per call. While on, every
``Command.call``, ``Composite.call`` and ``Graph.call`` adds a child span
to the current one, so a graph write yields a tree mirroring its
execution order.
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

import structlog

_enabled: ContextVar[bool] = ContextVar("writepipe_telemetry_enabled", default=False)
_current_span: ContextVar[Span | None] = ContextVar("writepipe_current_span", default=None)


@dataclass
class Span:
    """One timed unit of work; ``ok`` stays None until the span ends."""

    name: str
    parent: Span | None = None
    children: list[Span] = field(default_factory=list)
    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None
    ok: bool | None = None
    annotations: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time) * 1000

    def end(self, *, ok: bool = True) -> None:
        self.end_time = time.perf_counter()
        self.ok = ok
        structlog.get_logger("writepipe.telemetry").debug(
            "span.complete",
            span_name=self.name,
            duration_ms=round(self.duration_ms, 2),
            ok=ok,
            children=len(self.children),
        )

    def annotate(self, key: str, value: Any) -> None:
        self.annotations[key] = value

    def to_dict(self) -> dict[str, Any]:
        """Serialize the span tree; empty sections are omitted."""
        data: dict[str, Any] = {"name": self.name, "duration_ms": round(self.duration_ms, 2)}
        optional = {
            "ok": self.ok,
            "annotations": self.annotations or None,
            "children": [child.to_dict() for child in self.children] or None,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data


@contextmanager
def trace_span(name: str) -> Generator[Span | None]:
    """Record *name* as a child of the current span.

    Yields None when recording is off or no :func:`capture_spans` block is
    active. If the body raises, the span ends with ``ok=False`` and the
    exception propagates.
    """
    parent = _current_span.get() if _enabled.get() else None
    if parent is None:
        yield None
        return

    span = Span(name=name, parent=parent)
    parent.children.append(span)
    token = _current_span.set(span)
    ok = False
    try:
        yield span
        ok = True
    finally:
        _current_span.reset(token)
        span.end(ok=ok)


@contextmanager
def capture_spans(name: str = "writepipe") -> Generator[Span]:
    """Turn recording on for the block and collect spans under a root.

    Usage::

        with capture_spans() as root:
            graph.call(payload)
        print(root.to_dict())
    """
    root = Span(name=name)
    enabled_token = _enabled.set(True)
    span_token = _current_span.set(root)
    ok = False
    try:
        yield root
        ok = True
    finally:
        _current_span.reset(span_token)
        _enabled.reset(enabled_token)
        root.end(ok=ok)


def telemetry_enabled() -> bool:
    """Whether spans are currently being recorded."""
    return _enabled.get()


def get_current_span() -> Span | None:
    """Return the innermost open span, for manual annotation."""
    return _current_span.get() if _enabled.get() else None
