"""Shared pytest fixtures and test helpers for writepipe tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import Column, ForeignKey, Integer, MetaData, Table, Text

from writepipe.commands.base import Command
from writepipe.commands.hooks import HOOK_OPERATIONS, hook_operation
from writepipe.datasets.memory import MemoryDataset
from writepipe.datasets.sql import Gateway, create_db_engine

# ---------------------------------------------------------------------------
# Recording collaborator
# ---------------------------------------------------------------------------


class ExecLog:
    """Dataset stand-in that records every execute call.

    *returns* is handed back from ``execute`` when set; otherwise execute
    echoes its positional arguments as a list. *events* may be shared
    between several logs to observe cross-command ordering.
    """

    def __init__(
        self,
        name: str = "log",
        *,
        returns: Any = None,
        events: list[str] | None = None,
        fail: Exception | None = None,
    ) -> None:
        self.name = name
        self.returns = returns
        self.events = events if events is not None else []
        self.fail = fail
        self.calls: list[tuple[Any, ...]] = []


class RecordingCommand(Command):
    """Plain command backed by an :class:`ExecLog`."""

    def execute(self, *args: Any) -> Any:
        log: ExecLog = self.dataset
        log.calls.append(args)
        log.events.append(log.name)
        if log.fail is not None:
            raise log.fail
        if log.returns is not None:
            return log.returns
        return list(args)

    @hook_operation
    def add_one(self, value: Any, *args: Any) -> Any:
        return value + 1

    @hook_operation
    def double(self, value: Any, *args: Any) -> Any:
        return value * 2

    @hook_operation
    def tag(self, value: Any, *args: Any, label: str = "tag") -> Any:
        return {"value": value, "label": label, "trailing": args}

    @hook_operation
    def capture_trailing(self, value: Any, *args: Any) -> Any:
        self.dataset.events.append(("after", args))
        return value

    @hook_operation(name="nothing")
    def return_none(self, value: Any, *args: Any) -> Any:
        return None


@pytest.fixture
def exec_log() -> ExecLog:
    return ExecLog()


@pytest.fixture
def _clean_hook_operations() -> Generator[None]:
    """Restore the global hook operation table after a test."""
    snapshot = dict(HOOK_OPERATIONS)
    yield
    HOOK_OPERATIONS.clear()
    HOOK_OPERATIONS.update(snapshot)


# ---------------------------------------------------------------------------
# Memory datasets
# ---------------------------------------------------------------------------


@pytest.fixture
def users() -> MemoryDataset:
    return MemoryDataset("users")


@pytest.fixture
def tasks() -> MemoryDataset:
    return MemoryDataset("tasks")


# ---------------------------------------------------------------------------
# SQL gateway
# ---------------------------------------------------------------------------


def build_metadata() -> MetaData:
    metadata = MetaData()
    Table(
        "users",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", Text, nullable=False),
        Column("email", Text),
        Column("created_at", Text),
        Column("updated_at", Text),
    )
    Table(
        "tasks",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("title", Text, nullable=False),
        Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
        Column("created_at", Text),
        Column("updated_at", Text),
    )
    return metadata


@pytest.fixture
def gateway(tmp_path: Path) -> Generator[Gateway]:
    """SQLite-backed gateway with ``users`` and ``tasks`` tables created."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'writepipe.db'}")
    metadata = build_metadata()
    metadata.create_all(engine)
    gw = Gateway(engine, metadata=metadata)
    try:
        yield gw
    finally:
        gw.close()
