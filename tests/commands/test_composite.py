"""Tests for Composite — sequential piping of commands and mappers."""

from __future__ import annotations

from typing import Any

import pytest

from tests.conftest import ExecLog, RecordingCommand
from writepipe.commands.composite import Composite, is_command
from writepipe.commands.graph import InputEvaluator
from writepipe.commands.options import CommandKind, ResultArity
from writepipe.datasets.memory import MemoryCreate, MemoryDataset


class TestCompositeCall:
    def test_left_output_feeds_right(self) -> None:
        left = RecordingCommand(ExecLog("left", returns=[1, 2]))
        right_log = ExecLog("right")
        right = RecordingCommand(right_log)

        result = (left >> right).call("in")

        assert left.dataset.calls == [("in",)]
        assert right_log.calls == [([1, 2],)]
        assert result == [[1, 2]]

    def test_runs_left_then_right(self) -> None:
        events: list[Any] = []
        left = RecordingCommand(ExecLog("left", events=events))
        right = RecordingCommand(ExecLog("right", events=events))
        (left >> right).call(1)
        assert events == ["left", "right"]

    def test_mapper_receives_many(self, users: MemoryDataset) -> None:
        composite = MemoryCreate(users) >> len
        assert composite.call([{"name": "a"}, {"name": "b"}]) == 2

    def test_mapper_with_one_result(self, users: MemoryDataset) -> None:
        def upper_names(rows: list[dict[str, Any]]) -> list[str]:
            return [row["name"].upper() for row in rows]

        composite = MemoryCreate(users, result="one") >> upper_names
        assert composite.call({"name": "jane"}) == "JANE"

    def test_right_dataset_wraps_input(self, users: MemoryDataset, tasks: MemoryDataset) -> None:
        def todo_for(user: dict[str, Any]) -> dict[str, Any]:
            return {"title": f"welcome {user['name']}", "user_id": user["id"]}

        pipeline = MemoryCreate(users) >> MemoryCreate(tasks.map_with(todo_for))
        created = pipeline.call([{"name": "a"}, {"name": "b"}])

        assert created == [
            {"title": "welcome a", "user_id": 1, "id": 1},
            {"title": "welcome b", "user_id": 2, "id": 2},
        ]
        assert tasks.to_list() == created

    def test_left_failure_skips_right(self) -> None:
        right_log = ExecLog("right")
        left = RecordingCommand(ExecLog("left", fail=RuntimeError("left failed")))
        with pytest.raises(RuntimeError, match="left failed"):
            (left >> RecordingCommand(right_log)).call(1)
        assert right_log.calls == []

    def test_right_failure_propagates(self) -> None:
        left = RecordingCommand(ExecLog("left"))
        right = RecordingCommand(ExecLog("right", fail=RuntimeError("right failed")))
        with pytest.raises(RuntimeError, match="right failed"):
            (left >> right)[1]

    def test_chaining(self) -> None:
        a = RecordingCommand(ExecLog("a", returns=3))
        composite = a >> (lambda v: v + 1) >> (lambda v: v * 10)
        assert isinstance(composite, Composite)
        assert isinstance(composite.left, Composite)
        assert composite() == 40

    def test_graph_left_passes_result_unchanged(self) -> None:
        root = RecordingCommand(ExecLog("root", returns={"id": 1}), result="one")
        dep = RecordingCommand(ExecLog("dep", returns=["child"]))
        composite = root.combine(dep) >> (lambda result: result.dependents)
        assert composite.is_graph
        assert composite.call() == [["child"]]


class TestCompositeAttributes:
    def test_result_follows_left(self, exec_log: ExecLog) -> None:
        composite = RecordingCommand(exec_log, result="one") >> RecordingCommand(ExecLog())
        assert composite.result is ResultArity.ONE
        assert composite.is_one
        assert not composite.is_many
        assert not composite.is_lazy
        assert not composite.is_graph
        assert composite.kind is CommandKind.COMPOSITE

    def test_wrap_dataset_delegates_left(self, users: MemoryDataset) -> None:
        left = MemoryCreate(users.map_with(lambda t: {**t, "x": 1}))
        composite = left >> len
        assert composite.wrap_dataset([{}]) == [{"x": 1}]

    def test_is_command(self, users: MemoryDataset) -> None:
        cmd = MemoryCreate(users)
        assert is_command(cmd)
        assert is_command(cmd >> len)
        assert is_command(cmd.combine())
        assert is_command(cmd.curry(InputEvaluator(("user",))))
        assert not is_command(len)
        assert not is_command({"kind": "plain"})
