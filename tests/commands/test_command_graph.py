"""Tests for Graph, GraphResult and InputEvaluator."""

from __future__ import annotations

from typing import Any

import pytest

from tests.conftest import ExecLog, RecordingCommand
from writepipe.commands.graph import Graph, GraphResult, InputEvaluator, extract_excluded_keys
from writepipe.commands.options import CommandKind
from writepipe.datasets.memory import MemoryCreate, MemoryDataset
from writepipe.errors import KeyMissing

NESTED_INPUT: dict[str, Any] = {
    "user": {
        "name": "Jane",
        "tasks": [{"title": "write tests"}, {"title": "ship it"}],
    }
}


def _recording(name: str, events: list[Any], **kwargs: Any) -> RecordingCommand:
    return RecordingCommand(ExecLog(name, events=events, **kwargs))


class TestGraphCall:
    def test_root_then_dependents_in_order(self) -> None:
        events: list[Any] = []
        root = _recording("root", events, returns=[{"id": 1}])
        graph = root.combine(_recording("first", events), _recording("second", events))

        graph.call("input")

        assert events == ["root", "first", "second"]

    def test_dependents_receive_root_result(self) -> None:
        events: list[Any] = []
        root = _recording("root", events, returns=[{"id": 1}])
        dep = _recording("dep", events)

        root.combine(dep).call("input")

        assert root.dataset.calls == [("input",)]
        assert dep.dataset.calls == [([{"id": 1}],)]

    def test_returns_graph_result(self) -> None:
        events: list[Any] = []
        root = RecordingCommand(ExecLog("root", events=events, returns={"id": 1}), result="one")
        graph = root.combine(_recording("a", events, returns=["a"]), _recording("b", events))

        result = graph.call()

        assert isinstance(result, GraphResult)
        left, right = result
        assert left == {"id": 1}
        assert right == [["a"], [{"id": 1}]]
        assert result.root is left
        assert events == ["root", "a", "b"]

    def test_root_failure_skips_dependents(self) -> None:
        events: list[Any] = []
        root = _recording("root", events, fail=RuntimeError("root failed"))
        graph = root.combine(_recording("dep", events))

        with pytest.raises(RuntimeError, match="root failed"):
            graph.call()
        assert events == ["root"]

    def test_dependent_failure_keeps_earlier_writes(self, users: MemoryDataset) -> None:
        events: list[Any] = []
        failing = _recording("dep", events, fail=RuntimeError("dep failed"))
        graph = MemoryCreate(users).combine(failing)

        with pytest.raises(RuntimeError, match="dep failed"):
            graph.call({"name": "Jane"})
        assert users.to_list() == [{"name": "Jane", "id": 1}]

    def test_lazy_dependent_receives_input_and_parent(
        self, users: MemoryDataset, tasks: MemoryDataset
    ) -> None:
        create_user = MemoryCreate(users, result="one").curry(
            InputEvaluator(("user",), excluded_keys=["tasks"])
        )
        create_tasks = (
            MemoryCreate(tasks)
            .before(("associate", {"key": "user_id"}))
            .curry(InputEvaluator(("user", "tasks")))
        )

        user, (created_tasks,) = create_user.combine(create_tasks).call(NESTED_INPUT)

        assert user == {"name": "Jane", "id": 1}
        assert created_tasks == [
            {"title": "write tests", "user_id": 1, "id": 1},
            {"title": "ship it", "user_id": 1, "id": 2},
        ]

    def test_nested_graph_with_lazy_root(
        self, users: MemoryDataset, tasks: MemoryDataset
    ) -> None:
        events: list[Any] = []
        create_tasks = MemoryCreate(tasks).before(("associate", {"key": "user_id"}))
        inner = create_tasks.curry(InputEvaluator(("user", "tasks"))).combine(
            _recording("after_tasks", events)
        )
        root = MemoryCreate(users, result="one").curry(InputEvaluator(("user",), ["tasks"]))

        _, (inner_result,) = root.combine(inner).call(NESTED_INPUT)

        assert inner.is_lazy
        assert len(inner_result.root) == 2
        assert events == ["after_tasks"]

    def test_call_aliases(self) -> None:
        events: list[Any] = []
        graph = _recording("root", events).combine()
        assert graph(1).root == [1]
        assert graph[2, 3].root == [2, 3]


class TestGraphAttributes:
    def test_predicates_follow_root(self, exec_log: ExecLog) -> None:
        graph = RecordingCommand(exec_log, result="one").combine()
        assert graph.is_graph
        assert graph.is_one
        assert not graph.is_many
        assert not graph.is_lazy
        assert graph.kind is CommandKind.GRAPH

    def test_lazy_root_makes_lazy_graph(self, users: MemoryDataset) -> None:
        lazy = MemoryCreate(users).curry(InputEvaluator(("user",)))
        assert lazy.combine().is_lazy

    def test_combine_appends(self, exec_log: ExecLog) -> None:
        a, b, c = RecordingCommand(exec_log), RecordingCommand(ExecLog()), RecordingCommand(ExecLog())
        graph = a.combine(b)
        extended = graph.combine(c)
        assert isinstance(extended, Graph)
        assert extended.nodes == (b, c)
        assert graph.nodes == (b,)

    def test_rshift_builds_composite(self, exec_log: ExecLog) -> None:
        composite = RecordingCommand(exec_log).combine() >> len
        assert composite.kind is CommandKind.COMPOSITE


class TestInputEvaluator:
    def test_walks_path(self) -> None:
        evaluator = InputEvaluator(("user", "tasks"))
        assert evaluator(NESTED_INPUT) == NESTED_INPUT["user"]["tasks"]

    def test_excludes_keys_from_mapping(self) -> None:
        evaluator = InputEvaluator(("user",), excluded_keys=["tasks"])
        assert evaluator(NESTED_INPUT) == {"name": "Jane"}
        assert "tasks" in NESTED_INPUT["user"]

    def test_excludes_keys_from_collection(self) -> None:
        data = {"users": [{"name": "a", "tasks": []}, {"name": "b", "tasks": []}]}
        evaluator = InputEvaluator(("users",), excluded_keys=["tasks"])
        assert evaluator(data) == [{"name": "a"}, {"name": "b"}]

    def test_indexed_lookup(self) -> None:
        data = {"users": [{"tasks": [{"title": "a"}]}, {"tasks": [{"title": "b"}]}]}
        evaluator = InputEvaluator(("users", "tasks"))
        assert evaluator(data, 1) == [{"title": "b"}]
        assert evaluator(data, 0) == [{"title": "a"}]

    def test_missing_key(self) -> None:
        evaluator = InputEvaluator(("user", "notes"))
        with pytest.raises(KeyMissing, match="user"):
            evaluator(NESTED_INPUT)

    def test_missing_key_is_key_error(self) -> None:
        with pytest.raises(KeyError):
            InputEvaluator(("account",))(NESTED_INPUT)

    def test_missing_index(self) -> None:
        data = {"users": [{"tasks": []}]}
        with pytest.raises(KeyMissing):
            InputEvaluator(("users", "tasks"))(data, 3)

    def test_build_excludes_nested_node_keys(self) -> None:
        evaluator = InputEvaluator.build(("user",), ["tasks", ["create"]])
        assert evaluator.excluded_keys == frozenset({"tasks"})

    def test_build_without_nodes(self) -> None:
        assert InputEvaluator.build(("user",)).excluded_keys is None

    def test_equality(self) -> None:
        assert InputEvaluator(("a",), ["b"]) == InputEvaluator(["a"], ("b",))
        assert InputEvaluator(("a",)) != InputEvaluator(("a",), ["b"])


class TestExtractExcludedKeys:
    def test_single_node(self) -> None:
        assert extract_excluded_keys(["tasks", ["create"]]) == ["tasks"]

    def test_node_list_with_alias(self) -> None:
        nodes = [["tasks", ["create"]], [{"notes": "memos"}, ["create"]]]
        assert extract_excluded_keys(nodes) == ["tasks", "notes"]

    def test_empty(self) -> None:
        assert extract_excluded_keys(None) is None
        assert extract_excluded_keys([]) is None
