"""Tests for hook specs, the operation table and the hook pipeline."""

from __future__ import annotations

from typing import Any

import pytest
from pydantic import ValidationError

from tests.conftest import ExecLog, RecordingCommand
from writepipe.commands.hooks import (
    HOOK_OPERATIONS,
    ParameterizedHook,
    PlainHook,
    apply_hooks,
    coerce_hook,
    coerce_hooks,
    collect_operations,
    register_hook_operation,
    resolve_operation,
    unregister_hook_operation,
)
from writepipe.commands.types import Create, Delete, Update
from writepipe.errors import ConfigurationError, HookResolutionError


def _noop(command: Any, value: Any, *args: Any) -> Any:
    return value


class TestCoerceHook:
    def test_string_is_plain(self) -> None:
        assert coerce_hook("downcase") == PlainHook(name="downcase")

    def test_single_key_mapping_is_parameterized(self) -> None:
        hook = coerce_hook({"associate": {"key": "user_id"}})
        assert hook == ParameterizedHook(name="associate", arguments={"key": "user_id"})

    def test_tuple_is_parameterized(self) -> None:
        hook = coerce_hook(("associate", {"key": "user_id"}))
        assert isinstance(hook, ParameterizedHook)
        assert hook.arguments == {"key": "user_id"}

    def test_mapping_with_empty_arguments(self) -> None:
        assert coerce_hook({"touch": None}).arguments == {}

    def test_existing_spec_passes_through(self) -> None:
        hook = PlainHook(name="x")
        assert coerce_hook(hook) is hook

    def test_multi_key_mapping_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="exactly one"):
            coerce_hook({"a": {}, "b": {}})

    def test_unsupported_shape_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Unsupported hook spec"):
            coerce_hook(42)

    def test_hooks_are_frozen(self) -> None:
        hook = PlainHook(name="x")
        with pytest.raises(ValidationError):
            hook.name = "y"  # type: ignore[misc]


class TestCoerceHooks:
    def test_none_is_empty(self) -> None:
        assert coerce_hooks(None) == ()

    def test_single_spec_wrapped(self) -> None:
        assert coerce_hooks("a") == (PlainHook(name="a"),)
        assert coerce_hooks({"b": {"n": 1}}) == (ParameterizedHook(name="b", arguments={"n": 1}),)

    def test_list_preserves_order(self) -> None:
        hooks = coerce_hooks(["a", {"b": {}}, "c"])
        assert [h.name for h in hooks] == ["a", "b", "c"]


class TestOperationTable:
    def test_collects_decorated_methods(self) -> None:
        table = collect_operations(RecordingCommand)
        assert table["add_one"] == "add_one"
        assert table["nothing"] == "return_none"
        assert table["set_timestamps"] == "set_timestamps"

    def test_create_has_associate(self) -> None:
        assert "associate" in Create.hook_operations
        assert "associate" not in Update.hook_operations
        assert "associate" not in Delete.hook_operations

    def test_subclass_override_wins(self) -> None:
        class Custom(RecordingCommand):
            def add_one(self, value: Any, *args: Any) -> Any:
                return value + 100

        cmd = Custom(ExecLog())
        assert resolve_operation(cmd, "add_one")(1) == 101


@pytest.mark.usefixtures("_clean_hook_operations")
class TestRegisterHookOperation:
    def test_register_and_resolve(self) -> None:
        register_hook_operation("noop", _noop)
        assert HOOK_OPERATIONS["noop"] is _noop
        cmd = RecordingCommand(ExecLog())
        assert resolve_operation(cmd, "noop")("v") == "v"

    def test_name_is_stripped(self) -> None:
        register_hook_operation("  noop  ", _noop)
        assert "noop" in HOOK_OPERATIONS

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValueError, match="must not be empty"):
            register_hook_operation("  ", _noop)

    def test_non_callable_rejected(self) -> None:
        with pytest.raises(TypeError, match="must be callable"):
            register_hook_operation("bad", "not callable")  # type: ignore[arg-type]

    def test_conflicting_registration_rejected(self) -> None:
        register_hook_operation("noop", _noop)
        with pytest.raises(ValueError, match="already registered"):
            register_hook_operation("noop", lambda command, value: value)

    def test_reregistering_same_function_is_allowed(self) -> None:
        register_hook_operation("noop", _noop)
        register_hook_operation("noop", _noop)
        assert HOOK_OPERATIONS["noop"] is _noop

    def test_unregister(self) -> None:
        register_hook_operation("noop", _noop)
        unregister_hook_operation("noop")
        unregister_hook_operation("noop")
        assert "noop" not in HOOK_OPERATIONS

    def test_class_method_shadows_global(self) -> None:
        register_hook_operation("add_one", lambda command, value, *args: "global")
        cmd = RecordingCommand(ExecLog())
        assert resolve_operation(cmd, "add_one")(1) == 2

    def test_global_receives_arguments(self) -> None:
        received: dict[str, Any] = {}

        def capture(command: Any, value: Any, *args: Any, **kwargs: Any) -> Any:
            received.update(value=value, args=args, kwargs=kwargs)
            return value

        register_hook_operation("capture", capture)
        cmd = RecordingCommand(ExecLog())
        apply_hooks(cmd, coerce_hooks({"capture": {"flag": True}}), "v", "parent")
        assert received == {"value": "v", "args": ("parent",), "kwargs": {"flag": True}}


class TestApplyHooks:
    def test_left_fold(self) -> None:
        cmd = RecordingCommand(ExecLog())
        assert apply_hooks(cmd, coerce_hooks(["add_one", "double"]), 1) == 4
        assert apply_hooks(cmd, coerce_hooks(["double", "add_one"]), 1) == 3

    def test_no_hooks_returns_value(self) -> None:
        cmd = RecordingCommand(ExecLog())
        assert apply_hooks(cmd, (), "v") == "v"

    def test_each_hook_runs_once(self) -> None:
        log = ExecLog()
        cmd = RecordingCommand(log)
        apply_hooks(cmd, coerce_hooks(["capture_trailing", "capture_trailing"]), 1, "p")
        assert log.events == [("after", ("p",)), ("after", ("p",))]

    def test_unknown_operation(self) -> None:
        cmd = RecordingCommand(ExecLog())
        with pytest.raises(HookResolutionError, match="'nope' is not available on RecordingCommand"):
            apply_hooks(cmd, coerce_hooks(["nope"]), 1)

    def test_resolution_error_is_lookup_error(self) -> None:
        cmd = RecordingCommand(ExecLog())
        with pytest.raises(LookupError):
            apply_hooks(cmd, coerce_hooks(["nope"]), 1)
