"""writepipe — composable create/update/delete command pipelines.

Commands wrap a dataset with before/after hooks, currying, sequential
composition (``left >> right``) and graph composition for nested writes.
"""

from writepipe.commands import (
    Command,
    CommandKind,
    CommandRegistry,
    CommandType,
    Composite,
    Create,
    Delete,
    Graph,
    GraphResult,
    InputEvaluator,
    Lazy,
    ResultArity,
    Update,
    build_command,
    hook_operation,
    register_hook_operation,
)
from writepipe.errors import (
    ConfigurationError,
    ExecutionError,
    HookResolutionError,
    KeyMissing,
    Unimplemented,
    WritepipeError,
)

__version__ = "0.1.0"

__all__ = [
    "Command",
    "CommandKind",
    "CommandRegistry",
    "CommandType",
    "Composite",
    "ConfigurationError",
    "Create",
    "Delete",
    "ExecutionError",
    "Graph",
    "GraphResult",
    "HookResolutionError",
    "InputEvaluator",
    "KeyMissing",
    "Lazy",
    "ResultArity",
    "Unimplemented",
    "Update",
    "WritepipeError",
    "build_command",
    "hook_operation",
    "register_hook_operation",
]
