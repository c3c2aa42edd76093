"""Exception taxonomy for writepipe.

INVARIANT: Errors are raised synchronously at the call site. The command
core never retries, recovers, or suppresses a failure. Dataset failures
propagate unchanged; adapters raise :class:`ExecutionError` themselves only for
writes they refuse before reaching the dataset, and the in-memory dataset for
key conflicts.
"""

from __future__ import annotations


class WritepipeError(Exception):
    """Base class for all writepipe errors."""


class Unimplemented(WritepipeError, NotImplementedError):
    """A command was executed without a concrete ``execute`` override."""


class ConfigurationError(WritepipeError, ValueError):
    """Command or settings construction received invalid options."""


class HookResolutionError(WritepipeError, LookupError):
    """A hook names an operation the command cannot resolve."""

    def __init__(self, operation: str, command: object) -> None:
        self.operation = operation
        super().__init__(
            f"Hook operation {operation!r} is not available on {type(command).__name__}"
        )


class ExecutionError(WritepipeError):
    """A dataset collaborator failed while executing a write."""


class KeyMissing(WritepipeError, KeyError):
    """A required key is absent from nested command input."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep plain messages readable.
        return str(self.args[0]) if self.args else ""
