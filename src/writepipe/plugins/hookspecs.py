"""Pluggy hook specifications for writepipe.

One lifecycle event fires after every successful SQL write. One setup-time
hook lets plugins contribute named hook operations to the command
operation table.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pluggy

hookspec = pluggy.HookspecMarker("writepipe")
hookimpl = pluggy.HookimplMarker("writepipe")


class WritepipeHookSpec:
    """Hook specifications for the writepipe plugin system."""

    @hookspec
    def post_execute(
        self,
        command_type: str,
        relation: str,
        count: int,
    ) -> None:
        """Called after a command wrote *count* tuples to *relation*."""

    @hookspec
    def register_hook_operations(self) -> dict[str, Callable[..., Any]] | None:
        """Return operation name -> ``func(command, value, *args, **kw)`` mappings."""
