"""Locate ``writepipe.toml``.

``WRITEPIPE_CONFIG`` names the file explicitly. Otherwise the search starts
at a directory (the working directory by default) and climbs towards the
filesystem root, stopping at the first match.
"""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILENAME = "writepipe.toml"
CONFIG_ENV_VAR = "WRITEPIPE_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    """Return the config file governing *start*, or None.

    An env override pointing at a missing file yields None; the directory
    search is not attempted in that case.
    """
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        path = Path(override)
        return path if path.is_file() else None

    origin = (start or Path.cwd()).resolve()
    for directory in (origin, *origin.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None
