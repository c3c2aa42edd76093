"""Dataset adapters — in-memory and SQLAlchemy Core collaborators.

Importing an adapter module registers its Create/Update/Delete commands
with :func:`writepipe.commands.registry.build_command`.
"""

from writepipe.datasets.memory import (
    MappedRelation,
    MemoryCreate,
    MemoryDataset,
    MemoryDelete,
    MemoryUpdate,
)
from writepipe.datasets.sql import Gateway, SqlCreate, SqlDataset, SqlDelete, SqlUpdate

__all__ = [
    "Gateway",
    "MappedRelation",
    "MemoryCreate",
    "MemoryDataset",
    "MemoryDelete",
    "MemoryUpdate",
    "SqlCreate",
    "SqlDataset",
    "SqlDelete",
    "SqlUpdate",
]
