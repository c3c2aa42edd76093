"""In-memory dataset adapter.

Rows are plain dicts held in a shared store. ``restrict(**criteria)``
returns a view over the same store, which is how update and delete
commands are narrowed (``command.new(dataset.restrict(id=1))``).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any, ClassVar

from writepipe.commands.base import ComposedRelation
from writepipe.commands.options import CommandType
from writepipe.commands.registry import register_adapter
from writepipe.commands.types import Create, Delete, Update
from writepipe.errors import ExecutionError

logger = logging.getLogger(__name__)


class _Store:
    def __init__(self, rows: Iterable[Mapping[str, Any]]) -> None:
        self.rows: list[dict[str, Any]] = [dict(r) for r in rows]


class MemoryDataset:
    """A named list-of-dicts relation with an integer primary key.

    Parameters:
        name: Relation name (used in logs and plugin events).
        primary_key: Column that identifies rows; generated when absent.
        rows: Initial rows.
    """

    def __init__(
        self,
        name: str,
        primary_key: str = "id",
        rows: Iterable[Mapping[str, Any]] | None = None,
    ) -> None:
        self.name = name
        self.primary_key = primary_key
        self.criteria: dict[str, Any] = {}
        self._store = _Store(rows or ())

    def restrict(self, **criteria: Any) -> MemoryDataset:
        """Return a view matching *criteria* on top of the current ones."""
        view = MemoryDataset.__new__(MemoryDataset)
        view.name = self.name
        view.primary_key = self.primary_key
        view.criteria = {**self.criteria, **criteria}
        view._store = self._store
        return view

    def by_pk(self, value: Any) -> MemoryDataset:
        return self.restrict(**{self.primary_key: value})

    def map_with(self, *mappers: Callable[[Any], Any]) -> MappedRelation:
        """Compose this dataset with tuple mappers (see :class:`MappedRelation`)."""
        return MappedRelation(self, mappers)

    def _matches(self, row: Mapping[str, Any]) -> bool:
        return all(row.get(k) == v for k, v in self.criteria.items())

    # ------------------------------------------------------------------
    # Persistence primitives
    # ------------------------------------------------------------------

    def insert(self, row: Mapping[str, Any]) -> dict[str, Any]:
        """Insert *row*, generating the primary key if missing.

        Raises:
            ExecutionError: If the primary key is already taken.
        """
        new_row = dict(row)
        pk = self.primary_key
        if new_row.get(pk) is None:
            new_row[pk] = self._next_id()
        elif any(r.get(pk) == new_row[pk] for r in self._store.rows):
            msg = f"Duplicate {pk}={new_row[pk]!r} in {self.name}"
            raise ExecutionError(msg)

        self._store.rows.append(new_row)
        logger.debug("Inserted into %s: %s=%r", self.name, pk, new_row[pk])
        return dict(new_row)

    def update(self, attributes: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Merge *attributes* into every matching row and return them.

        Raises:
            ExecutionError: If *attributes* would change a primary key.
        """
        pk = self.primary_key
        matching = [row for row in self._store.rows if self._matches(row)]
        if pk in attributes and any(row.get(pk) != attributes[pk] for row in matching):
            msg = f"Cannot change primary key {pk!r} in {self.name}"
            raise ExecutionError(msg)

        for row in matching:
            row.update(attributes)
        return [dict(row) for row in matching]

    def delete(self) -> list[dict[str, Any]]:
        """Remove every matching row and return the removed rows."""
        kept: list[dict[str, Any]] = []
        deleted: list[dict[str, Any]] = []
        for row in self._store.rows:
            (deleted if self._matches(row) else kept).append(row)
        self._store.rows[:] = kept
        return deleted

    def to_list(self) -> list[dict[str, Any]]:
        return [dict(r) for r in self._store.rows if self._matches(r)]

    def _next_id(self) -> int:
        pk = self.primary_key
        ids = [r[pk] for r in self._store.rows if isinstance(r.get(pk), int)]
        return max(ids, default=0) + 1

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter(self.to_list())

    def __len__(self) -> int:
        return len(self.to_list())

    def __repr__(self) -> str:
        return f"MemoryDataset({self.name!r}, criteria={self.criteria!r})"


class MappedRelation(ComposedRelation):
    """A dataset composed with tuple mappers.

    When it is the right-hand side of a composite, upstream output is piped
    through the mappers before the command sees it. Writes go to the
    underlying dataset.
    """

    def __init__(self, dataset: MemoryDataset, mappers: Iterable[Callable[[Any], Any]]) -> None:
        self.dataset = dataset
        self.mappers = tuple(mappers)

    @property
    def name(self) -> str:
        return self.dataset.name

    def new(self, dataset: Any) -> list[Any]:
        tuples = [dataset] if isinstance(dataset, Mapping) else list(dataset)
        for mapper in self.mappers:
            tuples = [mapper(t) for t in tuples]
        return tuples

    def insert(self, row: Mapping[str, Any]) -> dict[str, Any]:
        return self.dataset.insert(row)

    def update(self, attributes: Mapping[str, Any]) -> list[dict[str, Any]]:
        return self.dataset.update(attributes)

    def delete(self) -> list[dict[str, Any]]:
        return self.dataset.delete()

    def to_list(self) -> list[dict[str, Any]]:
        return self.dataset.to_list()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@register_adapter
class MemoryCreate(Create):
    """Insert input tuples into a :class:`MemoryDataset`."""

    adapter: ClassVar[str] = "memory"
    command_type: ClassVar[CommandType] = CommandType.CREATE

    def execute(self, tuples: Any = (), *_: Any) -> list[dict[str, Any]]:
        prepared = self.map_input_tuples(tuples, self.input)
        rows = [prepared] if isinstance(prepared, Mapping) else prepared
        return [self.dataset.insert(row) for row in rows]


@register_adapter
class MemoryUpdate(Update):
    """Update rows of a (restricted) :class:`MemoryDataset`."""

    adapter: ClassVar[str] = "memory"
    command_type: ClassVar[CommandType] = CommandType.UPDATE

    def execute(self, attributes: Any = None, *_: Any) -> list[dict[str, Any]]:
        if attributes is None:
            return []
        return self.dataset.update(self.prepare_attributes(attributes))


@register_adapter
class MemoryDelete(Delete):
    """Delete rows of a (restricted) :class:`MemoryDataset`."""

    adapter: ClassVar[str] = "memory"
    command_type: ClassVar[CommandType] = CommandType.DELETE

    def execute(self, *_: Any) -> list[dict[str, Any]]:
        return self.dataset.delete()
