"""SQL dataset adapter on SQLAlchemy Core.

The :class:`Gateway` owns the engine and the transaction boundary. Every
:class:`SqlDataset` operation runs on the gateway's active connection when
one is bound by :meth:`Gateway.transaction`, so a whole graph write can be
made atomic by the caller::

    with gateway.transaction():
        graph.call({"user": {...}})

Outside a transaction each command execution commits on its own.

SQLAlchemy Core (not ORM) is used because commands deal in plain tuples;
identity maps and unit-of-work would only get in the way. Database errors
propagate unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Generator, Iterable, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, ClassVar

from sqlalchemy import (
    MetaData,
    Table,
    and_,
    create_engine,
    delete,
    event,
    insert,
    select,
    update,
)
from sqlalchemy.pool import StaticPool

from writepipe.commands.base import Command
from writepipe.commands.options import CommandType
from writepipe.commands.registry import build_command, register_adapter
from writepipe.commands.types import Create, Delete, Update
from writepipe.config.logging import log_context

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement, Connection
    from sqlalchemy.engine import Engine

    from writepipe.config.settings import CommandDefaults, WritepipeSettings
    from writepipe.plugins.manager import PluginManager

logger = logging.getLogger(__name__)


def create_db_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine; SQLite gets foreign keys and a shared in-memory pool."""
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo)

    kwargs: dict[str, Any] = {}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    engine = create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


class Gateway:
    """Engine owner and transaction coordinator for SQL datasets.

    Parameters:
        engine: SQLAlchemy engine.
        metadata: Table definitions; tables missing here are reflected.
        plugin_manager: Receives ``post_execute`` events when given.
        name: Gateway identifier stamped on commands built by :meth:`command`.
        command_defaults: Defaults applied by :meth:`command`.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        metadata: MetaData | None = None,
        plugin_manager: PluginManager | None = None,
        name: str = "default",
        command_defaults: CommandDefaults | None = None,
    ) -> None:
        self.engine = engine
        self.metadata = metadata if metadata is not None else MetaData()
        self.plugin_manager = plugin_manager
        self.name = name
        self.command_defaults = command_defaults
        self._conn: ContextVar[Connection | None] = ContextVar(
            f"writepipe_gateway_{id(self)}", default=None
        )

    @classmethod
    def from_settings(
        cls,
        settings: WritepipeSettings,
        *,
        metadata: MetaData | None = None,
    ) -> Gateway:
        """Build a gateway with engine and plugins configured from *settings*."""
        from writepipe.plugins.manager import PluginManager

        engine = create_db_engine(settings.database_url, echo=settings.echo)
        plugins = PluginManager()
        plugins.discover_and_load(local_dir=settings.plugins_dir)
        return cls(
            engine,
            metadata=metadata,
            plugin_manager=plugins,
            command_defaults=settings.commands,
        )

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._conn.get() is not None

    @contextmanager
    def transaction(self) -> Generator[Connection]:
        """Bind one connection for the block; commit on success, roll back on error.

        Nested calls join the outer transaction.
        """
        active = self._conn.get()
        if active is not None:
            yield active
            return

        with log_context(gateway=self.name), self.engine.begin() as conn:
            token = self._conn.set(conn)
            try:
                yield conn
            finally:
                self._conn.reset(token)

    # ------------------------------------------------------------------
    # Datasets and commands
    # ------------------------------------------------------------------

    def table(self, name: str) -> Table:
        table = self.metadata.tables.get(name)
        if table is None:
            table = Table(name, self.metadata, autoload_with=self.engine)
        return table

    def dataset(self, name: str) -> SqlDataset:
        return SqlDataset(self, self.table(name))

    def command(
        self,
        relation: str,
        command_type: CommandType | str,
        **options: Any,
    ) -> Command:
        """Build an SQL command for *relation* using the gateway defaults."""
        options.setdefault("gateway", self.name)
        options.setdefault("name", f"{relation}.{command_type}")
        defaults = self.command_defaults
        if defaults is not None:
            options.setdefault("result", defaults.result)
            if defaults.timestamps and command_type != CommandType.DELETE:
                options.setdefault("before", ("set_timestamps",))
        return build_command("sql", command_type, self.dataset(relation), **options)

    def dispatch(self, hook_name: str, **payload: Any) -> None:
        """Fire a plugin event. No-op without a plugin manager."""
        if self.plugin_manager is None:
            return
        self.plugin_manager.dispatch(hook_name, **payload)

    def close(self) -> None:
        self.engine.dispose()


class SqlDataset:
    """A table plus restriction criteria, bound to a gateway."""

    def __init__(
        self,
        gateway: Gateway,
        table: Table,
        criteria: Iterable[ColumnElement[bool]] = (),
    ) -> None:
        self.gateway = gateway
        self.table = table
        self.criteria: tuple[ColumnElement[bool], ...] = tuple(criteria)

    @property
    def name(self) -> str:
        return self.table.name

    def where(self, *clauses: ColumnElement[bool]) -> SqlDataset:
        return SqlDataset(self.gateway, self.table, (*self.criteria, *clauses))

    def restrict(self, **criteria: Any) -> SqlDataset:
        return self.where(*(self.table.c[key] == value for key, value in criteria.items()))

    def by_pk(self, value: Any) -> SqlDataset:
        (pk,) = self.table.primary_key.columns
        return self.where(pk == value)

    # ------------------------------------------------------------------
    # Persistence primitives
    # ------------------------------------------------------------------

    def insert(self, rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        stmt = insert(self.table).returning(*self.table.c)
        with self.gateway.transaction() as conn:
            return [dict(conn.execute(stmt.values(**row)).mappings().one()) for row in rows]

    def update(self, attributes: Mapping[str, Any]) -> list[dict[str, Any]]:
        stmt = update(self.table).where(*self.criteria).values(**attributes)
        with self.gateway.transaction() as conn:
            result = conn.execute(stmt.returning(*self.table.c))
            return [dict(row) for row in result.mappings()]

    def delete(self) -> list[dict[str, Any]]:
        stmt = delete(self.table).where(*self.criteria)
        with self.gateway.transaction() as conn:
            result = conn.execute(stmt.returning(*self.table.c))
            return [dict(row) for row in result.mappings()]

    def to_list(self) -> list[dict[str, Any]]:
        stmt = select(self.table).where(*self.criteria)
        with self.gateway.transaction() as conn:
            return [dict(row) for row in conn.execute(stmt).mappings()]

    def __iter__(self) -> Any:
        return iter(self.to_list())

    def _criteria_key(self) -> tuple[str, dict[str, Any]]:
        compiled = and_(True, *self.criteria).compile()
        return str(compiled), dict(compiled.params)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SqlDataset):
            return NotImplemented
        return (
            self.gateway is other.gateway
            and self.table is other.table
            and self._criteria_key() == other._criteria_key()
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"SqlDataset({self.name!r}, criteria={len(self.criteria)})"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class _SqlCommand(Command):
    adapter: ClassVar[str] = "sql"

    def _notify(self, written: list[dict[str, Any]]) -> list[dict[str, Any]]:
        self.dataset.gateway.dispatch(
            "post_execute",
            command_type=str(self.type),
            relation=self.dataset.name,
            count=len(written),
        )
        logger.debug("%s wrote %d tuple(s) to %s", self.type, len(written), self.dataset.name)
        return written


@register_adapter
class SqlCreate(_SqlCommand, Create):
    """Insert input tuples into a table."""

    command_type: ClassVar[CommandType] = CommandType.CREATE

    def execute(self, tuples: Any = (), *_: Any) -> list[dict[str, Any]]:
        prepared = self.map_input_tuples(tuples, self.input)
        rows = [prepared] if isinstance(prepared, Mapping) else list(prepared)
        return self._notify(self.dataset.insert(rows))


@register_adapter
class SqlUpdate(_SqlCommand, Update):
    """Update the rows matching the dataset's criteria."""

    command_type: ClassVar[CommandType] = CommandType.UPDATE

    def execute(self, attributes: Any = None, *_: Any) -> list[dict[str, Any]]:
        if attributes is None:
            return []
        return self._notify(self.dataset.update(self.prepare_attributes(attributes)))


@register_adapter
class SqlDelete(_SqlCommand, Delete):
    """Delete the rows matching the dataset's criteria."""

    command_type: ClassVar[CommandType] = CommandType.DELETE

    def execute(self, *_: Any) -> list[dict[str, Any]]:
        return self._notify(self.dataset.delete())
