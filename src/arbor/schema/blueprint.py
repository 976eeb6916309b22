"""
Table blueprints.

A blueprint is the in-memory description of a table's columns, indexes
and constraints. It renders to DDL through ``SchemaGrammar`` for a given
dialect profile.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Optional, Union

from arbor.exceptions import SchemaError
from arbor.schema.column import Column, ColumnParameters
from arbor.schema.commands import (
    REFERENTIAL_ACTIONS,
    Command,
    DropColumn,
    DropForeign,
    DropIndex,
    DropPrimary,
    ForeignKey,
    IndexDefinition,
    IndexKind,
    foreign_key_name,
    index_name,
)
from arbor.schema.grammar import SchemaGrammar
from arbor.types import ColumnType

if TYPE_CHECKING:
    from arbor.dialects.base import DialectProfile

Columns = Union[str, Iterable[str]]


class BlueprintMode(str, Enum):
    CREATE = "create"
    ALTER = "alter"


def _as_tuple(columns: Columns) -> tuple:
    if isinstance(columns, str):
        return (columns,)
    return tuple(columns)


class Blueprint:
    """Declarative description of one table.

    Example:
        >>> table = Blueprint("users")
        >>> table.id()
        >>> table.string("email").unique()
        >>> table.boolean("active").default(True)
        >>> table.timestamps()
        >>> table.to_statements(get_profile("mysql"))
    """

    def __init__(self, table: str, mode: Union[str, BlueprintMode] = BlueprintMode.CREATE) -> None:
        """Initialize the blueprint.

        Args:
            table: Table name
            mode: "create" for a new table, "alter" for an existing one
        """
        self.table = table
        self.mode = BlueprintMode(mode)
        self.columns: list[Column] = []
        self.indexes: list[IndexDefinition] = []
        self.commands: list[Command] = []

    @property
    def creating(self) -> bool:
        return self.mode is BlueprintMode.CREATE

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def add_column(self, name: str, type: ColumnType, **parameters: Any) -> Column:
        """Append a column and return it for chaining."""
        if any(column.name == name for column in self.columns):
            raise SchemaError(f"Column {name!r} is declared twice on {self.table!r}")
        column = Column(name, type, ColumnParameters(**parameters))
        self.columns.append(column)
        return column

    def id(self, name: str = "id") -> Column:
        """Unsigned auto-incrementing BIGINT primary key."""
        return self.big_increments(name)

    def big_increments(self, name: str) -> Column:
        return self.add_column(name, ColumnType.BIG_INTEGER).unsigned().auto_increment().primary()

    def increments(self, name: str) -> Column:
        return self.add_column(name, ColumnType.INTEGER).unsigned().auto_increment().primary()

    def string(self, name: str, length: int = 255) -> Column:
        return self.add_column(name, ColumnType.STRING, length=length)

    def char(self, name: str, length: int = 255) -> Column:
        return self.add_column(name, ColumnType.CHAR, length=length)

    def text(self, name: str) -> Column:
        return self.add_column(name, ColumnType.TEXT)

    def long_text(self, name: str) -> Column:
        return self.add_column(name, ColumnType.LONG_TEXT)

    def integer(self, name: str) -> Column:
        return self.add_column(name, ColumnType.INTEGER)

    def big_integer(self, name: str) -> Column:
        return self.add_column(name, ColumnType.BIG_INTEGER)

    def small_integer(self, name: str) -> Column:
        return self.add_column(name, ColumnType.SMALL_INTEGER)

    def tiny_integer(self, name: str) -> Column:
        return self.add_column(name, ColumnType.TINY_INTEGER)

    def boolean(self, name: str) -> Column:
        return self.add_column(name, ColumnType.BOOLEAN)

    def decimal(self, name: str, precision: int = 8, scale: int = 2) -> Column:
        return self.add_column(name, ColumnType.DECIMAL, precision=precision, scale=scale)

    def float(self, name: str, precision: int = 8, scale: int = 2) -> Column:
        return self.add_column(name, ColumnType.FLOAT, precision=precision, scale=scale)

    def double(self, name: str) -> Column:
        return self.add_column(name, ColumnType.DOUBLE)

    def date(self, name: str) -> Column:
        return self.add_column(name, ColumnType.DATE)

    def date_time(self, name: str) -> Column:
        return self.add_column(name, ColumnType.DATETIME)

    def timestamp(self, name: str) -> Column:
        return self.add_column(name, ColumnType.TIMESTAMP)

    def timestamps(self) -> None:
        """Add nullable ``created_at`` and ``updated_at`` timestamp columns."""
        self.timestamp("created_at").nullable()
        self.timestamp("updated_at").nullable()

    def json(self, name: str) -> Column:
        return self.add_column(name, ColumnType.JSON)

    def enum(self, name: str, values: Iterable[str]) -> Column:
        values = tuple(values)
        if not values:
            raise SchemaError(f"Enum column {name!r} needs at least one value")
        return self.add_column(name, ColumnType.ENUM, values=values)

    def foreign_id(self, name: str) -> Column:
        """Unsigned BIGINT matching the type of ``id()`` keys."""
        return self.add_column(name, ColumnType.BIG_INTEGER).unsigned()

    def uuid(self, name: str = "uuid") -> Column:
        return self.add_column(name, ColumnType.CHAR, length=36)

    def uuid_primary(self, name: str = "id") -> Column:
        return self.uuid(name).primary()

    # ------------------------------------------------------------------
    # Indexes
    # ------------------------------------------------------------------

    def primary(self, columns: Columns, name: Optional[str] = None) -> IndexDefinition:
        return self._add_index(IndexKind.PRIMARY, columns, name)

    def unique(self, columns: Columns, name: Optional[str] = None) -> IndexDefinition:
        return self._add_index(IndexKind.UNIQUE, columns, name)

    def index(self, columns: Columns, name: Optional[str] = None) -> IndexDefinition:
        return self._add_index(IndexKind.INDEX, columns, name)

    def _add_index(self, kind: IndexKind, columns: Columns, name: Optional[str]) -> IndexDefinition:
        columns = _as_tuple(columns)
        if not columns:
            raise SchemaError(f"{kind.value} index on {self.table!r} needs at least one column")
        if kind is IndexKind.PRIMARY and any(i.is_primary for i in self.indexes):
            raise SchemaError(f"Table {self.table!r} already declares a primary key")
        index = IndexDefinition(kind, name or index_name(self.table, columns, kind), columns)
        self.indexes.append(index)
        return index

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def foreign(
        self,
        columns: Columns,
        on: str,
        references: Columns = ("id",),
        on_delete: str = "restrict",
        on_update: str = "restrict",
        name: Optional[str] = None,
    ) -> ForeignKey:
        """Declare a foreign key.

        Args:
            columns: Local column(s)
            on: Referenced table
            references: Referenced column(s)
            on_delete: Referential action; "restrict" is left implicit
            on_update: Referential action; "restrict" is left implicit
            name: Constraint name, defaults to ``fk_{table}_{columns}``
        """
        columns = _as_tuple(columns)
        references = _as_tuple(references)
        if len(columns) != len(references):
            raise SchemaError(
                f"Foreign key on {self.table!r} maps {len(columns)} column(s) to {len(references)}"
            )
        actions = []
        for action in (on_delete, on_update):
            action = action.lower()
            if action not in REFERENTIAL_ACTIONS:
                raise SchemaError(f"Unknown referential action: {action!r}")
            actions.append(action)

        foreign = ForeignKey(
            name or foreign_key_name(self.table, columns),
            columns,
            on,
            references,
            actions[0],
            actions[1],
        )
        self.commands.append(foreign)
        return foreign

    def drop_column(self, *columns: str) -> None:
        self._require_alter("drop_column")
        for column in columns:
            self.commands.append(DropColumn(column))

    def drop_index(self, index: Columns) -> None:
        """Drop an index by name, or by the columns it was derived from."""
        self._require_alter("drop_index")
        if not isinstance(index, str):
            index = index_name(self.table, _as_tuple(index), IndexKind.INDEX)
        self.commands.append(DropIndex(index))

    def drop_unique(self, index: Columns) -> None:
        self._require_alter("drop_unique")
        if not isinstance(index, str):
            index = index_name(self.table, _as_tuple(index), IndexKind.UNIQUE)
        self.commands.append(DropIndex(index))

    def drop_primary(self) -> None:
        self._require_alter("drop_primary")
        self.commands.append(DropPrimary())

    def drop_foreign(self, foreign: Columns) -> None:
        """Drop a foreign key by name, or by its local columns."""
        self._require_alter("drop_foreign")
        if not isinstance(foreign, str):
            foreign = foreign_key_name(self.table, _as_tuple(foreign))
        self.commands.append(DropForeign(foreign))

    def _require_alter(self, operation: str) -> None:
        if self.creating:
            raise SchemaError(f"{operation}() is only valid when altering {self.table!r}")

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def to_statements(self, profile: "DialectProfile") -> list[str]:
        """Render every statement needed to apply this blueprint."""
        return SchemaGrammar(profile).compile(self)

    def to_sql(self, profile: "DialectProfile") -> str:
        """Render the single CREATE TABLE statement of a create-mode blueprint."""
        if not self.creating:
            raise SchemaError("to_sql() renders create-mode blueprints; use to_statements()")
        return SchemaGrammar(profile).compile_create_table(self)

    def __repr__(self) -> str:
        return f"<Blueprint {self.mode.value} {self.table!r} columns={len(self.columns)}>"
