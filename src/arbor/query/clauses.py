"""
Structured clause and intent values accumulated by the query builder.

Every variant is a frozen dataclass carrying only the fields it needs, so
rendering is a match over closed types instead of string-keyed dispatch.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

COMPARISON_OPERATORS = frozenset(
    {"=", "<", ">", "<=", ">=", "<>", "!=", "LIKE", "NOT LIKE", "ILIKE", "NOT ILIKE"}
)

BOOLEANS = frozenset({"AND", "OR"})


class JoinKind(str, Enum):
    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"


class Direction(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class BasicWhere:
    """``column operator ?``"""

    column: str
    operator: str
    value: Any
    boolean: str = "AND"

    @property
    def bindings(self) -> tuple:
        return (self.value,)


@dataclass(frozen=True)
class InWhere:
    """``column [NOT] IN (?, ...)``; an empty value list renders a constant predicate."""

    column: str
    values: tuple
    negated: bool = False
    boolean: str = "AND"

    @property
    def bindings(self) -> tuple:
        return self.values


@dataclass(frozen=True)
class NullWhere:
    """``column IS [NOT] NULL``"""

    column: str
    negated: bool = False
    boolean: str = "AND"

    @property
    def bindings(self) -> tuple:
        return ()


@dataclass(frozen=True)
class BetweenWhere:
    """``column [NOT] BETWEEN ? AND ?``"""

    column: str
    low: Any
    high: Any
    negated: bool = False
    boolean: str = "AND"

    @property
    def bindings(self) -> tuple:
        return (self.low, self.high)


WhereClause = Union[BasicWhere, InWhere, NullWhere, BetweenWhere]


@dataclass(frozen=True)
class Join:
    kind: JoinKind
    table: str
    first: str
    operator: str
    second: str


@dataclass(frozen=True)
class Order:
    column: str
    direction: Direction = Direction.ASC


@dataclass(frozen=True)
class Having:
    column: str
    operator: str
    value: Any
    boolean: str = "AND"


@dataclass(frozen=True)
class Select:
    columns: tuple = ("*",)


@dataclass(frozen=True)
class Insert:
    values: dict = field(default_factory=dict)
    returning: Optional[str] = None


@dataclass(frozen=True)
class Update:
    values: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Delete:
    pass


QueryIntent = Union[Select, Insert, Update, Delete]


@dataclass(frozen=True)
class CompiledQuery:
    """Rendered SQL text with its positional bindings."""

    sql: str
    bindings: list

    def __iter__(self):
        return iter((self.sql, self.bindings))
