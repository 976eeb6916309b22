"""Query construction for arbor."""

from arbor.query.builder import QueryBuilder
from arbor.query.clauses import (
    BasicWhere,
    BetweenWhere,
    CompiledQuery,
    Delete,
    Having,
    Insert,
    InWhere,
    Join,
    JoinKind,
    NullWhere,
    Order,
    Select,
    Update,
)

__all__ = [
    "QueryBuilder",
    "CompiledQuery",
    "BasicWhere",
    "InWhere",
    "NullWhere",
    "BetweenWhere",
    "Join",
    "JoinKind",
    "Order",
    "Having",
    "Select",
    "Insert",
    "Update",
    "Delete",
]
