"""
Fluent query builder.

Builder methods accumulate structured clauses; ``compile()`` renders them
into SQL text and the matching positional bindings in one pure step, so a
caller can never observe bindings that belong to a different render.
"""

import copy
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Iterable, Optional

from arbor.config import get_config
from arbor.dialects import get_profile
from arbor.exceptions import InvalidQueryError, QueryStateError
from arbor.query.clauses import (
    BOOLEANS,
    COMPARISON_OPERATORS,
    BasicWhere,
    BetweenWhere,
    CompiledQuery,
    Delete,
    Direction,
    Having,
    Insert,
    InWhere,
    Join,
    JoinKind,
    NullWhere,
    Order,
    QueryIntent,
    Select,
    Update,
    WhereClause,
)

if TYPE_CHECKING:
    from arbor.storage.executor import Executor

# Used when OFFSET is set without LIMIT; MySQL and SQLite reject a bare OFFSET.
_NO_LIMIT = 9223372036854775807

_MISSING = object()


class QueryBuilder:
    """Accumulates one query against one table.

    Example:
        >>> query = QueryBuilder(executor, "users").where("age", ">", 18).order_by("name")
        >>> query.select("id", "name").to_sql()
        'SELECT id, name FROM users WHERE age > ? ORDER BY name ASC'
        >>> query.get_bindings()
        [18]

    A builder is not thread-safe; build and run it from one call chain.
    """

    def __init__(self, executor: Optional["Executor"] = None, table: str = "") -> None:
        """Initialize the builder.

        Args:
            executor: Executor used by the terminal methods (get, insert, ...)
            table: Table the query targets
        """
        self.executor = executor
        self._table = table
        self._intent: Optional[QueryIntent] = None
        self._wheres: list[WhereClause] = []
        self._joins: list[Join] = []
        self._orders: list[Order] = []
        self._groups: list[str] = []
        self._havings: list[Having] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

    # ------------------------------------------------------------------
    # Target and intent
    # ------------------------------------------------------------------

    @property
    def table_name(self) -> str:
        return self._table

    @property
    def intent(self) -> Optional[QueryIntent]:
        return self._intent

    def table(self, name: str) -> "QueryBuilder":
        self._table = name
        return self

    def select(self, *columns: str) -> "QueryBuilder":
        """Set a SELECT intent.

        Args:
            *columns: Column expressions; a single list is also accepted.
                Defaults to ``*``.
        """
        if len(columns) == 1 and isinstance(columns[0], (list, tuple)):
            columns = tuple(columns[0])
        self._intent = Select(tuple(columns) or ("*",))
        return self

    # ------------------------------------------------------------------
    # WHERE
    # ------------------------------------------------------------------

    def where(
        self,
        column: Any,
        operator: Any = _MISSING,
        value: Any = _MISSING,
        boolean: str = "AND",
    ) -> "QueryBuilder":
        """Add a basic comparison.

        ``where("a", 1)`` is shorthand for ``where("a", "=", 1)``. A mapping
        adds one equality per entry. Comparing with None through ``=`` or
        ``!=``/``<>`` becomes ``IS NULL``/``IS NOT NULL``.

        Args:
            column: Column name, or a mapping of column to value
            operator: Comparison operator, or the value in the two-argument form
            value: Value to compare against
            boolean: "AND" or "OR" joining this clause to the previous one

        Raises:
            InvalidQueryError: On an unknown operator or boolean
        """
        boolean = self._check_boolean(boolean)

        if isinstance(column, Mapping):
            for key, item in column.items():
                self.where(key, "=", item, boolean)
            return self

        if value is _MISSING:
            if operator is _MISSING:
                raise InvalidQueryError(f"where() on {column!r} requires a value")
            operator, value = "=", operator

        operator = self._check_operator(operator)

        if value is None:
            if operator == "=":
                return self._push(NullWhere(column, False, boolean))
            if operator in ("!=", "<>"):
                return self._push(NullWhere(column, True, boolean))
            raise InvalidQueryError(f"Cannot compare {column!r} with None using {operator}")

        return self._push(BasicWhere(column, operator, value, boolean))

    def or_where(self, column: Any, operator: Any = _MISSING, value: Any = _MISSING) -> "QueryBuilder":
        return self.where(column, operator, value, "OR")

    def where_in(self, column: str, values: Iterable, boolean: str = "AND", negated: bool = False) -> "QueryBuilder":
        return self._push(InWhere(column, tuple(values), negated, self._check_boolean(boolean)))

    def where_not_in(self, column: str, values: Iterable, boolean: str = "AND") -> "QueryBuilder":
        return self.where_in(column, values, boolean, negated=True)

    def or_where_in(self, column: str, values: Iterable) -> "QueryBuilder":
        return self.where_in(column, values, "OR")

    def where_null(self, column: str, boolean: str = "AND", negated: bool = False) -> "QueryBuilder":
        return self._push(NullWhere(column, negated, self._check_boolean(boolean)))

    def where_not_null(self, column: str, boolean: str = "AND") -> "QueryBuilder":
        return self.where_null(column, boolean, negated=True)

    def or_where_null(self, column: str) -> "QueryBuilder":
        return self.where_null(column, "OR")

    def where_between(
        self, column: str, low: Any, high: Any, boolean: str = "AND", negated: bool = False
    ) -> "QueryBuilder":
        return self._push(BetweenWhere(column, low, high, negated, self._check_boolean(boolean)))

    def where_not_between(self, column: str, low: Any, high: Any, boolean: str = "AND") -> "QueryBuilder":
        return self.where_between(column, low, high, boolean, negated=True)

    def where_like(self, column: str, pattern: str, boolean: str = "AND") -> "QueryBuilder":
        return self.where(column, "LIKE", pattern, boolean)

    # ------------------------------------------------------------------
    # JOIN / ORDER / GROUP / HAVING / LIMIT
    # ------------------------------------------------------------------

    def join(
        self, table: str, first: str, operator: str, second: str, kind: str = "INNER"
    ) -> "QueryBuilder":
        """Join another table.

        Args:
            table: Joined table
            first: Left column of the ON condition
            operator: Comparison operator of the ON condition
            second: Right column of the ON condition
            kind: INNER, LEFT or RIGHT
        """
        try:
            join_kind = JoinKind(kind.upper())
        except ValueError:
            raise InvalidQueryError(f"Unknown join type: {kind!r}") from None
        self._joins.append(Join(join_kind, table, first, self._check_operator(operator), second))
        return self

    def left_join(self, table: str, first: str, operator: str, second: str) -> "QueryBuilder":
        return self.join(table, first, operator, second, "LEFT")

    def right_join(self, table: str, first: str, operator: str, second: str) -> "QueryBuilder":
        return self.join(table, first, operator, second, "RIGHT")

    def order_by(self, column: str, direction: str = "ASC") -> "QueryBuilder":
        try:
            order_direction = Direction(direction.upper())
        except ValueError:
            raise InvalidQueryError(f"Order direction must be ASC or DESC, got {direction!r}") from None
        self._orders.append(Order(column, order_direction))
        return self

    def order_by_desc(self, column: str) -> "QueryBuilder":
        return self.order_by(column, "DESC")

    def group_by(self, *columns: str) -> "QueryBuilder":
        if len(columns) == 1 and isinstance(columns[0], (list, tuple)):
            columns = tuple(columns[0])
        self._groups.extend(columns)
        return self

    def having(
        self, column: str, operator: Any = _MISSING, value: Any = _MISSING, boolean: str = "AND"
    ) -> "QueryBuilder":
        if value is _MISSING:
            if operator is _MISSING:
                raise InvalidQueryError(f"having() on {column!r} requires a value")
            operator, value = "=", operator
        self._havings.append(
            Having(column, self._check_operator(operator), value, self._check_boolean(boolean))
        )
        return self

    def or_having(self, column: str, operator: Any = _MISSING, value: Any = _MISSING) -> "QueryBuilder":
        return self.having(column, operator, value, "OR")

    def limit(self, count: Optional[int]) -> "QueryBuilder":
        self._limit = self._check_count("limit", count)
        return self

    def offset(self, count: Optional[int]) -> "QueryBuilder":
        self._offset = self._check_count("offset", count)
        return self

    def paginate(self, page: int, per_page: Optional[int] = None) -> "QueryBuilder":
        """Restrict the query to one page.

        Args:
            page: 1-based page number
            per_page: Page size (defaults to ``RecordConfig.per_page``)

        Raises:
            InvalidQueryError: If page < 1 or per_page < 1
        """
        if per_page is None:
            per_page = get_config().record.per_page
        if page < 1:
            raise InvalidQueryError(f"Page must be >= 1, got {page}")
        if per_page < 1:
            raise InvalidQueryError(f"Page size must be >= 1, got {per_page}")
        self._limit = per_page
        self._offset = (page - 1) * per_page
        return self

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def compile(self) -> CompiledQuery:
        """Render the current intent.

        Returns:
            CompiledQuery holding SQL text with ``?`` placeholders and the
            bindings in placeholder order

        Raises:
            QueryStateError: If no table or no intent has been set
        """
        if not self._table:
            raise QueryStateError("No table set on query")

        intent = self._intent
        if intent is None:
            raise QueryStateError(f"No query intent set for table {self._table!r}")

        if isinstance(intent, Select):
            return self._compile_select(intent)
        if isinstance(intent, Insert):
            return self._compile_insert(intent)
        if isinstance(intent, Update):
            return self._compile_update(intent)
        if isinstance(intent, Delete):
            sql, bindings = self._compile_wheres()
            return CompiledQuery(f"DELETE FROM {self._table}{sql}", bindings)
        raise QueryStateError(f"Unknown query intent: {intent!r}")

    def to_sql(self) -> str:
        return self.compile().sql

    def get_bindings(self) -> list:
        return self.compile().bindings

    def _compile_select(self, intent: Select) -> CompiledQuery:
        sql = f"SELECT {', '.join(intent.columns)} FROM {self._table}"
        bindings: list = []

        for join in self._joins:
            sql += f" {join.kind.value} JOIN {join.table} ON {join.first} {join.operator} {join.second}"

        where_sql, where_bindings = self._compile_wheres()
        sql += where_sql
        bindings.extend(where_bindings)

        if self._groups:
            sql += " GROUP BY " + ", ".join(self._groups)

        if self._havings:
            parts = []
            for i, having in enumerate(self._havings):
                fragment = f"{having.column} {having.operator} ?"
                parts.append(fragment if i == 0 else f"{having.boolean} {fragment}")
                bindings.append(having.value)
            sql += " HAVING " + " ".join(parts)

        if self._orders:
            sql += " ORDER BY " + ", ".join(f"{o.column} {o.direction.value}" for o in self._orders)

        if self._limit is not None:
            sql += f" LIMIT {self._limit}"
        elif self._offset is not None:
            sql += f" LIMIT {_NO_LIMIT}"

        if self._offset is not None:
            sql += f" OFFSET {self._offset}"

        return CompiledQuery(sql, bindings)

    def _compile_insert(self, intent: Insert) -> CompiledQuery:
        columns = list(intent.values)
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {self._table} ({', '.join(columns)}) VALUES ({placeholders})"
        if intent.returning:
            sql += f" RETURNING {intent.returning}"
        return CompiledQuery(sql, list(intent.values.values()))

    def _compile_update(self, intent: Update) -> CompiledQuery:
        assignments = ", ".join(f"{column} = ?" for column in intent.values)
        bindings = list(intent.values.values())
        where_sql, where_bindings = self._compile_wheres()
        return CompiledQuery(
            f"UPDATE {self._table} SET {assignments}{where_sql}",
            bindings + where_bindings,
        )

    def _compile_wheres(self) -> tuple[str, list]:
        if not self._wheres:
            return "", []

        parts = []
        bindings: list = []
        for i, clause in enumerate(self._wheres):
            fragment = self._compile_where(clause)
            parts.append(fragment if i == 0 else f"{clause.boolean} {fragment}")
            bindings.extend(clause.bindings)
        return " WHERE " + " ".join(parts), bindings

    @staticmethod
    def _compile_where(clause: WhereClause) -> str:
        if isinstance(clause, BasicWhere):
            return f"{clause.column} {clause.operator} ?"
        if isinstance(clause, InWhere):
            if not clause.values:
                return "1 = 1" if clause.negated else "0 = 1"
            keyword = "NOT IN" if clause.negated else "IN"
            return f"{clause.column} {keyword} ({', '.join('?' for _ in clause.values)})"
        if isinstance(clause, NullWhere):
            return f"{clause.column} IS {'NOT NULL' if clause.negated else 'NULL'}"
        if isinstance(clause, BetweenWhere):
            keyword = "NOT BETWEEN" if clause.negated else "BETWEEN"
            return f"{clause.column} {keyword} ? AND ?"
        raise QueryStateError(f"Unknown where clause: {clause!r}")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def get(self) -> list[dict]:
        """Run the query and return every row as a dict."""
        if not isinstance(self._intent, Select):
            self._intent = Select()
        return self._run(self.compile())

    def first(self) -> Optional[dict]:
        """Run the query with LIMIT 1 and return the row, or None."""
        self._limit = 1
        rows = self.get()
        return rows[0] if rows else None

    def find(self, id: Any, column: str = "id") -> Optional[dict]:
        return self.where(column, "=", id).first()

    def pluck(self, column: str) -> list:
        """Return one column's value from every matching row."""
        key = column.split(".")[-1]
        self.select(column)
        return [row[key] for row in self._run(self.compile())]

    def count(self, column: str = "*") -> int:
        """Count matching rows.

        The count runs on a copy without ORDER BY, LIMIT or OFFSET; this
        builder is left unchanged.
        """
        query = self.clone()
        query._orders = []
        query._limit = None
        query._offset = None
        query._intent = Select((f"COUNT({column}) AS aggregate",))
        rows = query._run(query.compile())
        if not rows:
            return 0
        return int(rows[0]["aggregate"] or 0)

    def exists(self) -> bool:
        return self.count() > 0

    def insert(self, values: Mapping, key: Optional[str] = None) -> Optional[str]:
        """Insert one row.

        Args:
            values: Column to value mapping, rendered in its own order
            key: Generated key column to read back. On dialects with
                RETURNING the key is returned by the INSERT itself; leave it
                unset for tables without a generated key.

        Returns:
            Generated primary key reported by the executor
        """
        if not values:
            raise InvalidQueryError(f"Cannot insert an empty row into {self._table!r}")
        executor = self._require_executor()
        returning = key if key and get_profile(executor.active_dialect()).supports_returning else None
        self._intent = Insert(dict(values), returning)
        self._run(self.compile())
        return executor.last_insert_id()

    def update(self, values: Mapping) -> int:
        """Update matching rows.

        Returns:
            Number of affected rows
        """
        if not values:
            raise InvalidQueryError(f"Cannot update {self._table!r} with no values")
        self._intent = Update(dict(values))
        self._run(self.compile())
        return self._require_executor().affected_row_count()

    def delete(self) -> int:
        """Delete matching rows.

        Returns:
            Number of affected rows
        """
        self._intent = Delete()
        self._run(self.compile())
        return self._require_executor().affected_row_count()

    def clone(self) -> "QueryBuilder":
        """Copy the builder so the copy can be changed independently."""
        other = copy.copy(self)
        other._wheres = list(self._wheres)
        other._joins = list(self._joins)
        other._orders = list(self._orders)
        other._groups = list(self._groups)
        other._havings = list(self._havings)
        return other

    def _run(self, compiled: CompiledQuery) -> list[dict]:
        return self._require_executor().execute(compiled.sql, compiled.bindings)

    def _require_executor(self) -> "Executor":
        if self.executor is None:
            raise QueryStateError("Query has no executor; pass one to QueryBuilder()")
        return self.executor

    def _push(self, clause: WhereClause) -> "QueryBuilder":
        self._wheres.append(clause)
        return self

    @staticmethod
    def _check_operator(operator: Any) -> str:
        normalized = str(operator).strip().upper()
        if normalized not in COMPARISON_OPERATORS:
            raise InvalidQueryError(f"Unknown comparison operator: {operator!r}")
        return normalized

    @staticmethod
    def _check_boolean(boolean: str) -> str:
        normalized = boolean.strip().upper()
        if normalized not in BOOLEANS:
            raise InvalidQueryError(f"Clause boolean must be AND or OR, got {boolean!r}")
        return normalized

    @staticmethod
    def _check_count(name: str, count: Optional[int]) -> Optional[int]:
        if count is None:
            return None
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise InvalidQueryError(f"{name} must be a non-negative integer, got {count!r}")
        return count

    def __repr__(self) -> str:
        return f"<QueryBuilder table={self._table!r} intent={type(self._intent).__name__}>"
