"""
Statement execution.

``Executor`` is the capability the query, schema and record layers run
statements through. ``SQLAlchemyExecutor`` implements it on one SQLAlchemy
``Connection`` and adds savepoint-nested transactions and a query log.
"""

import re
import time
from contextlib import contextmanager
from typing import Any, Generator, Optional, Protocol, Sequence, runtime_checkable

from sqlalchemy import Connection, Engine, inspect
from sqlalchemy.exc import SQLAlchemyError

from arbor.config import get_config
from arbor.dialects import DialectProfile, get_profile
from arbor.exceptions import TransactionError, UnsupportedDialectError
from arbor.logger import get_logger
from arbor.types import Dialect

logger = get_logger(__name__)


@runtime_checkable
class Executor(Protocol):
    """Runs rendered statements against a database."""

    def execute(self, sql: str, bindings: Sequence[Any] = ()) -> list[dict]:
        """Run one statement with ``?`` placeholders and return its rows."""
        ...

    def last_insert_id(self) -> Optional[str]:
        """Key generated by the most recent INSERT, if any."""
        ...

    def affected_row_count(self) -> int:
        """Rows affected by the most recent statement."""
        ...

    def active_dialect(self) -> Dialect:
        ...

    def table_exists(self, name: str) -> bool:
        ...

    def table_column_names(self, name: str) -> list[str]:
        ...


@runtime_checkable
class SupportsTransactions(Protocol):
    """Executors that can group statements into a transaction."""

    def begin_transaction(self) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def transaction(self):
        ...


_ENGINE_DIALECTS = {
    "sqlite": Dialect.SQLITE,
    "mysql": Dialect.MYSQL,
    "mariadb": Dialect.MYSQL,
    "postgresql": Dialect.POSTGRESQL,
}

# Quoted literals/identifiers, ? placeholders and bare percent signs
_PLACEHOLDER_TOKENS = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|`[^`]*`|\?|%")


def to_format_paramstyle(sql: str) -> str:
    """Rewrite ``?`` placeholders as ``%s`` and escape literal ``%``.

    Question marks inside quoted strings or identifiers are left alone.
    """
    def replace(match: re.Match) -> str:
        token = match.group(0)
        if token == "?":
            return "%s"
        return token.replace("%", "%%")

    return _PLACEHOLDER_TOKENS.sub(replace, sql)


class SQLAlchemyExecutor:
    """Executor backed by a single SQLAlchemy connection.

    Statements outside an explicit transaction are committed as soon as
    they run. ``begin_transaction`` opens a transaction; calling it again
    while one is open creates a SAVEPOINT.

    Example:
        >>> executor = SQLAlchemyExecutor(create_engine("sqlite://"))
        >>> with executor.transaction():
        ...     executor.execute("INSERT INTO users (name) VALUES (?)", ["Ada"])
    """

    def __init__(self, engine: Engine, log_queries: Optional[bool] = None) -> None:
        """Initialize the executor.

        Args:
            engine: SQLAlchemy engine to take a connection from
            log_queries: Keep an in-memory query log (defaults to ``DatabaseConfig.log_queries``)

        Raises:
            UnsupportedDialectError: If the engine is not SQLite, MySQL or PostgreSQL
        """
        name = engine.dialect.name
        if name not in _ENGINE_DIALECTS:
            raise UnsupportedDialectError(f"Unsupported database dialect: {name!r}")

        self.engine = engine
        self.profile: DialectProfile = get_profile(_ENGINE_DIALECTS[name])
        self.log_queries = get_config().database.log_queries if log_queries is None else log_queries

        self._connection: Optional[Connection] = None
        self._transactions: list = []
        self._last_insert_id: Optional[str] = None
        self._affected_rows = 0
        self._query_log: list[dict] = []
        self._convert_placeholders = engine.dialect.paramstyle != "qmark"

    @property
    def connection(self) -> Connection:
        if self._connection is None or self._connection.closed:
            self._connection = self.engine.connect()
        return self._connection

    def active_dialect(self) -> Dialect:
        return self.profile.dialect

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def execute(self, sql: str, bindings: Sequence[Any] = ()) -> list[dict]:
        """Run one statement.

        Args:
            sql: Statement text using ``?`` placeholders
            bindings: Positional values for the placeholders

        Returns:
            Result rows as dicts (empty for statements without rows)

        Raises:
            SQLAlchemyError: Driver errors are logged and re-raised unchanged
        """
        params = tuple(bindings)
        statement = to_format_paramstyle(sql) if params and self._convert_placeholders else sql
        conn = self.connection

        started = time.perf_counter()
        try:
            if params:
                result = conn.exec_driver_sql(statement, params)
            else:
                result = conn.exec_driver_sql(statement)

            if result.returns_rows:
                rows = [dict(row._mapping) for row in result]
                self._affected_rows = len(rows)
            else:
                rows = []
                self._affected_rows = max(result.rowcount, 0)

            if sql.lstrip()[:6].upper() == "INSERT":
                self._capture_insert_id(result, rows)
        except SQLAlchemyError as e:
            logger.error(f"Statement failed: {e}")
            self._end_implicit_transaction(commit=False)
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"{sql} [{len(params)} binding(s), {elapsed_ms:.2f} ms]")
        if self.log_queries:
            self._query_log.append({"sql": sql, "bindings": list(params), "time_ms": elapsed_ms})

        self._end_implicit_transaction(commit=True)
        return rows

    def _capture_insert_id(self, result, rows: list[dict]) -> None:
        # INSERT ... RETURNING hands the key back as the first column
        if rows:
            value = next(iter(rows[0].values()))
        elif self.profile.supports_returning:
            value = None
        else:
            value = result.lastrowid or None
        self._last_insert_id = None if value is None else str(value)

    def last_insert_id(self) -> Optional[str]:
        return self._last_insert_id

    def affected_row_count(self) -> int:
        return self._affected_rows

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def table_exists(self, name: str) -> bool:
        exists = inspect(self.connection).has_table(name)
        self._end_implicit_transaction(commit=True)
        return exists

    def table_column_names(self, name: str) -> list[str]:
        columns = [column["name"] for column in inspect(self.connection).get_columns(name)]
        self._end_implicit_transaction(commit=True)
        return columns

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @property
    def transaction_level(self) -> int:
        return len(self._transactions)

    def begin_transaction(self) -> None:
        """Open a transaction, or a SAVEPOINT when one is already open."""
        conn = self.connection
        if self._transactions:
            self._transactions.append(conn.begin_nested())
        else:
            self._end_implicit_transaction(commit=True)
            self._transactions.append(conn.begin())
        logger.debug(f"Transaction level {len(self._transactions)} opened")

    def commit(self) -> None:
        if not self._transactions:
            raise TransactionError("commit() called with no open transaction")
        self._transactions.pop().commit()
        logger.debug(f"Transaction level {len(self._transactions) + 1} committed")

    def rollback(self) -> None:
        if not self._transactions:
            raise TransactionError("rollback() called with no open transaction")
        self._transactions.pop().rollback()
        logger.debug(f"Transaction level {len(self._transactions) + 1} rolled back")

    @contextmanager
    def transaction(self) -> Generator["SQLAlchemyExecutor", None, None]:
        """Run the block in a transaction, rolling back if it raises.

        Example:
            >>> with executor.transaction():
            ...     QueryBuilder(executor, "accounts").where("id", 1).update({"balance": 0})
        """
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()

    def _end_implicit_transaction(self, commit: bool) -> None:
        conn = self._connection
        if self._transactions or conn is None or not conn.in_transaction():
            return
        if commit:
            conn.commit()
        else:
            conn.rollback()

    # ------------------------------------------------------------------
    # Query log
    # ------------------------------------------------------------------

    def enable_query_log(self) -> None:
        self.log_queries = True

    def disable_query_log(self) -> None:
        self.log_queries = False

    def get_query_log(self) -> list[dict]:
        return list(self._query_log)

    def clear_query_log(self) -> None:
        self._query_log.clear()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Roll back open transactions and release the connection."""
        while self._transactions:
            self._transactions.pop().rollback()
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def __enter__(self) -> "SQLAlchemyExecutor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
