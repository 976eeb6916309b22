"""Shared fixtures for arbor tests."""

from typing import Any, Optional, Sequence

import pytest

from arbor.config import set_config
from arbor.storage.database import DatabaseManager
from arbor.types import Dialect


class RecordingExecutor:
    """Executor fake that records statements and replays canned results.

    Rows queued with ``queue_rows`` are returned by the next SELECT
    statements in order; every other statement returns no rows.
    """

    def __init__(self, dialect: Dialect = Dialect.MYSQL) -> None:
        self.dialect = dialect
        self.statements: list[tuple[str, list]] = []
        self.tables: dict[str, list[str]] = {}
        self.next_insert_id: Optional[str] = "1"
        self.affected = 1
        self._queued: list[list[dict]] = []

    def queue_rows(self, *results: list[dict]) -> None:
        self._queued.extend(results)

    def execute(self, sql: str, bindings: Sequence[Any] = ()) -> list[dict]:
        self.statements.append((sql, list(bindings)))
        if sql.startswith("SELECT") and self._queued:
            return self._queued.pop(0)
        return []

    def last_insert_id(self) -> Optional[str]:
        return self.next_insert_id

    def affected_row_count(self) -> int:
        return self.affected

    def active_dialect(self) -> Dialect:
        return self.dialect

    def table_exists(self, name: str) -> bool:
        return name in self.tables

    def table_column_names(self, name: str) -> list[str]:
        return list(self.tables.get(name, []))

    @property
    def sql(self) -> list[str]:
        return [sql for sql, _ in self.statements]


@pytest.fixture(autouse=True)
def reset_config():
    """Rebuild the global configuration for every test."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def recording_executor():
    """Executor fake reporting the MySQL dialect."""
    return RecordingExecutor()


@pytest.fixture
def db_manager():
    """Database manager on a private in-memory SQLite database."""
    manager = DatabaseManager(":memory:")
    yield manager
    manager.close()


@pytest.fixture
def executor(db_manager):
    """SQLAlchemy executor on an in-memory SQLite database."""
    return db_manager.executor
