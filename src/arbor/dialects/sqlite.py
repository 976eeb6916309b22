"""SQLite dialect profile."""

from pathlib import Path
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Engine, event
from sqlalchemy.pool import QueuePool, StaticPool

from arbor.dialects.base import DialectProfile
from arbor.exceptions import UnsupportedSchemaOperation
from arbor.types import ColumnType, Dialect

if TYPE_CHECKING:
    from arbor.config import DatabaseConfig
    from arbor.schema.column import Column
    from arbor.schema.commands import ForeignKey, IndexDefinition

MEMORY_PATH = ":memory:"


class SQLiteProfile(DialectProfile):
    """SQLite database profile.

    SQLite is the constrained dialect: every string collapses to TEXT,
    every integer width to INTEGER and every real to REAL. Secondary
    indexes cannot be declared inside CREATE TABLE, so they are issued
    as separate CREATE INDEX statements. An auto-increment key must be
    declared as ``INTEGER PRIMARY KEY AUTOINCREMENT`` on the column.

    Features:
    - Embedded database (no server required)
    - WAL mode for file databases
    - Foreign key constraints enabled
    - SAVEPOINT based nested transactions
    """

    quote_char = '"'
    inline_primary_key = True

    type_map = {
        ColumnType.BIG_INTEGER: "INTEGER",
        ColumnType.INTEGER: "INTEGER",
        ColumnType.SMALL_INTEGER: "INTEGER",
        ColumnType.TINY_INTEGER: "INTEGER",
        ColumnType.BOOLEAN: "INTEGER",
        ColumnType.STRING: "TEXT",
        ColumnType.CHAR: "TEXT",
        ColumnType.TEXT: "TEXT",
        ColumnType.LONG_TEXT: "TEXT",
        ColumnType.DECIMAL: "REAL",
        ColumnType.FLOAT: "REAL",
        ColumnType.DOUBLE: "REAL",
        ColumnType.DATE: "TEXT",
        ColumnType.DATETIME: "TEXT",
        ColumnType.TIMESTAMP: "TEXT",
        ColumnType.JSON: "TEXT",
        ColumnType.ENUM: "TEXT",
    }

    @property
    def name(self) -> str:
        """Get dialect name."""
        return "sqlite"

    @property
    def dialect(self) -> Dialect:
        return Dialect.SQLITE

    def build_url(self, config: "DatabaseConfig") -> str:
        """Build SQLite database URL.

        Args:
            config: Database configuration

        Returns:
            SQLAlchemy URL string

        Note:
            - path: "data/arbor.db" -> "sqlite:///data/arbor.db"
            - path: ":memory:" -> "sqlite://"
            - path: "sqlite:///data/arbor.db" -> unchanged
        """
        db_path = config.path

        if db_path.startswith("sqlite://"):
            return db_path

        if db_path == MEMORY_PATH:
            return "sqlite://"

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def get_engine_kwargs(self, config: "DatabaseConfig") -> dict:
        """Get SQLite-specific engine kwargs.

        Args:
            config: Database configuration

        Returns:
            Dictionary of engine kwargs

        Note:
            In-memory databases live inside a single connection, so they
            use StaticPool; file databases use QueuePool.
        """
        kwargs = {
            "echo": config.echo,
            "connect_args": {
                "check_same_thread": False,
                "timeout": 30,
            },
        }
        if config.path == MEMORY_PATH or config.path in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            kwargs["poolclass"] = QueuePool
            kwargs["pool_size"] = config.pool_size
            kwargs["max_overflow"] = config.max_overflow
        return kwargs

    def setup_engine_events(self, engine: Engine) -> None:
        """Set up SQLite PRAGMA statements and transaction handling.

        The pysqlite driver opens transactions implicitly and breaks
        SAVEPOINT, so the driver's transaction handling is switched off
        and BEGIN is emitted by SQLAlchemy instead.

        Args:
            engine: SQLAlchemy engine
        """
        in_memory = engine.url.database in (None, "", MEMORY_PATH)

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        @event.listens_for(engine, "begin")
        def do_begin(conn):
            conn.exec_driver_sql("BEGIN")

    def validate_config(self, config: "DatabaseConfig") -> list[str]:
        """Validate SQLite configuration.

        Args:
            config: Database configuration

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if config.path != MEMORY_PATH and not config.path.startswith("sqlite://"):
            db_path = Path(config.path)
            if db_path.exists() and not db_path.is_file():
                errors.append(f"Database path exists but is not a file: {config.path}")

        return errors

    def auto_increment_definition(self, column: "Column") -> Optional[str]:
        return f"{self.quote(column.name)} INTEGER PRIMARY KEY AUTOINCREMENT"

    def drop_primary(self, table: str) -> str:
        raise UnsupportedSchemaOperation("sqlite cannot drop a primary key from an existing table")

    def add_index(self, table: str, index: "IndexDefinition") -> str:
        if index.is_primary:
            raise UnsupportedSchemaOperation("sqlite cannot add a primary key to an existing table")
        return self.create_index(table, index)

    def add_foreign(self, table: str, foreign: "ForeignKey") -> str:
        raise UnsupportedSchemaOperation("sqlite cannot add a foreign key to an existing table")

    def drop_foreign(self, table: str, name: str) -> str:
        raise UnsupportedSchemaOperation("sqlite cannot drop a foreign key from an existing table")
