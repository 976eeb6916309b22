"""Storage layer: statement execution and engine management."""

from arbor.storage.database import (
    DatabaseManager,
    close_db,
    create_engine_from_config,
    get_engine,
    get_executor,
)
from arbor.storage.executor import Executor, SQLAlchemyExecutor, SupportsTransactions

__all__ = [
    "Executor",
    "SupportsTransactions",
    "SQLAlchemyExecutor",
    "DatabaseManager",
    "create_engine_from_config",
    "get_engine",
    "get_executor",
    "close_db",
]
