"""
Database engine and executor management.
"""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import Engine, create_engine

from arbor.config import get_config
from arbor.dialects import get_profile
from arbor.logger import get_logger
from arbor.storage.executor import SQLAlchemyExecutor

if TYPE_CHECKING:
    from arbor.config import DatabaseConfig

logger = get_logger(__name__)

# Global engine and executor
_engine: Optional[Engine] = None
_executor: Optional[SQLAlchemyExecutor] = None


def create_engine_from_config(db_config: "DatabaseConfig") -> Engine:
    """Create an engine for a database configuration.

    Args:
        db_config: Database configuration

    Returns:
        SQLAlchemy Engine with dialect-specific events installed

    Raises:
        ValueError: If the configuration is invalid for its dialect
    """
    profile = get_profile(db_config.type)

    errors = profile.validate_config(db_config)
    if errors:
        raise ValueError(f"Invalid {profile.name} configuration: " + "; ".join(errors))

    url = profile.build_url(db_config)
    engine = create_engine(url, **profile.get_engine_kwargs(db_config))
    profile.setup_engine_events(engine)
    logger.debug(f"Created {profile.name} engine")
    return engine


def get_engine() -> Engine:
    """Get or create the global database engine.

    Returns:
        SQLAlchemy Engine instance
    """
    global _engine

    if _engine is None:
        _engine = create_engine_from_config(get_config().database)

    return _engine


def get_executor() -> SQLAlchemyExecutor:
    """Get or create the global executor bound to the global engine.

    Returns:
        SQLAlchemyExecutor instance
    """
    global _executor

    if _executor is None:
        _executor = SQLAlchemyExecutor(get_engine())

    return _executor


def close_db() -> None:
    """Close the global executor and dispose of the engine."""
    global _engine, _executor

    if _executor is not None:
        _executor.close()
        _executor = None

    if _engine is not None:
        _engine.dispose()
        _engine = None


class DatabaseManager:
    """Database manager owning one engine and one executor."""

    def __init__(self, db_path: Optional[str] = None, db_config: Optional["DatabaseConfig"] = None):
        """Initialize database manager.

        Args:
            db_path: Optional SQLite database path (":memory:" for in-memory).
            db_config: Optional custom database configuration.

        Note:
            If neither db_path nor db_config is provided, uses the global engine.
        """
        self._custom_db_path = db_path
        self._custom_db_config = db_config
        self._engine: Optional[Engine] = None
        self._executor: Optional[SQLAlchemyExecutor] = None
        self._owns_engine = db_path is not None or db_config is not None

    @property
    def engine(self) -> Engine:
        """Get the database engine."""
        if self._engine is None:
            if self._custom_db_path:
                from arbor.config import DatabaseConfig

                db_config = DatabaseConfig(type="sqlite", path=self._custom_db_path, echo=False)
                self._engine = create_engine_from_config(db_config)
            elif self._custom_db_config:
                self._engine = create_engine_from_config(self._custom_db_config)
            else:
                self._engine = get_engine()

        return self._engine

    @property
    def executor(self) -> SQLAlchemyExecutor:
        """Get the executor bound to this manager's engine."""
        if self._executor is None:
            self._executor = SQLAlchemyExecutor(self.engine)
        return self._executor

    def close(self) -> None:
        """Close the executor and dispose of an engine this manager created."""
        if self._executor is not None:
            self._executor.close()
            self._executor = None
        if self._engine is not None:
            if self._owns_engine:
                self._engine.dispose()
            self._engine = None

    def __enter__(self) -> "DatabaseManager":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
