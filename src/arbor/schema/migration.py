"""
Migration base class.

Subclasses implement ``up`` and ``down`` with the table helpers below::

    class CreateUsersTable(Migration):
        def up(self):
            def users(table):
                table.id()
                table.string("email").unique()
                table.timestamps()
            self.create_table("users", users)

        def down(self):
            self.drop_table("users")
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Optional, Sequence

from arbor.dialects import DialectProfile, get_profile
from arbor.logger import get_logger
from arbor.schema.blueprint import Blueprint, BlueprintMode

if TYPE_CHECKING:
    from arbor.storage.executor import Executor

logger = get_logger(__name__)

BlueprintCallback = Callable[[Blueprint], None]


class Migration(ABC):
    """One reversible schema change."""

    def __init__(self, executor: "Executor", name: Optional[str] = None) -> None:
        """Initialize the migration.

        Args:
            executor: Executor the DDL statements are sent to
            name: Name recorded by the migrator (defaults to the class name)
        """
        self.executor = executor
        self.name = name or type(self).__name__
        self._profile: Optional[DialectProfile] = None

    @abstractmethod
    def up(self) -> None:
        """Apply the change."""

    @abstractmethod
    def down(self) -> None:
        """Revert the change."""

    @property
    def profile(self) -> DialectProfile:
        """Dialect profile of the executor, resolved on first use."""
        if self._profile is None:
            self._profile = get_profile(self.executor.active_dialect())
        return self._profile

    def create_table(self, table: str, callback: BlueprintCallback) -> list[str]:
        """Create a table described by ``callback``.

        Returns:
            Statements that were executed
        """
        blueprint = Blueprint(table, BlueprintMode.CREATE)
        callback(blueprint)
        return self.run_blueprint(blueprint)

    def table(self, table: str, callback: BlueprintCallback) -> list[str]:
        """Alter an existing table described by ``callback``."""
        blueprint = Blueprint(table, BlueprintMode.ALTER)
        callback(blueprint)
        return self.run_blueprint(blueprint)

    def run_blueprint(self, blueprint: Blueprint) -> list[str]:
        statements = blueprint.to_statements(self.profile)
        for sql in statements:
            self.statement(sql)
        return statements

    def drop_table(self, table: str) -> None:
        """Drop a table if it exists."""
        self.statement(self.profile.drop_table(table, if_exists=True))

    def rename_table(self, old: str, new: str) -> None:
        self.statement(self.profile.rename_table(old, new))

    def has_table(self, table: str) -> bool:
        return self.executor.table_exists(table)

    def has_column(self, table: str, column: str) -> bool:
        return column in self.executor.table_column_names(table)

    def statement(self, sql: str, bindings: Sequence = ()) -> None:
        """Execute one raw statement."""
        logger.debug(f"[{self.name}] {sql}")
        self.executor.execute(sql, list(bindings))

    def __repr__(self) -> str:
        return f"<Migration {self.name}>"
