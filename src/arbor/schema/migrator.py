"""
Migration runner.

Migrations live in a directory as modules named ``NNN_description.py``
(or ``YYYY_MM_DD_HHMMSS_description.py``), each defining one ``Migration``
subclass. Executed migrations are recorded in a repository table together
with the batch they ran in, so the last batch can be rolled back.
"""

import contextlib
import importlib.util
import re
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Optional

from arbor.config import get_config
from arbor.dialects import get_profile
from arbor.exceptions import MigrationError
from arbor.logger import get_logger
from arbor.query.builder import QueryBuilder
from arbor.schema.blueprint import Blueprint
from arbor.schema.migration import Migration
from arbor.storage.executor import SupportsTransactions

if TYPE_CHECKING:
    from arbor.storage.executor import Executor

logger = get_logger(__name__)

MIGRATION_FILE_PATTERN = re.compile(r"^(\d{3,4}|\d{4}_\d{2}_\d{2}_\d{6})_\w+\.py$")


class Migrator:
    """Run and roll back migrations against one executor."""

    def __init__(
        self,
        executor: "Executor",
        path: Optional[str] = None,
        table: Optional[str] = None,
        migrations: Optional[Mapping[str, type[Migration]]] = None,
    ) -> None:
        """Initialize the migrator.

        Args:
            executor: Executor used for DDL and the repository table
            path: Directory of migration modules (defaults to ``MigrationConfig.path``)
            table: Repository table name (defaults to ``MigrationConfig.table``)
            migrations: Explicit name to class mapping; skips directory discovery
        """
        config = get_config()
        self.executor = executor
        self.path = Path(path or config.migration.path)
        self.table = table or config.migration.table
        self.date_format = config.record.date_format
        self._migrations: Optional[dict[str, type[Migration]]] = (
            dict(sorted(migrations.items())) if migrations is not None else None
        )

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover(self) -> dict[str, type[Migration]]:
        """Return every known migration class keyed by name, in run order."""
        if self._migrations is not None:
            return self._migrations

        if not self.path.is_dir():
            raise MigrationError(f"Migrations directory not found: {self.path}")

        found = {}
        for file in sorted(self.path.iterdir()):
            if file.is_file() and MIGRATION_FILE_PATTERN.match(file.name):
                found[file.stem] = self._load_class(file)

        self._migrations = found
        return found

    def _load_class(self, file: Path) -> type[Migration]:
        module_name = f"_arbor_migration_{file.stem}"
        spec = importlib.util.spec_from_file_location(module_name, file)
        if spec is None or spec.loader is None:
            raise MigrationError(f"Cannot load migration module: {file}")

        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        classes = [
            obj
            for obj in vars(module).values()
            if isinstance(obj, type)
            and issubclass(obj, Migration)
            and obj is not Migration
            and obj.__module__ == module_name
        ]
        if len(classes) != 1:
            raise MigrationError(
                f"{file.name} must define exactly one Migration subclass, found {len(classes)}"
            )
        return classes[0]

    # ------------------------------------------------------------------
    # Repository table
    # ------------------------------------------------------------------

    def ensure_repository(self) -> None:
        """Create the repository table when it does not exist yet."""
        if self.executor.table_exists(self.table):
            return

        blueprint = Blueprint(self.table)
        blueprint.increments("id")
        blueprint.string("migration")
        blueprint.integer("batch")
        blueprint.timestamp("executed_at").nullable()

        profile = get_profile(self.executor.active_dialect())
        for sql in blueprint.to_statements(profile):
            self.executor.execute(sql, [])
        logger.info(f"Created migration repository table {self.table!r}")

    def _query(self) -> QueryBuilder:
        return QueryBuilder(self.executor, self.table)

    def ran(self) -> list[str]:
        """Names of executed migrations, in execution order."""
        self.ensure_repository()
        return self._query().order_by("id").pluck("migration")

    def last_batch(self) -> int:
        self.ensure_repository()
        row = self._query().select("MAX(batch) AS batch").first()
        return int(row["batch"]) if row and row["batch"] is not None else 0

    def pending(self) -> list[str]:
        executed = set(self.ran())
        return [name for name in self.discover() if name not in executed]

    def status(self) -> list[dict]:
        """Report every known migration with its batch, or None when pending."""
        self.ensure_repository()
        batches = {row["migration"]: row["batch"] for row in self._query().select("migration", "batch").get()}
        return [
            {"migration": name, "ran": name in batches, "batch": batches.get(name)}
            for name in self.discover()
        ]

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def run(self, step: int = 0) -> list[str]:
        """Run pending migrations as one new batch.

        Args:
            step: Run at most this many migrations (0 runs all)

        Returns:
            Names of the migrations that ran
        """
        pending = self.pending()
        if step > 0:
            pending = pending[:step]
        if not pending:
            logger.info("Nothing to migrate")
            return []

        batch = self.last_batch() + 1
        migrations = self.discover()
        for name in pending:
            migration = migrations[name](self.executor, name)
            try:
                with self._transaction():
                    migration.up()
                    self._query().insert({
                        "migration": name,
                        "batch": batch,
                        "executed_at": datetime.now().strftime(self.date_format),
                    })
            except Exception as e:
                logger.error(f"Migration {name} failed: {e}")
                raise
            logger.info(f"Migrated: {name}")

        return pending

    def rollback(self) -> list[str]:
        """Revert every migration of the last batch, newest first.

        Returns:
            Names of the migrations that were reverted
        """
        batch = self.last_batch()
        if batch == 0:
            logger.info("Nothing to roll back")
            return []

        names = (
            self._query()
            .where("batch", batch)
            .order_by("id", "DESC")
            .pluck("migration")
        )
        migrations = self.discover()
        for name in names:
            if name not in migrations:
                raise MigrationError(f"Migration {name!r} is recorded but its module is missing")
            migration = migrations[name](self.executor, name)
            try:
                with self._transaction():
                    migration.down()
                    self._query().where("migration", name).delete()
            except Exception as e:
                logger.error(f"Rollback of {name} failed: {e}")
                raise
            logger.info(f"Rolled back: {name}")

        return names

    def _transaction(self):
        if isinstance(self.executor, SupportsTransactions):
            return self.executor.transaction()
        return contextlib.nullcontext()
