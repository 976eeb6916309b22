"""Unit tests for migration helpers."""

import pytest

from arbor.schema.migration import Migration
from arbor.types import Dialect


class CreateWidgets(Migration):
    """Creates and drops a widgets table."""

    def up(self):
        def widgets(table):
            table.increments("id")
            table.string("label", 50)
            table.integer("weight").nullable()
            table.index("label")

        self.create_table("widgets", widgets)

    def down(self):
        self.drop_table("widgets")


class TestMigrationStatements:
    """Tests for statements sent through a recording executor."""

    def test_create_table_statements(self, recording_executor):
        """Test create_table renders for the executor's dialect."""
        recording_executor.dialect = Dialect.SQLITE
        CreateWidgets(recording_executor).up()
        assert recording_executor.sql == [
            'CREATE TABLE "widgets" (\n'
            '  "id" INTEGER PRIMARY KEY AUTOINCREMENT,\n'
            '  "label" TEXT NOT NULL,\n'
            '  "weight" INTEGER\n'
            ")",
            'CREATE INDEX "widgets_label_index" ON "widgets" ("label")',
        ]

    def test_create_table_mysql(self, recording_executor):
        """Test the same migration on MySQL emits one statement."""
        CreateWidgets(recording_executor).up()
        assert len(recording_executor.sql) == 1
        assert "KEY `widgets_label_index` (`label`)" in recording_executor.sql[0]

    def test_drop_table_if_exists(self, recording_executor):
        """Test drop_table guards with IF EXISTS."""
        CreateWidgets(recording_executor).down()
        assert recording_executor.sql == ["DROP TABLE IF EXISTS `widgets`"]

    def test_default_name(self, recording_executor):
        """Test the migration name defaults to the class name."""
        assert CreateWidgets(recording_executor).name == "CreateWidgets"
        assert CreateWidgets(recording_executor, "001_widgets").name == "001_widgets"

    def test_profile_follows_executor(self, recording_executor):
        """Test the profile is resolved from the active dialect."""
        recording_executor.dialect = Dialect.POSTGRESQL
        assert CreateWidgets(recording_executor).profile.name == "postgresql"

    def test_rename_table(self, recording_executor):
        """Test renaming a table."""
        recording_executor.dialect = Dialect.POSTGRESQL
        CreateWidgets(recording_executor).rename_table("widgets", "gadgets")
        assert recording_executor.sql == ['ALTER TABLE "widgets" RENAME TO "gadgets"']

    def test_statement_passes_bindings(self, recording_executor):
        """Test raw statements keep their bindings."""
        CreateWidgets(recording_executor).statement("UPDATE widgets SET weight = ?", (3,))
        assert recording_executor.statements == [("UPDATE widgets SET weight = ?", [3])]


class TestMigrationOnSQLite:
    """Tests against an in-memory SQLite database."""

    def test_up_and_down(self, executor):
        """Test a migration creates and drops its table."""
        migration = CreateWidgets(executor)
        migration.up()
        assert migration.has_table("widgets")
        assert migration.has_column("widgets", "label")
        assert not migration.has_column("widgets", "colour")

        migration.down()
        assert not migration.has_table("widgets")

    def test_alter_table(self, executor):
        """Test table() adds columns to an existing table."""
        migration = CreateWidgets(executor)
        migration.up()
        migration.table("widgets", lambda table: table.string("colour").nullable())
        assert executor.table_column_names("widgets") == ["id", "label", "weight", "colour"]

    def test_drop_missing_table(self, executor):
        """Test dropping a table that does not exist is a no-op."""
        CreateWidgets(executor).down()
        assert not executor.table_exists("widgets")

    def test_abstract_migration(self, executor):
        """Test Migration itself cannot be instantiated."""
        with pytest.raises(TypeError):
            Migration(executor)
