"""
DDL rendering.

``SchemaGrammar`` turns a blueprint into statements for one dialect
profile. All dialect differences are read from the profile: the grammar
itself never branches on the dialect name.
"""

from typing import TYPE_CHECKING

from arbor.exceptions import SchemaError, UnsupportedSchemaOperation
from arbor.schema.commands import (
    DropColumn,
    DropForeign,
    DropIndex,
    DropPrimary,
    ForeignKey,
    IndexDefinition,
    IndexKind,
    index_name,
)

if TYPE_CHECKING:
    from arbor.dialects.base import DialectProfile
    from arbor.schema.blueprint import Blueprint
    from arbor.schema.column import Column


class SchemaGrammar:
    """Render blueprints for one dialect profile."""

    def __init__(self, profile: "DialectProfile") -> None:
        self.profile = profile

    def compile(self, blueprint: "Blueprint") -> list[str]:
        """Render every statement for the blueprint.

        Create mode yields the CREATE TABLE statement followed by any
        statements the dialect cannot express inside it (standalone
        indexes, column comments). Alter mode yields one statement per
        column, then per index, then per command.
        """
        if blueprint.creating:
            return [self.compile_create_table(blueprint), *self._deferred_statements(blueprint)]
        return self._compile_alter(blueprint)

    # ------------------------------------------------------------------
    # CREATE TABLE
    # ------------------------------------------------------------------

    def compile_create_table(self, blueprint: "Blueprint") -> str:
        profile = self.profile
        inline_primary = self._inline_primary_columns(blueprint)

        definitions = [
            self.column_definition(column, column.name in inline_primary)
            for column in blueprint.columns
        ]

        primary = self._table_primary_key(blueprint, inline_primary)
        if primary is not None:
            definitions.append(profile.inline_index(primary))

        if profile.supports_inline_indexes:
            definitions.extend(
                profile.inline_index(index) for index in blueprint.indexes if not index.is_primary
            )

        for command in blueprint.commands:
            if not isinstance(command, ForeignKey):
                raise SchemaError(f"{type(command).__name__} cannot be used while creating a table")
            definitions.append(profile.foreign_key_clause(command))

        sql = f"CREATE TABLE {profile.quote(blueprint.table)} (\n  "
        sql += ",\n  ".join(definitions)
        sql += "\n)"
        if profile.table_options:
            sql += f" {profile.table_options}"
        return sql

    def _deferred_statements(self, blueprint: "Blueprint") -> list[str]:
        statements = []
        if not self.profile.supports_inline_indexes:
            statements.extend(
                self.profile.create_index(blueprint.table, index)
                for index in blueprint.indexes
                if not index.is_primary
            )
        statements.extend(self._comment_statements(blueprint))
        return statements

    def _primary_columns(self, blueprint: "Blueprint") -> list[str]:
        names = []
        for column in blueprint.columns:
            attributes = column.attributes
            if attributes.primary or (
                attributes.auto_increment and self.profile.auto_increment_definition(column)
            ):
                names.append(column.name)
        return names

    def _inline_primary_columns(self, blueprint: "Blueprint") -> set:
        """Columns whose definition carries PRIMARY KEY itself.

        Only profiles with ``inline_primary_key`` keep a single primary
        column inline; everything else is hoisted to a table constraint.
        """
        declared = self._primary_columns(blueprint)
        explicit = [index for index in blueprint.indexes if index.is_primary]

        if explicit and declared and tuple(declared) != explicit[0].columns:
            raise SchemaError(
                f"Table {blueprint.table!r} declares primary key columns {declared} "
                f"and a primary index on {list(explicit[0].columns)}"
            )

        atomic = [
            column.name
            for column in blueprint.columns
            if column.attributes.auto_increment and self.profile.auto_increment_definition(column)
        ]
        if atomic and len(declared) > 1:
            raise UnsupportedSchemaOperation(
                f"{self.profile.name} cannot combine auto-increment column {atomic[0]!r} "
                "with a composite primary key"
            )

        if self.profile.inline_primary_key and len(declared) == 1:
            return set(declared)
        return set()

    def _table_primary_key(self, blueprint: "Blueprint", inline: set):
        for index in blueprint.indexes:
            if index.is_primary:
                return None if inline else index

        declared = self._primary_columns(blueprint)
        if not declared or inline:
            return None
        columns = tuple(declared)
        return IndexDefinition(IndexKind.PRIMARY, index_name(blueprint.table, columns, IndexKind.PRIMARY), columns)

    # ------------------------------------------------------------------
    # ALTER TABLE
    # ------------------------------------------------------------------

    def _compile_alter(self, blueprint: "Blueprint") -> list[str]:
        profile = self.profile
        table = blueprint.table
        statements = []

        for column in blueprint.columns:
            self._check_added_column(column)
            statements.append(
                f"ALTER TABLE {profile.quote(table)} ADD COLUMN "
                f"{self.column_definition(column, column.attributes.primary)}"
            )

        for index in blueprint.indexes:
            statements.append(profile.add_index(table, index))

        for command in blueprint.commands:
            statements.append(self._compile_command(table, command))

        statements.extend(self._comment_statements(blueprint))
        return statements

    def _compile_command(self, table: str, command) -> str:
        profile = self.profile
        if isinstance(command, ForeignKey):
            return profile.add_foreign(table, command)
        if isinstance(command, DropColumn):
            return profile.drop_column(table, command.column)
        if isinstance(command, DropIndex):
            return profile.drop_index(table, command.name)
        if isinstance(command, DropPrimary):
            return profile.drop_primary(table)
        if isinstance(command, DropForeign):
            return profile.drop_foreign(table, command.name)
        raise SchemaError(f"Unknown blueprint command: {command!r}")

    def _check_added_column(self, column: "Column") -> None:
        # SQLite's ADD COLUMN rejects key constraints, and NOT NULL without a
        # non-NULL default fails as soon as the table has rows
        if not self.profile.inline_primary_key:
            return
        attributes = column.attributes
        if attributes.primary or attributes.auto_increment or attributes.unique:
            raise UnsupportedSchemaOperation(
                f"{self.profile.name} cannot add key column {column.name!r} to an existing table"
            )
        if not attributes.nullable and (not attributes.has_default or attributes.default is None):
            raise UnsupportedSchemaOperation(
                f"{self.profile.name} cannot add NOT NULL column {column.name!r} without a default; "
                "make it nullable or give it a default"
            )

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def column_definition(self, column: "Column", inline_primary: bool = False) -> str:
        """Render one column clause.

        Order: name, type, UNSIGNED, NOT NULL, auto-increment keyword,
        PRIMARY KEY, UNIQUE, DEFAULT, COMMENT.
        """
        profile = self.profile
        attributes = column.attributes

        if attributes.auto_increment:
            atomic = profile.auto_increment_definition(column)
            if atomic is not None:
                return atomic

        sql = f"{profile.quote(column.name)} {profile.map_type(column)}"

        if attributes.unsigned and profile.supports_unsigned:
            sql += " UNSIGNED"
        if not attributes.nullable:
            sql += " NOT NULL"
        if attributes.auto_increment and profile.auto_increment_keyword:
            sql += f" {profile.auto_increment_keyword}"
        if inline_primary:
            sql += " PRIMARY KEY"
        if attributes.unique:
            sql += " UNIQUE"
        if attributes.has_default:
            sql += f" DEFAULT {profile.format_default(attributes.default, column)}"
        if attributes.comment is not None and profile.supports_inline_comments:
            sql += f" COMMENT {profile.quote_string(attributes.comment)}"
        return sql

    def _comment_statements(self, blueprint: "Blueprint") -> list[str]:
        if not self.profile.supports_comment_statements:
            return []
        return [
            self.profile.comment_on_column(blueprint.table, column.name, column.attributes.comment)
            for column in blueprint.columns
            if column.attributes.comment is not None
        ]
