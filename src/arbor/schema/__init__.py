"""Schema blueprints, DDL rendering and migrations for arbor."""

from arbor.schema.blueprint import Blueprint, BlueprintMode
from arbor.schema.column import Column, ColumnAttributes, ColumnParameters
from arbor.schema.commands import (
    DropColumn,
    DropForeign,
    DropIndex,
    DropPrimary,
    ForeignKey,
    IndexDefinition,
    IndexKind,
)
from arbor.schema.grammar import SchemaGrammar
from arbor.schema.migration import Migration
from arbor.schema.migrator import Migrator
from arbor.types import ColumnType

__all__ = [
    "Blueprint",
    "BlueprintMode",
    "Column",
    "ColumnAttributes",
    "ColumnParameters",
    "ColumnType",
    "IndexDefinition",
    "IndexKind",
    "ForeignKey",
    "DropColumn",
    "DropIndex",
    "DropPrimary",
    "DropForeign",
    "SchemaGrammar",
    "Migration",
    "Migrator",
]
