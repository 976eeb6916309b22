"""Index definitions and table commands collected by a blueprint."""

from dataclasses import dataclass
from enum import Enum
from typing import Union


class IndexKind(str, Enum):
    PRIMARY = "primary"
    UNIQUE = "unique"
    INDEX = "index"


@dataclass(frozen=True)
class IndexDefinition:
    kind: IndexKind
    name: str
    columns: tuple

    @property
    def is_primary(self) -> bool:
        return self.kind is IndexKind.PRIMARY

    @property
    def is_unique(self) -> bool:
        return self.kind is IndexKind.UNIQUE


@dataclass(frozen=True)
class ForeignKey:
    """``FOREIGN KEY (columns) REFERENCES on (references)``."""

    name: str
    columns: tuple
    on: str
    references: tuple = ("id",)
    on_delete: str = "restrict"
    on_update: str = "restrict"


@dataclass(frozen=True)
class DropColumn:
    column: str


@dataclass(frozen=True)
class DropIndex:
    name: str


@dataclass(frozen=True)
class DropPrimary:
    pass


@dataclass(frozen=True)
class DropForeign:
    name: str


Command = Union[ForeignKey, DropColumn, DropIndex, DropPrimary, DropForeign]

REFERENTIAL_ACTIONS = frozenset({"restrict", "cascade", "set null", "set default", "no action"})


def index_name(table: str, columns, kind: IndexKind) -> str:
    """Derive ``{table}_{columns}_{kind}``."""
    return f"{table}_{'_'.join(columns)}_{kind.value}"


def foreign_key_name(table: str, columns) -> str:
    """Derive ``fk_{table}_{columns}``."""
    return f"fk_{table}_{'_'.join(columns)}"
