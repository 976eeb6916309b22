"""Column declarations collected by a blueprint."""

from dataclasses import dataclass, field
from typing import Any, Optional

from arbor.types import ColumnType


@dataclass(frozen=True)
class ColumnParameters:
    """Type parameters; which ones apply depends on the column type."""

    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    values: tuple = ()


@dataclass
class ColumnAttributes:
    """Modifiers set through the chained setters on ``Column``."""

    nullable: bool = False
    default: Any = None
    has_default: bool = False
    unsigned: bool = False
    auto_increment: bool = False
    primary: bool = False
    unique: bool = False
    comment: Optional[str] = None


class Column:
    """One column of a blueprint.

    Name, type and parameters are fixed when the column is declared;
    attributes are changed by chaining:

        >>> table.string("email", 191).unique().comment("login name")
    """

    def __init__(
        self,
        name: str,
        type: ColumnType,
        parameters: Optional[ColumnParameters] = None,
    ) -> None:
        self._name = name
        self._type = type
        self._parameters = parameters or ColumnParameters()
        self.attributes = ColumnAttributes()

    @property
    def name(self) -> str:
        return self._name

    @property
    def type(self) -> ColumnType:
        return self._type

    @property
    def parameters(self) -> ColumnParameters:
        return self._parameters

    def nullable(self, value: bool = True) -> "Column":
        self.attributes.nullable = value
        return self

    def default(self, value: Any) -> "Column":
        self.attributes.default = value
        self.attributes.has_default = True
        return self

    def unsigned(self) -> "Column":
        self.attributes.unsigned = True
        return self

    def auto_increment(self) -> "Column":
        self.attributes.auto_increment = True
        return self

    def primary(self) -> "Column":
        self.attributes.primary = True
        return self

    def unique(self) -> "Column":
        self.attributes.unique = True
        return self

    def comment(self, text: str) -> "Column":
        self.attributes.comment = text
        return self

    def __repr__(self) -> str:
        return f"<Column {self._name} {self._type.value}>"
