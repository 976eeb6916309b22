"""Enumerations shared by the dialect, query and schema layers."""

from enum import Enum


class Dialect(str, Enum):
    """SQL engine families arbor can render for."""

    MYSQL = "mysql"
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class ColumnType(str, Enum):
    """Abstract column types understood by every dialect profile."""

    BIG_INTEGER = "bigint"
    INTEGER = "int"
    SMALL_INTEGER = "smallint"
    TINY_INTEGER = "tinyint"
    BOOLEAN = "boolean"
    STRING = "varchar"
    CHAR = "char"
    TEXT = "text"
    LONG_TEXT = "longtext"
    DECIMAL = "decimal"
    FLOAT = "float"
    DOUBLE = "double"
    DATE = "date"
    DATETIME = "datetime"
    TIMESTAMP = "timestamp"
    JSON = "json"
    ENUM = "enum"
