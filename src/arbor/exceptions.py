"""
Exception hierarchy for arbor.

Programmer errors (bad operators, missing table or intent, unsupported
dialect features) subclass ValueError/RuntimeError so they surface loudly.
Driver errors raised while executing statements are not wrapped; they
propagate from SQLAlchemy unchanged.
"""


class ArborError(Exception):
    """Base class for all arbor errors."""


class QueryStateError(ArborError, RuntimeError):
    """A query was rendered before its table or intent was set."""


class InvalidQueryError(ArborError, ValueError):
    """A builder method received an argument it cannot render."""


class UnsupportedDialectError(ArborError, ValueError):
    """The active database is not one of the supported dialects."""


class SchemaError(ArborError, ValueError):
    """A blueprint cannot be rendered as declared."""


class UnsupportedSchemaOperation(SchemaError):
    """The dialect has no DDL for the requested blueprint operation."""


class InvalidCastError(ArborError, ValueError):
    """A record declares a cast type that does not exist."""


class RecordNotFoundError(ArborError, LookupError):
    """No record matched the requested primary key."""

    def __init__(self, model: str, key) -> None:
        self.model = model
        self.key = key
        super().__init__(f"No {model} record found for key {key!r}")


class RecordStateError(ArborError, RuntimeError):
    """A record operation is invalid for the record's lifecycle state."""


class MigrationError(ArborError, RuntimeError):
    """A migration module could not be loaded or applied."""


class TransactionError(ArborError, RuntimeError):
    """Commit or rollback was requested with no open transaction."""
