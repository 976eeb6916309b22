"""Database dialect profiles for arbor.

A profile bundles engine construction, DDL capability flags and the
column type mapping for one SQL engine family.
"""

from typing import Union

from arbor.dialects.base import DialectProfile
from arbor.dialects.mysql import MySQLProfile
from arbor.dialects.postgresql import PostgreSQLProfile
from arbor.dialects.sqlite import SQLiteProfile
from arbor.exceptions import UnsupportedDialectError
from arbor.types import Dialect

# Dialect registry
_DIALECT_REGISTRY: dict[str, type[DialectProfile]] = {
    "sqlite": SQLiteProfile,
    "postgresql": PostgreSQLProfile,
    "postgres": PostgreSQLProfile,  # Alias
    "pgsql": PostgreSQLProfile,  # Alias
    "mysql": MySQLProfile,
    "mariadb": MySQLProfile,  # Alias
}


def get_profile(name: Union[str, Dialect]) -> DialectProfile:
    """Get a dialect profile by name or enum member.

    Args:
        name: Dialect name (sqlite, postgresql, mysql) or a Dialect member.
               "postgres" is accepted as an alias for "postgresql".

    Returns:
        Profile instance

    Raises:
        UnsupportedDialectError: If dialect name is not supported

    Examples:
        >>> profile = get_profile("sqlite")
        >>> url = profile.build_url(config)
    """
    key = name.value if isinstance(name, Dialect) else str(name)
    name_lower = key.lower()
    if name_lower not in _DIALECT_REGISTRY:
        supported = ", ".join(get_supported_dialects())
        raise UnsupportedDialectError(
            f"Unsupported database dialect: {key!r}. "
            f"Supported dialects: {supported}"
        )

    return _DIALECT_REGISTRY[name_lower]()


def register_profile(name: str, profile_class: type[DialectProfile]) -> None:
    """Register a custom dialect profile.

    Args:
        name: Dialect name
        profile_class: Profile class to register
    """
    _DIALECT_REGISTRY[name.lower()] = profile_class


def get_supported_dialects() -> list[str]:
    """Get list of supported dialect names.

    Returns:
        List of dialect names
    """
    return sorted(_DIALECT_REGISTRY.keys())


__all__ = [
    "Dialect",
    "DialectProfile",
    "SQLiteProfile",
    "PostgreSQLProfile",
    "MySQLProfile",
    "get_profile",
    "register_profile",
    "get_supported_dialects",
]
