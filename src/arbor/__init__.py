"""
Arbor - relational data access toolkit.

This package provides a fluent query builder, schema blueprints rendered to
MySQL, SQLite and PostgreSQL DDL, migrations, and active records on top of
SQLAlchemy connections.
"""

__version__ = "0.1.0"
