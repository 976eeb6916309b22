"""Not a migration: the file name does not match the migration pattern."""
