"""Exception types raised by the What Did I Do core.

Two failure families are distinguished so that callers never confuse a
broken database with an empty one:

- StorageError: the SQLite file could not be opened, migrated, read or
  written. Aggregators let it propagate; a failed count must not turn into a
  zero-filled chart.
- ValidationError: the caller passed something malformed (unknown category,
  unparseable date, end before start). Raised before any query is issued.

"Not found" is not an exception: delete/update return False and single-row
lookups return None.
"""


class StorageError(RuntimeError):
    """Raised when the underlying database operation fails."""


class ValidationError(ValueError):
    """Raised when caller input is rejected before touching the database."""
