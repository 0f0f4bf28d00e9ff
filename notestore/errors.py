class NoteStoreError(Exception):
    """Base class for every error raised by the note store."""


class ConstraintViolation(NoteStoreError):
    """A write broke a NOT NULL or uniqueness rule. Fix the input; retrying won't help."""


class IntegrityError(NoteStoreError):
    """A stored row does not satisfy the declared schema (null in a required column, bad keyPoints...)."""


class StoreIOError(NoteStoreError):
    """Transient database failure: locked past the timeout, disk full, unreadable file.

    The store never retries on its own.
    """


class StoreClosedError(NoteStoreError):
    """The store was closed; open a new one to keep working."""


class SchemaError(NoteStoreError):
    """The database file holds a schema this code does not understand."""
