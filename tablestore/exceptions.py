"""Exceptions for the tablestore package."""

from typing import Any, get_origin


class StoreError(Exception):
    """Base exception for all recoverable store errors."""

    pass


class NoSuchTableError(StoreError, KeyError):
    """Operation referenced a table that is not in the store."""

    def __init__(self, table: str):
        self.table = table
        super().__init__(f"No such table: {table!r}")

    def __str__(self) -> str:
        return self.args[0]


class NoSuchFieldError(StoreError, KeyError):
    """Operation referenced a field that is not in an existing table."""

    def __init__(self, table: str, field: str):
        self.table = table
        self.field = field
        super().__init__(f"No such field: {field!r} in table {table!r}")

    def __str__(self) -> str:
        return self.args[0]


class DecodeError(StoreError, ValueError):
    """Bytes could not be interpreted as a value or as a snapshot."""

    pass


class TypeMismatchError(DecodeError, TypeError):
    """Stored value cannot be read back as the requested type."""

    def __init__(self, expected: Any, actual: type, detail: str = ""):
        self.expected = expected
        self.actual = actual
        message = f"Expected {_type_name(expected)}, got {actual.__name__}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class EncodeError(RuntimeError):
    """A value handed to the store cannot be encoded.

    This is a programming error, not a recoverable store condition, so it
    deliberately does not derive from StoreError.
    """

    pass


def _type_name(tp: Any) -> str:
    if get_origin(tp) is not None:
        return repr(tp)
    return getattr(tp, "__name__", None) or repr(tp)
