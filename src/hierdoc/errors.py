"""
Exception types raised by hierdoc.

Parsing and serialization fail fast: no partial tree or partial text is
ever returned. Validation never raises, it reports errors instead.
"""

from __future__ import annotations


class HierdocError(Exception):
    """Base exception for all hierdoc failures."""


class ParseError(HierdocError, ValueError):
    """Raised when source text is absent, empty, or grammatically invalid."""

    def __init__(self, message: str, line: int | None = None, column: int | None = None):
        self.message = message
        self.line = line
        self.column = column
        if line is not None:
            location = f"line {line}" if column is None else f"line {line}, column {column}"
            message = f"{message} ({location})"
        super().__init__(message)


class SerializationError(HierdocError, ValueError):
    """Raised when a tree cannot be written out (bad node type, cycle, bad value)."""


class UnsupportedFormatError(HierdocError, LookupError):
    """Raised when no handler is registered for a format identifier."""
