"""
hierdoc - hierarchical document model with JSON and YAML handlers.

    >>> import hierdoc
    >>> root = hierdoc.parse('{"name": "x"}', "json")
    >>> hierdoc.serialize(root, "yaml")
    'name: x\\n'
"""

from __future__ import annotations

import logging

from .dom import Metadata, Node, NodeType, check_tree, from_python, same_structure
from .errors import HierdocError, ParseError, SerializationError, UnsupportedFormatError
from .formats import FormatHandler, SerializeOptions, ValidationResult, registry

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())


def get_handler(format_type: str) -> FormatHandler:
    """Registered handler for a format id or file extension."""
    return registry.get(format_type)


def parse(content: str, format_type: str) -> Node:
    return get_handler(format_type).parse(content)


def serialize(node: Node, format_type: str | None = None,
              options: SerializeOptions | None = None) -> str:
    """
    Serialize a tree. Without an explicit format the one recorded on the
    root at parse time is used.
    """
    if format_type is None:
        format_type = getattr(getattr(node, "metadata", None), "format", None)
        if format_type is None:
            raise UnsupportedFormatError("No format given and none recorded on the tree")
    return get_handler(format_type).serialize(node, options)


def validate(content: str, format_type: str) -> ValidationResult:
    return get_handler(format_type).validate(content)


__all__ = [
    "HierdocError",
    "Metadata",
    "Node",
    "NodeType",
    "ParseError",
    "SerializationError",
    "SerializeOptions",
    "UnsupportedFormatError",
    "ValidationResult",
    "check_tree",
    "from_python",
    "get_handler",
    "parse",
    "same_structure",
    "serialize",
    "validate",
]
