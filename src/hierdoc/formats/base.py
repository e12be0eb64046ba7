"""
Format handler contract and registry.

Each format handler turns one text format into a tree of Nodes and back.
The contract is structural: any object with the right attributes and
methods is a FormatHandler, no inheritance required. BaseHandler carries
the shared defaults the bundled handlers build on.

Handlers hold no per-document state. Everything learned from a document
(indentation, styles) is recorded on the tree it returns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from ..dom import Metadata, Node, NodeType
from ..errors import ParseError, UnsupportedFormatError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capabilities:
    """What a handler can do."""
    parse: bool = True
    serialize: bool = True
    validate: bool = True


@dataclass
class ValidationResult:
    """Outcome of validate(): never an exception."""
    valid: bool
    errors: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.valid


@dataclass(frozen=True)
class SerializeOptions:
    """
    Serializer options.

    indent: indentation unit (whitespace only). Overrides whatever the
        tree recorded from its source.
    compact: single-line output where the format allows it (JSON).
    """
    indent: str | None = None
    compact: bool = False

    def __post_init__(self):
        if self.indent is not None and (not self.indent or self.indent.strip()):
            raise ValueError(f"indent must be non-empty whitespace, got {self.indent!r}")


@runtime_checkable
class FormatHandler(Protocol):
    """Structural protocol every format handler satisfies."""

    @property
    def format_type(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def extensions(self) -> list[str]: ...

    @property
    def mime_types(self) -> list[str]: ...

    @property
    def capabilities(self) -> Capabilities: ...

    def parse(self, content: str) -> Node: ...

    def serialize(self, node: Node, options: SerializeOptions | None = None) -> str: ...

    def validate(self, content: str) -> ValidationResult: ...


class BaseHandler:
    """
    Shared defaults for format handlers.

    Subclasses set the descriptor attributes and implement parse() and
    serialize(). Descriptors are class attributes so instances stay
    stateless.
    """

    format_type: str = "unknown"
    name: str = "Unknown"
    extensions: list[str] = []
    mime_types: list[str] = []

    @property
    def capabilities(self) -> Capabilities:
        return Capabilities()

    def parse(self, content: str) -> Node:
        raise NotImplementedError(f"{type(self).__name__} does not parse")

    def serialize(self, node: Node, options: SerializeOptions | None = None) -> str:
        raise NotImplementedError(f"{type(self).__name__} does not serialize")

    def validate(self, content: str) -> ValidationResult:
        """Validate by parsing; grammar errors become messages."""
        try:
            self.parse(content)
        except ParseError as exc:
            return ValidationResult(valid=False, errors=[str(exc)])
        return ValidationResult(valid=True)

    def detect(self, content: str) -> bool:
        """
        Magic detection: returns True if content looks like this format.
        Default implementation returns False (rely on extension only).
        """
        return False

    def reformat(self, content: str) -> str:
        """Parse then serialize, normalising layout."""
        return self.serialize(self.parse(content))

    def default_content(self) -> str:
        """Serialized form of an empty document."""
        return self.serialize(Node(type=NodeType.OBJECT))

    def _require_text(self, content: object) -> str:
        """Reject None, non-strings and blank text before parsing."""
        if content is None:
            raise ParseError(f"{self.name} content is required, got None")
        if not isinstance(content, str):
            raise ParseError(f"{self.name} content must be a string, got {type(content).__name__}")
        if not content.strip():
            raise ParseError(f"{self.name} content is empty")
        return content

    def _stamp(self, root: Node, content: str, hints=None) -> Node:
        """Record tree-wide metadata on a freshly parsed root."""
        root.metadata = Metadata(
            format=self.format_type,
            original_content=content,
            hints=hints if hints is not None else root.metadata.hints,
        )
        return root


@dataclass
class FormatMatch:
    """Result of format detection."""
    handler: FormatHandler
    confidence: float  # 0.0 to 1.0


class FormatRegistry:
    """Registry of format handlers with lookup and detection."""

    def __init__(self):
        self._handlers: list[FormatHandler] = []
        self._by_type: dict[str, FormatHandler] = {}
        self._by_name: dict[str, FormatHandler] = {}
        self._by_extension: dict[str, FormatHandler] = {}
        self._by_mime_type: dict[str, FormatHandler] = {}

    def register(self, handler: FormatHandler) -> None:
        """Register a handler. Re-registering a format type replaces it."""
        if not isinstance(handler, FormatHandler):
            raise TypeError(f"{type(handler).__name__} does not implement FormatHandler")
        key = handler.format_type.lower()
        previous = self._by_type.get(key)
        if previous is not None:
            logger.debug("Replacing handler for format %r", key)
            self._handlers.remove(previous)
            for index in (self._by_name, self._by_extension, self._by_mime_type):
                for stale in [k for k, v in index.items() if v is previous]:
                    del index[stale]
        self._handlers.append(handler)
        self._by_type[key] = handler
        self._by_name[handler.name.lower()] = handler
        for ext in handler.extensions:
            # First registered wins for extension conflicts
            ext = self._normalize_extension(ext)
            if ext not in self._by_extension:
                self._by_extension[ext] = handler
        for mime in handler.mime_types:
            mime = mime.lower()
            if mime not in self._by_mime_type:
                self._by_mime_type[mime] = handler

    def get(self, format_type: str) -> FormatHandler:
        """Handler for a format identifier; raises UnsupportedFormatError."""
        handler = self._by_type.get(format_type.lower()) or self.get_by_extension(format_type)
        if handler is None:
            raise UnsupportedFormatError(f"Unsupported format: {format_type}")
        return handler

    def is_supported(self, format_type: str) -> bool:
        return format_type.lower() in self._by_type

    def get_by_name(self, name: str) -> FormatHandler | None:
        """Get handler by human-readable name."""
        return self._by_name.get(name.lower())

    def get_by_extension(self, ext: str) -> FormatHandler | None:
        """Get handler by file extension, with or without the dot."""
        return self._by_extension.get(self._normalize_extension(ext))

    def get_by_mime_type(self, mime_type: str) -> FormatHandler | None:
        return self._by_mime_type.get(mime_type.split(";", 1)[0].strip().lower())

    def detect(self, content: str, filename: str | None = None) -> FormatMatch | None:
        """
        Detect the best handler for content.

        Priority:
        1. Extension match (high confidence)
        2. Magic detection (medium confidence)
        """
        if filename:
            ext = self._get_extension(filename)
            if ext and ext in self._by_extension:
                return FormatMatch(handler=self._by_extension[ext], confidence=1.0)

        for handler in self._handlers:
            detect = getattr(handler, "detect", None)
            if detect is not None and detect(content):
                return FormatMatch(handler=handler, confidence=0.8)

        # Return None to let caller decide fallback
        return None

    @staticmethod
    def _normalize_extension(ext: str) -> str:
        if not ext.startswith('.'):
            ext = '.' + ext
        return ext.lower()

    def _get_extension(self, filename: str) -> str | None:
        """Extract lowercase extension from filename."""
        if '.' in filename:
            return '.' + filename.rsplit('.', 1)[-1].lower()
        return None

    @property
    def formats(self) -> list[str]:
        """Registered format identifiers, in registration order."""
        return [handler.format_type for handler in self._handlers]

    @property
    def handlers(self) -> list[FormatHandler]:
        """List all registered handlers."""
        return list(self._handlers)


# Global registry instance
registry = FormatRegistry()
