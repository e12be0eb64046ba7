"""
JSON format handler.

Strict JSON only: the stdlib decoder with its NaN/Infinity extension
switched off. Objects keep member order, arrays name their children by
index, scalars keep their Python type (int stays int, anything with a
fraction or exponent is a float).
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from ..config import get_config
from ..dom import JsonHints, Node, NodeType, ensure_acyclic, id_sequence
from ..errors import ParseError, SerializationError
from .base import BaseHandler, SerializeOptions, registry

logger = logging.getLogger(__name__)

# Leading whitespace of the first indented line
INDENT_PATTERN = re.compile(r"^([ \t]+)\S", re.MULTILINE)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


class JSONHandler(BaseHandler):
    """JSON parser/serializer."""

    format_type = "json"
    name = "JSON"
    extensions = [".json"]
    mime_types = ["application/json", "text/json"]

    def detect(self, content: str) -> bool:
        """JSON documents are bracketed and decode cleanly."""
        if not content or not isinstance(content, str):
            return False
        trimmed = content.strip()
        if not ((trimmed.startswith('{') and trimmed.endswith('}'))
                or (trimmed.startswith('[') and trimmed.endswith(']'))):
            return False
        try:
            json.loads(trimmed, parse_constant=_reject_constant)
        except ValueError:
            return False
        return True

    def parse(self, content: str) -> Node:
        """Parse JSON into a tree of nodes."""
        text = self._require_text(content)
        try:
            data = json.loads(text, parse_constant=_reject_constant)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Invalid JSON: {exc.msg}", line=exc.lineno, column=exc.colno) from exc
        except ValueError as exc:
            raise ParseError(f"Invalid JSON: {exc}") from exc
        except RecursionError as exc:
            raise ParseError("Invalid JSON: nesting too deep") from exc

        root = self._build(data, None, id_sequence("json"))
        hints = JsonHints(indent=detect_indent(text))
        logger.debug("Parsed JSON document: %d top-level children", len(root.children))
        return self._stamp(root, content, hints)

    def _build(self, data: Any, name: str | None, next_id) -> Node:
        # dict/list before scalars; bool is an int so it needs no special case here
        if isinstance(data, dict):
            node = Node(type=NodeType.OBJECT, name=name, id=next_id())
            for key, value in data.items():
                node.children.append(self._build(value, key, next_id))
        elif isinstance(data, list):
            node = Node(type=NodeType.ARRAY, name=name, id=next_id())
            for index, item in enumerate(data):
                node.children.append(self._build(item, str(index), next_id))
        else:
            return Node(type=NodeType.VALUE, name=name, value=data, id=next_id())
        for child in node.children:
            child.parent = node
        return node

    def serialize(self, node: Node, options: SerializeOptions | None = None) -> str:
        """Serialize a tree to JSON text, indented unless options.compact."""
        options = options or SerializeOptions()
        cfg = get_config().json
        ensure_acyclic(node)
        try:
            data = self._to_data(node)
        except RecursionError as exc:
            raise SerializationError("Tree is too deep to serialize") from exc

        try:
            if options.compact:
                return json.dumps(data, separators=(",", ":"),
                                  ensure_ascii=cfg.ensure_ascii, allow_nan=False)
            indent = options.indent or self._recorded_indent(node) or " " * cfg.indent
            return json.dumps(data, indent=indent, ensure_ascii=cfg.ensure_ascii, allow_nan=False)
        except ValueError as exc:
            raise SerializationError(f"Cannot serialize to JSON: {exc}") from exc

    @staticmethod
    def _recorded_indent(node: Node) -> str | None:
        metadata = getattr(node, "metadata", None)
        hints = metadata.json if metadata is not None else None
        return hints.indent if hints is not None else None

    def _to_data(self, node: Node) -> Any:
        node_type = getattr(node, "type", None)
        if node_type == NodeType.VALUE:
            value = node.value
            if value is not None and not isinstance(value, (str, int, float)):
                raise SerializationError(
                    f"Unsupported value type {type(value).__name__} at node {node.name!r}")
            return value
        if node_type == NodeType.OBJECT:
            members: dict[str, Any] = {}
            for child in node.children or ():
                if child.name is None:
                    raise SerializationError(f"Object member without a name under {node.name!r}")
                if str(child.name) in members:
                    raise SerializationError(f"Duplicate member name {str(child.name)!r} under {node.name!r}")
                members[str(child.name)] = self._to_data(child)
            return members
        if node_type == NodeType.ARRAY:
            return [self._to_data(child) for child in node.children or ()]
        if node_type is None:
            raise SerializationError("Invalid node: missing type")
        raise SerializationError(f"Unknown node type: {node_type!r}")


def detect_indent(text: str) -> str | None:
    """Indentation unit of pretty-printed JSON, None for single-line documents."""
    match = INDENT_PATTERN.search(text)
    return match.group(1) if match else None


registry.register(JSONHandler())
