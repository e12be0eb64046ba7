"""
YAML format handler.

A line-oriented reader for block YAML (mappings, sequences, literal and
folded scalars) with an embedded flow-collection reader, and a writer that
replays the presentation recorded at parse time:

- document indentation (character and width) on the root
- quote style, block scalar style and tags on scalars
- flow vs block notation on collections

Indentation is treated leniently: an entry only has to be deeper than its
parent, and a more-indented line that reads as a mapping entry after a
completed entry becomes a sibling. Anything that cannot be placed raises
ParseError with the offending line.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

from ..config import YamlConfig, get_config
from ..dom import Node, NodeType, YamlHints, ensure_acyclic, id_sequence
from ..errors import ParseError, SerializationError
from .base import BaseHandler, SerializeOptions, registry

logger = logging.getLogger(__name__)

DOCUMENT_START = re.compile(r"^---(?:[ \t]+(.*))?$")
DOCUMENT_END = re.compile(r"^\.\.\.(?:[ \t]+#.*)?$")
ANCHOR_PATTERN = re.compile(r"^&([^\s,\[\]{}]+)[ \t]*")
ALIAS_PATTERN = re.compile(r"^\*([^\s,\[\]{}]+)$")
TAG_PATTERN = re.compile(r"^(!<[^>]*>|![^\s,\[\]{}]*)[ \t]*")
BLOCK_HEADER = re.compile(r"^([|>])([1-9][-+]?|[-+][1-9]?)?$")

# Plain scalar resolution (YAML 1.1 flavour)
NULL_WORDS = frozenset({"", "~", "null", "Null", "NULL"})
TRUE_WORDS = frozenset({"true", "True", "TRUE", "yes", "Yes", "YES", "on", "On", "ON"})
FALSE_WORDS = frozenset({"false", "False", "FALSE", "no", "No", "NO", "off", "Off", "OFF"})
INT_DECIMAL = re.compile(r"^[-+]?(0|[1-9][0-9_]*)$")
INT_HEX = re.compile(r"^0x[0-9a-fA-F_]+$")
INT_OCTAL = re.compile(r"^0o[0-7_]+$")
FLOAT_PATTERN = re.compile(
    r"^[-+]?(\.[0-9]+|[0-9]+\.[0-9]*)([eE][-+]?[0-9]+)?$|^[-+]?[0-9]+[eE][-+]?[0-9]+$"
)
INF_PATTERN = re.compile(r"^[-+]?\.(inf|Inf|INF)$")
NAN_PATTERN = re.compile(r"^\.(nan|NaN|NAN)$")
NUMERIC_KEY = re.compile(r"^[-+]?([0-9]+\.?[0-9]*|\.[0-9]+)$")
# Read as numbers or timestamps by YAML 1.1 loaders
LOOKS_NUMERIC = re.compile(r"^[-+]?[0-9][0-9_]*(:[0-5]?[0-9])+(\.[0-9_]*)?$|^[0-9]{4}-[0-9]{1,2}-[0-9]{1,2}")

CORE_TAGS = frozenset({"!!str", "!!int", "!!float", "!!bool", "!!null", "!!map", "!!seq"})

# Characters that cannot start a plain scalar
INDICATORS = frozenset("?:,[]{}&*!|>%@`#")
FLOW_INDICATORS = frozenset(",[]{}")

ESCAPES = {
    "0": "\0", "a": "\a", "b": "\b", "t": "\t", "\t": "\t", "n": "\n", "v": "\v",
    "f": "\f", "r": "\r", "e": "\x1b", " ": " ", '"': '"', "/": "/", "\\": "\\",
    "N": "\x85", "_": "\xa0", "L": "\u2028", "P": "\u2029",
}
HEX_ESCAPES = {"x": 2, "u": 4, "U": 8}


# ----------------------------------------------------------------------
# Scalar helpers
# ----------------------------------------------------------------------

def resolve_plain(text: str):
    """Resolve an unquoted scalar to None, bool, int, float or str."""
    if text in NULL_WORDS:
        return None
    if text in TRUE_WORDS:
        return True
    if text in FALSE_WORDS:
        return False
    if INT_DECIMAL.match(text):
        return int(text.replace("_", ""))
    if INT_HEX.match(text):
        return int(text[2:].replace("_", ""), 16)
    if INT_OCTAL.match(text):
        return int(text[2:].replace("_", ""), 8)
    if FLOAT_PATTERN.match(text):
        return float(text)
    if INF_PATTERN.match(text):
        return -math.inf if text.startswith("-") else math.inf
    if NAN_PATTERN.match(text):
        return math.nan
    return text


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_seq_item(text: str) -> bool:
    return text == "-" or text.startswith(("- ", "-\t"))


def _is_control(ch: str) -> bool:
    code = ord(ch)
    return code < 0x20 or code == 0x7F or ch in "\x85\u2028\u2029"


def _quoted_end(text: str, start: int) -> int:
    """Index just past the quote closing the scalar opened at `start`, or -1."""
    quote = text[start]
    i = start + 1
    while i < len(text):
        ch = text[i]
        if quote == '"' and ch == "\\":
            i += 2
            continue
        if ch == quote:
            if quote == "'" and text[i + 1:i + 2] == "'":
                i += 2
                continue
            return i + 1
        i += 1
    return -1


def _continue_quoted(joined: str, piece: str, blanks: int, quote: str) -> str:
    """Append a continuation line to an unterminated quoted scalar."""
    trailing = len(joined) - len(joined.rstrip("\\"))
    if quote == '"' and trailing % 2 == 1:
        # escaped line break
        return joined[:-1] + "\n" * blanks + piece
    if blanks:
        return joined.rstrip(" \t") + "\n" * blanks + piece
    return joined.rstrip(" \t") + " " + piece


def _strip_comment(text: str) -> str:
    """Drop a trailing ` #` comment, ignoring '#' inside quoted scalars."""
    quote = None
    prev = " "
    i = 0
    while i < len(text):
        ch = text[i]
        if quote:
            if quote == '"' and ch == "\\":
                i += 2
                prev = "x"
                continue
            if ch == quote:
                if quote == "'" and text[i + 1:i + 2] == "'":
                    i += 2
                    continue
                quote = None
        elif ch in "'\"" and prev in " \t[{,":
            quote = ch
        elif ch == "#" and prev in " \t":
            return text[:i].rstrip()
        prev = ch
        i += 1
    return text.rstrip()


def _split_key(text: str) -> tuple[str, str] | None:
    """Split `key: rest` into its raw key and the text after the colon."""
    if not text or text[0] in "[{" or _is_seq_item(text):
        return None
    if text[0] in "\"'":
        end = _quoted_end(text, 0)
        if end < 0:
            return None
        rest = text[end:].lstrip(" \t")
        if rest.startswith(":") and (len(rest) == 1 or rest[1] in " \t"):
            return text[:end], rest[1:].strip()
        return None
    for i, ch in enumerate(text):
        if ch == ":" and (i + 1 == len(text) or text[i + 1] in " \t"):
            return text[:i].rstrip(), text[i + 1:].strip()
    return None


def _unescape_double(body: str, line: int) -> str:
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        code = body[i + 1:i + 2]
        if code in ESCAPES:
            out.append(ESCAPES[code])
            i += 2
        elif code in HEX_ESCAPES:
            width = HEX_ESCAPES[code]
            digits = body[i + 2:i + 2 + width]
            if len(digits) != width or any(c not in "0123456789abcdefABCDEF" for c in digits):
                raise ParseError(f"Invalid escape sequence \\{code}{digits}", line=line)
            out.append(chr(int(digits, 16)))
            i += 2 + width
        else:
            raise ParseError(f"Invalid escape sequence \\{code}", line=line)
    return "".join(out)


def _unquote(text: str, line: int) -> str:
    """Value of a complete single- or double-quoted scalar."""
    body = text[1:-1]
    if text[0] == '"':
        return _unescape_double(body, line)
    return body.replace("''", "'")


def _fold(lines: list[str]) -> str:
    """Apply folded-scalar line folding to content lines (indent removed)."""
    out = ""
    prev: str | None = None
    blanks = 0
    for text in lines:
        if not text.strip():
            blanks += 1
            continue
        if prev is None:
            out = "\n" * blanks + text
        elif prev[0] not in " \t" and text[0] not in " \t":
            out += "\n" * blanks if blanks else " "
            out += text
        else:
            out += "\n" * (blanks + 1) + text
        prev = text
        blanks = 0
    return out


# ----------------------------------------------------------------------
# Reader
# ----------------------------------------------------------------------

@dataclass
class _Line:
    """One source line. `text` has indentation and comment removed."""
    number: int
    indent: int
    text: str
    raw: str
    commented: bool = False
    terminated: bool = True
    virtual: bool = False

    @property
    def blank(self) -> bool:
        return not self.raw.strip()


def _split_lines(content: str) -> list[_Line]:
    if content.startswith("\ufeff"):
        content = content[1:]
    pieces = content.split("\n")
    lines = []
    for number, raw in enumerate(pieces, start=1):
        raw = raw.rstrip("\r")
        stripped = raw.lstrip(" \t")
        indent = len(raw) - len(stripped)
        body = stripped.rstrip()
        text = _strip_comment(body)
        lines.append(_Line(
            number=number,
            indent=indent,
            text=text,
            raw=raw,
            commented=text != body,
            terminated=number < len(pieces),
        ))
    return lines


class _State:
    """Cursor over the lines of one document."""

    def __init__(self, lines: list[_Line]):
        self.lines = lines
        self.index = 0

    def peek(self) -> _Line | None:
        """Next line with content, skipping blank and comment-only lines."""
        while self.index < len(self.lines):
            line = self.lines[self.index]
            if line.text:
                return line
            self.index += 1
        return None

    def pop(self) -> _Line:
        line = self.peek()
        self.index += 1
        return line

    def peek_raw(self) -> _Line | None:
        if self.index < len(self.lines):
            return self.lines[self.index]
        return None

    def push_back(self, line: _Line) -> None:
        """Replace the line just popped with a re-indented view of its tail."""
        self.index -= 1
        self.lines[self.index] = line


class _Parser:
    """Per-call parse state: lines, anchors and the id sequence."""

    def __init__(self, content: str, next_id: Callable[[], str]):
        self.lines = _split_lines(content)
        self.next_id = next_id
        self.anchors: dict[str, Node] = {}
        self.state = _State([])
        self.indent_char: str | None = None
        self.indent_size: int | None = None
        self.explicit_start = False

    # -- document ------------------------------------------------------

    def read_document(self) -> Node:
        lines = self.lines
        start = 0
        while start < len(lines) and (not lines[start].text or
                                      (lines[start].indent == 0 and lines[start].text.startswith("%"))):
            start += 1
        if start == len(lines):
            raise ParseError("YAML content has no data (only comments or blank lines)")

        inline = None
        marker_line = lines[start]
        marker = DOCUMENT_START.match(marker_line.text) if marker_line.indent == 0 else None
        if marker:
            self.explicit_start = True
            inline = marker.group(1) or None
            start += 1

        end = len(lines)
        for j in range(start, len(lines)):
            line = lines[j]
            if line.indent == 0 and (DOCUMENT_START.match(line.text) or DOCUMENT_END.match(line.text)):
                end = j
                break
        if end < len(lines):
            trailing = [line for line in lines[end + 1:] if line.text]
            if DOCUMENT_START.match(lines[end].text) or trailing:
                raise ParseError("Multiple YAML documents are not supported", line=lines[end].number)

        self.state = _State(lines[start:end])
        if inline is not None:
            root = self.parse_value(inline, marker_line, -1, in_mapping=False)
        elif self.state.peek() is None:
            raise ParseError("YAML document is empty", line=marker_line.number)
        else:
            root = self.parse_block(-1)

        leftover = self.state.peek()
        if leftover is not None:
            raise ParseError(f"Unexpected content {leftover.text!r}", line=leftover.number)

        if self.indent_size is None:
            self._fallback_indentation()
        return root

    def _fallback_indentation(self) -> None:
        for line in self.lines:
            if line.text and line.indent > 0:
                leading = line.raw[:line.indent]
                if "\t" in leading:
                    self.indent_char, self.indent_size = "\t", leading.count("\t")
                else:
                    self.indent_char, self.indent_size = " ", line.indent
                return

    def _record_indentation(self, line: _Line, parent_indent: int) -> None:
        if self.indent_size is not None or line.virtual or parent_indent < 0:
            return
        leading = line.raw[:line.indent]
        self.indent_char = "\t" if "\t" in leading else " "
        self.indent_size = line.indent - parent_indent

    # -- node construction ---------------------------------------------

    def node(self, node_type: NodeType, value=None, hints: YamlHints | None = None) -> Node:
        node = Node(type=node_type, value=value, id=self.next_id())
        node.metadata.hints = hints or YamlHints()
        return node

    @staticmethod
    def attach(parent: Node, name: str, child: Node) -> None:
        child.name = name
        child.parent = parent
        parent.children.append(child)

    def set_member(self, mapping: Node, key: str, value: Node) -> None:
        """Add a member; a repeated key replaces the earlier value in place."""
        value.name = key
        value.parent = mapping
        for index, existing in enumerate(mapping.children):
            if existing.name == key:
                logger.debug("Duplicate key %r: later value wins", key)
                existing.parent = None
                mapping.children[index] = value
                return
        mapping.children.append(value)

    def merge(self, mapping: Node, source: Node, line: _Line) -> None:
        """`<<` merge: copy keys the mapping does not define yet."""
        if source.type == NodeType.OBJECT:
            sources = [source]
        elif source.type == NodeType.ARRAY and all(c.type == NodeType.OBJECT for c in source.children):
            sources = source.children
        else:
            raise ParseError("Merge key '<<' expects a mapping or a list of mappings", line=line.number)
        for src in sources:
            for child in list(src.children):
                if mapping.child(child.name) is None:
                    child.parent = mapping
                    mapping.children.append(child)

    # -- block structure -----------------------------------------------

    def parse_block(self, parent_indent: int) -> Node:
        """Parse the block node starting at the next line (deeper than parent_indent)."""
        line = self.state.peek()
        text = line.text
        if _is_seq_item(text):
            self._record_indentation(line, parent_indent)
            return self.parse_sequence(parent_indent)
        if text == "?" or text.startswith(("? ", "?\t")):
            raise ParseError("Complex mapping keys ('?') are not supported", line=line.number)
        if _split_key(text) is not None:
            self._record_indentation(line, parent_indent)
            return self.parse_mapping(parent_indent)
        self.state.pop()
        return self.parse_value(text, line, parent_indent, in_mapping=False)

    def parse_mapping(self, parent_indent: int) -> Node:
        mapping = self.node(NodeType.OBJECT, hints=YamlHints(style="block"))
        entry_indent = None
        while (line := self.state.peek()) is not None and line.indent > parent_indent:
            text = line.text
            if _is_seq_item(text):
                raise ParseError("Unexpected sequence entry inside a mapping", line=line.number)
            if text == "?" or text.startswith(("? ", "?\t")):
                raise ParseError("Complex mapping keys ('?') are not supported", line=line.number)
            split = _split_key(text)
            if split is None:
                raise ParseError(f"Expected a mapping entry, found {text!r}", line=line.number)
            if entry_indent is None:
                entry_indent = line.indent
            elif line.indent != entry_indent:
                logger.warning("Line %d: indented %d instead of %d, read as a sibling entry",
                               line.number, line.indent, entry_indent)
            self.state.pop()
            raw_key, rest = split
            value = self.parse_value(rest, line, line.indent, in_mapping=True)
            if raw_key == "<<":
                self.merge(mapping, value, line)
            else:
                self.set_member(mapping, self.key(raw_key, line), value)
        return mapping

    def parse_sequence(self, parent_indent: int) -> Node:
        sequence = self.node(NodeType.ARRAY, hints=YamlHints(style="block"))
        while ((line := self.state.peek()) is not None and line.indent > parent_indent
               and _is_seq_item(line.text)):
            self.state.pop()
            rest = line.text[1:]
            content = rest.lstrip(" \t")
            if not content:
                item = self.parse_nested(line.indent, in_mapping=False)
            elif _is_seq_item(content) or _split_key(content) is not None:
                # Compact nested collection: re-read the tail as its own line
                column = line.indent + 1 + len(rest) - len(content)
                self.state.push_back(_Line(
                    number=line.number, indent=column, text=content, raw=line.raw,
                    commented=line.commented, terminated=line.terminated, virtual=True,
                ))
                item = self.parse_block(line.indent)
            else:
                item = self.parse_value(content, line, line.indent, in_mapping=False)
            self.attach(sequence, str(len(sequence.children)), item)
        return sequence

    def parse_nested(self, parent_indent: int, in_mapping: bool) -> Node:
        """Value of an entry whose inline part is empty: a nested block or null."""
        line = self.state.peek()
        if line is not None and line.indent > parent_indent:
            return self.parse_block(parent_indent)
        if (in_mapping and line is not None and line.indent == parent_indent
                and _is_seq_item(line.text)):
            return self.parse_sequence(parent_indent - 1)
        return self.node(NodeType.VALUE, None)

    def key(self, raw_key: str, line: _Line) -> str:
        if raw_key[:1] in ("\"", "'"):
            return _unquote(raw_key, line.number)
        return raw_key

    # -- values --------------------------------------------------------

    def parse_value(self, rest: str, line: _Line, parent_indent: int, in_mapping: bool) -> Node:
        """Parse the value text after `key:` or `- ` (plus what follows it)."""
        anchor = tag = None
        while rest[:1] in ("&", "!"):
            if rest[0] == "&":
                match = ANCHOR_PATTERN.match(rest)
                if match is None:
                    raise ParseError("Invalid anchor", line=line.number)
                anchor = match.group(1)
            else:
                match = TAG_PATTERN.match(rest)
                tag = match.group(1)
            rest = rest[match.end():]

        if not rest:
            node = self.parse_nested(parent_indent, in_mapping)
            if node.type == NodeType.VALUE and tag is not None:
                node = self.scalar("", line, tag=tag)
        elif rest[0] == "*":
            node = self.alias(rest, line)
        elif rest[0] in "|>":
            node = self.block_scalar(rest, line, parent_indent, tag)
        elif rest[0] in "[{":
            node = self.flow(rest, line, parent_indent)
        elif rest[0] in "\"'":
            value, quote = self.quoted(rest, line, parent_indent)
            node = self.scalar(value, line, quote=quote, tag=tag)
        else:
            node = self.scalar(self.plain(rest, line, parent_indent), line, tag=tag)

        if tag is not None and node.type != NodeType.VALUE and tag not in CORE_TAGS:
            node.metadata.hints.tag = tag
        if anchor is not None:
            self.anchors[anchor] = node
        return node

    def alias(self, text: str, line: _Line) -> Node:
        match = ALIAS_PATTERN.match(text)
        if match is None:
            raise ParseError(f"Invalid alias {text!r}", line=line.number)
        target = self.anchors.get(match.group(1))
        if target is None:
            raise ParseError(f"Undefined alias *{match.group(1)}", line=line.number)
        return target.clone(self.next_id)

    def scalar(self, text: str, line: _Line, quote: str | None = None,
               tag: str | None = None, style: str | None = None) -> Node:
        hints = YamlHints(quote_style=quote, style=style)
        if quote is None and style is None:
            value = resolve_plain(text)
            if _is_number(value):
                hints.source = text
        else:
            value = text
        if tag is not None:
            value = self.coerce(tag, text, value, line)
            if tag in CORE_TAGS:
                hints.source = None
            else:
                hints.tag = tag
        return self.node(NodeType.VALUE, value, hints)

    @staticmethod
    def coerce(tag: str, text: str, value, line: _Line):
        """Apply a core tag to a scalar."""
        try:
            if tag == "!!str":
                return text
            if tag == "!!int":
                resolved = resolve_plain(text)
                return resolved if isinstance(resolved, int) and not isinstance(resolved, bool) else int(text)
            if tag == "!!float":
                return float(text)
        except ValueError as exc:
            raise ParseError(f"Cannot read {text!r} as {tag}", line=line.number) from exc
        if tag == "!!bool":
            resolved = resolve_plain(text)
            if not isinstance(resolved, bool):
                raise ParseError(f"Cannot read {text!r} as !!bool", line=line.number)
            return resolved
        if tag == "!!null":
            return None
        return value

    def plain(self, first: str, line: _Line, parent_indent: int) -> str:
        """A plain scalar, folding continuation lines deeper than parent_indent."""
        text = first
        if line.commented:
            return text
        lines = self.state.lines
        while True:
            j = self.state.index
            blanks = 0
            while j < len(lines) and lines[j].blank:
                blanks += 1
                j += 1
            if j >= len(lines):
                break
            nxt = lines[j]
            if (nxt.indent <= parent_indent or not nxt.text or _is_seq_item(nxt.text)
                    or _split_key(nxt.text) is not None):
                break
            self.state.index = j + 1
            text += ("\n" * blanks if blanks else " ") + nxt.text
            if nxt.commented:
                break
        return text

    def quoted(self, text: str, line: _Line, parent_indent: int) -> tuple[str, str]:
        """A quoted scalar, possibly continued over following lines."""
        quote = text[0]
        joined = text
        end = _quoted_end(joined, 0)
        blanks = 0
        while end < 0:
            nxt = self.state.peek_raw()
            if nxt is None or (not nxt.blank and nxt.indent <= parent_indent):
                raise ParseError("Unterminated quoted scalar", line=line.number)
            self.state.index += 1
            if nxt.blank:
                blanks += 1
                continue
            joined = _continue_quoted(joined, nxt.raw.strip(), blanks, quote)
            blanks = 0
            end = _quoted_end(joined, 0)
        remainder = _strip_comment(joined[end:])
        if remainder:
            raise ParseError(f"Unexpected text after quoted scalar: {remainder!r}", line=line.number)
        return _unquote(joined[:end], line.number), quote

    def block_scalar(self, header: str, line: _Line, parent_indent: int, tag: str | None) -> Node:
        match = BLOCK_HEADER.match(header)
        if match is None:
            raise ParseError(f"Invalid block scalar header {header!r}", line=line.number)
        style, indicators = match.group(1), match.group(2) or ""
        chomp = next((c for c in indicators if c in "+-"), None)
        digits = "".join(c for c in indicators if c.isdigit())
        content_indent = max(parent_indent, 0) + int(digits) if digits else None

        collected: list[_Line] = []
        while (raw := self.state.peek_raw()) is not None:
            if raw.blank:
                collected.append(raw)
            elif content_indent is None:
                if raw.indent <= parent_indent:
                    break
                content_indent = raw.indent
                collected.append(raw)
            elif raw.indent >= content_indent:
                collected.append(raw)
            else:
                break
            self.state.index += 1

        indent = content_indent or 0
        texts = [raw.raw[indent:] if len(raw.raw) > indent else "" for raw in collected]
        last = max((i for i, raw in enumerate(collected) if not raw.blank), default=-1)
        body_lines = texts[:last + 1]
        trailing = sum(1 for raw in collected[last + 1:] if raw.terminated)

        if last < 0:
            body, terminated = "", False
        else:
            body = "\n".join(body_lines) if style == "|" else _fold(body_lines)
            terminated = collected[last].terminated
        if chomp == "-":
            value = body
        elif chomp == "+":
            value = body + ("\n" if terminated else "") + "\n" * trailing
        else:
            value = body + ("\n" if terminated else "")
        return self.scalar(value, line, tag=tag, style=style)

    # -- flow collections ----------------------------------------------

    def flow(self, text: str, line: _Line, parent_indent: int) -> Node:
        """A flow collection, gathering continuation lines until balanced."""
        joined = text
        end = _flow_end(joined)
        blanks = 0
        while end < 0:
            quote = _open_quote(joined)
            nxt = self.state.peek_raw()
            if nxt is None:
                raise ParseError("Unterminated flow collection", line=line.number)
            # inside a quoted scalar '#' starts no comment
            piece = nxt.raw.strip() if quote else nxt.text
            if piece and nxt.indent <= parent_indent and (quote or not piece.startswith(("]", "}"))):
                raise ParseError("Unterminated flow collection", line=line.number)
            self.state.index += 1
            if not piece:
                if quote:
                    blanks += 1
                continue
            if quote:
                joined = _continue_quoted(joined, piece, blanks, quote)
            else:
                joined += " " + piece
            blanks = 0
            end = _flow_end(joined)
        remainder = _strip_comment(joined[end:])
        if remainder:
            raise ParseError(f"Unexpected text after flow collection: {remainder!r}",
                             line=line.number)
        node, _ = self.flow_node(joined, 0, line)
        return node

    def flow_node(self, text: str, pos: int, line: _Line) -> tuple[Node, int]:
        pos = _skip_space(text, pos)
        anchor = tag = None
        while text[pos:pos + 1] in ("&", "!"):
            pattern = ANCHOR_PATTERN if text[pos] == "&" else TAG_PATTERN
            match = pattern.match(text[pos:])
            if match is None:
                raise ParseError("Invalid anchor", line=line.number)
            if text[pos] == "&":
                anchor = match.group(1)
            else:
                tag = match.group(1)
            pos = _skip_space(text, pos + match.end())

        ch = text[pos:pos + 1]
        if ch == "[":
            node, pos = self.flow_sequence(text, pos, line)
        elif ch == "{":
            node, pos = self.flow_mapping(text, pos, line)
        elif ch and ch in "\"'":
            end = _quoted_end(text, pos)
            if end < 0:
                raise ParseError("Unterminated quoted scalar", line=line.number)
            node = self.scalar(_unquote(text[pos:end], line.number), line, quote=ch, tag=tag)
            pos = end
        else:
            end = _plain_end(text, pos)
            plain = text[pos:end].strip()
            if plain == "?" or plain.startswith(("? ", "?\t")):
                raise ParseError("Complex mapping keys ('?') are not supported", line=line.number)
            if ch == "*":
                node = self.alias(plain, line)
            elif not plain and tag is None:
                raise ParseError("Empty entry in flow collection", line=line.number)
            else:
                node = self.scalar(plain, line, tag=tag)
            pos = end
        if tag is not None and node.type != NodeType.VALUE and tag not in CORE_TAGS:
            node.metadata.hints.tag = tag
        if anchor is not None:
            self.anchors[anchor] = node
        return node, pos

    def flow_sequence(self, text: str, pos: int, line: _Line) -> tuple[Node, int]:
        sequence = self.node(NodeType.ARRAY, hints=YamlHints(style="flow"))
        pos += 1
        while True:
            pos = _skip_space(text, pos)
            if text[pos:pos + 1] == "]":
                return sequence, pos + 1
            item, pos = self.flow_node(text, pos, line)
            pos = _skip_space(text, pos)
            if text[pos:pos + 1] == ":" and item.type == NodeType.VALUE:
                # single-pair mapping: [key: value]
                pair = self.node(NodeType.OBJECT, hints=YamlHints(style="flow"))
                value, pos = self.flow_value(text, pos + 1, line)
                hints = item.metadata.hints
                if item.value == "<<" and not (hints is not None and hints.quote_style):
                    self.merge(pair, value, line)
                else:
                    self.set_member(pair, str(item.value), value)
                item = pair
                pos = _skip_space(text, pos)
            self.attach(sequence, str(len(sequence.children)), item)
            pos = self._flow_separator(text, pos, "]", line)

    def flow_mapping(self, text: str, pos: int, line: _Line) -> tuple[Node, int]:
        mapping = self.node(NodeType.OBJECT, hints=YamlHints(style="flow"))
        pos += 1
        while True:
            pos = _skip_space(text, pos)
            if text[pos:pos + 1] == "}":
                return mapping, pos + 1
            if text[pos:pos + 1] in ("\"", "'"):
                end = _quoted_end(text, pos)
                if end < 0:
                    raise ParseError("Unterminated quoted key", line=line.number)
                key = _unquote(text[pos:end], line.number)
                merge = False
            else:
                end = _plain_end(text, pos)
                key = text[pos:end].strip()
                if not key:
                    raise ParseError("Empty key in flow mapping", line=line.number)
                if key == "?" or key.startswith(("? ", "?\t")):
                    raise ParseError("Complex mapping keys ('?') are not supported", line=line.number)
                merge = key == "<<"
            pos = _skip_space(text, end)
            if text[pos:pos + 1] == ":":
                value, pos = self.flow_value(text, pos + 1, line)
            else:
                value = self.node(NodeType.VALUE, None)
            if merge:
                self.merge(mapping, value, line)
            else:
                self.set_member(mapping, key, value)
            pos = self._flow_separator(text, _skip_space(text, pos), "}", line)

    def flow_value(self, text: str, pos: int, line: _Line) -> tuple[Node, int]:
        pos = _skip_space(text, pos)
        if text[pos:pos + 1] in (",", "}", "]"):
            return self.node(NodeType.VALUE, None), pos
        return self.flow_node(text, pos, line)

    @staticmethod
    def _flow_separator(text: str, pos: int, closer: str, line: _Line) -> int:
        ch = text[pos:pos + 1]
        if ch == ",":
            return pos + 1
        if ch == closer:
            return pos
        raise ParseError(f"Expected ',' or '{closer}' in flow collection, found {ch!r}",
                         line=line.number)


def _skip_space(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] in " \t":
        pos += 1
    return pos


def _plain_end(text: str, pos: int) -> int:
    """End of a plain scalar inside a flow collection."""
    i = pos
    while i < len(text):
        ch = text[i]
        if ch in FLOW_INDICATORS:
            break
        if ch == ":" and (i + 1 == len(text) or text[i + 1] in " \t,[]{}"):
            break
        i += 1
    return i


def _open_quote(text: str) -> str | None:
    """Quote character of a scalar left open at the end of flow text, if any."""
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in "\"'" and (i == 0 or text[i - 1] in " \t[{,:"):
            end = _quoted_end(text, i)
            if end < 0:
                return ch
            i = end
            continue
        i += 1
    return None


def _flow_end(text: str) -> int:
    """Index just past the bracket closing the collection at text[0], or -1."""
    depth = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in "\"'" and (i == 0 or text[i - 1] in " \t[{,:"):
            end = _quoted_end(text, i)
            if end < 0:
                return -1
            i = end
            continue
        if ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return -1


# ----------------------------------------------------------------------
# Writer
# ----------------------------------------------------------------------

def _node_type(node) -> NodeType:
    node_type = getattr(node, "type", None)
    if node_type is None:
        raise SerializationError("Invalid node: missing type")
    try:
        return NodeType(node_type)
    except ValueError:
        raise SerializationError(f"Unknown node type: {node_type!r}") from None


def _hints(node) -> YamlHints | None:
    metadata = getattr(node, "metadata", None)
    hints = getattr(metadata, "hints", None)
    return hints if isinstance(hints, YamlHints) else None


def _children(node) -> list:
    return getattr(node, "children", None) or []


def _members(node) -> list:
    """Children of an object node; names must be present and distinct."""
    seen: set[str] = set()
    children = _children(node)
    for child in children:
        name = getattr(child, "name", None)
        if name is None:
            raise SerializationError("Object member without a name")
        if str(name) in seen:
            raise SerializationError(f"Duplicate member name {str(name)!r}")
        seen.add(str(name))
    return children


def _needs_quotes(text: str, flow: bool = False) -> bool:
    """True when a string would not read back as the same plain scalar."""
    if not text or text != text.strip():
        return True
    if ": " in text or text.endswith(":") or "#" in text:
        return True
    if text[0] in "'\"" or text[-1] in "'\"":
        return True
    if text[0] in INDICATORS or _is_seq_item(text) or text.startswith(("---", "...")):
        return True
    if not isinstance(resolve_plain(text), str) or NUMERIC_KEY.match(text) or LOOKS_NUMERIC.match(text):
        return True
    if text in ("=", "<<"):
        return True
    if any(_is_control(ch) or ch == "\t" for ch in text):
        return True
    return flow and any(ch in FLOW_INDICATORS for ch in text)


def double_quote(text: str) -> str:
    out = []
    for ch in text:
        if ch == "\\":
            out.append("\\\\")
        elif ch == '"':
            out.append('\\"')
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\t":
            out.append("\\t")
        elif ch == "\r":
            out.append("\\r")
        elif _is_control(ch):
            code = ord(ch)
            out.append(f"\\x{code:02x}" if code < 0x100 else f"\\u{code:04x}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def format_key(name: str, flow: bool = False) -> str:
    """Key text, double-quoted when its bare form would be ambiguous."""
    if NUMERIC_KEY.match(name) or any(ch in name for ch in ' :#"') or _needs_quotes(name, flow):
        return double_quote(name)
    return name


def format_number(value, source: str | None = None) -> str:
    """Positional decimal text for a number; never exponent notation."""
    if source is not None:
        resolved = resolve_plain(source)
        if type(resolved) is type(value) and resolved == value:
            if "e" in source.lower() and not INT_HEX.match(source):
                return _positional(Decimal(source))
            return source
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return ".nan"
    if math.isinf(value):
        return ".inf" if value > 0 else "-.inf"
    if value.is_integer():
        return str(int(value))
    return _positional(Decimal(repr(value)))


def _positional(number: Decimal) -> str:
    text = format(number, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".") or "0"
    return text


def _wrap(text: str, width: int) -> list[str]:
    """Break at single spaces so folding reads the text back unchanged."""
    lines = []
    while len(text) > width:
        cut = -1
        for i in range(1, len(text) - 1):
            if i > width and cut > 0:
                break
            if text[i] == " " and text[i - 1] != " " and text[i + 1] != " ":
                cut = i
        if cut <= 0:
            break
        lines.append(text[:cut])
        text = text[cut + 1:]
    lines.append(text)
    return lines


class _Emitter:
    """Per-call writer state: indentation unit and configuration."""

    def __init__(self, unit: str, config: YamlConfig):
        self.unit = unit
        self.config = config

    def document(self, node) -> list[str]:
        node_type = _node_type(node)
        if node_type == NodeType.VALUE:
            block = self.block_scalar(node, self.unit)
            if block is not None:
                return [block[0], *block[1]]
            return [self.inline(node)]
        if not _children(node) or self.use_flow(node):
            return [self.flow(node)]
        if node_type == NodeType.OBJECT:
            return self.mapping(node, "")
        return self.sequence(node, "")

    def mapping(self, node, prefix: str) -> list[str]:
        lines: list[str] = []
        for child in _members(node):
            lines.extend(self.entry(f"{prefix}{self.key(child)}:", child, prefix))
        return lines

    def entry(self, head: str, child, prefix: str) -> list[str]:
        node_type = _node_type(child)
        tag = self.tag(child)
        if node_type == NodeType.VALUE:
            block = self.block_scalar(child, prefix + self.unit)
            if block is not None:
                return [f"{head} {tag}{block[0]}", *block[1]]
            return [f"{head} {self.inline(child)}"]
        if not _children(child) or self.use_flow(child):
            return [f"{head} {tag}{self.flow(child)}"]
        head = f"{head} {tag.rstrip()}" if tag else head
        if node_type == NodeType.OBJECT:
            return [head, *self.mapping(child, prefix + self.unit)]
        return [head, *self.sequence(child, prefix + self.unit)]

    def sequence(self, node, prefix: str) -> list[str]:
        lines: list[str] = []
        for child in _children(node):
            node_type = _node_type(child)
            tag = self.tag(child)
            if node_type == NodeType.VALUE:
                block = self.block_scalar(child, prefix + self.unit)
                if block is not None:
                    lines.append(f"{prefix}- {tag}{block[0]}")
                    lines.extend(block[1])
                else:
                    lines.append(f"{prefix}- {self.inline(child)}")
                continue
            if not _children(child) or self.use_flow(child):
                lines.append(f"{prefix}- {tag}{self.flow(child)}")
                continue
            # the body continues two columns in, under the text after "- "
            body_prefix = prefix + "  "
            if node_type == NodeType.OBJECT:
                body = self.mapping(child, body_prefix)
            else:
                body = self.sequence(child, body_prefix)
            if tag:
                lines.append(f"{prefix}- {tag.rstrip()}")
                lines.extend(body)
            else:
                lines.append(f"{prefix}- {body[0][len(body_prefix):]}")
                lines.extend(body[1:])
        return lines

    def key(self, child) -> str:
        name = getattr(child, "name", None)
        if name is None:
            raise SerializationError("Object member without a name")
        return format_key(str(name))

    @staticmethod
    def tag(node) -> str:
        hints = _hints(node)
        if hints is not None and hints.tag:
            return hints.tag + " "
        return ""

    def use_flow(self, node) -> bool:
        """Explicit flow hint, or the inline default for short unstyled scalar arrays."""
        hints = _hints(node)
        style = hints.style if hints is not None else None
        if style in ("flow", "block"):
            return style == "flow"
        if _node_type(node) != NodeType.ARRAY:
            return False
        children = _children(node)
        if len(children) > self.config.flow_max_items:
            return False
        for child in children:
            if _node_type(child) != NodeType.VALUE or isinstance(child.value, str):
                return False
            if _hints(child) is not None and _hints(child).tag:
                return False
        return len(self.flow(node)) <= self.config.flow_max_width

    def flow(self, node) -> str:
        node_type = _node_type(node)
        if node_type == NodeType.VALUE:
            return self.inline(node, flow=True)
        tag = self.tag(node)
        if node_type == NodeType.OBJECT:
            items = []
            for child in _members(node):
                items.append(f"{format_key(str(child.name), flow=True)}: {self.flow(child)}")
            return tag + "{" + ", ".join(items) + "}"
        return tag + "[" + ", ".join(self.flow(child) for child in _children(node)) + "]"

    def inline(self, node, flow: bool = False) -> str:
        """Single-line text for a value node, tag included."""
        value = node.value
        hints = _hints(node)
        if value is None:
            text = "null"
        elif isinstance(value, bool):
            text = "true" if value else "false"
        elif _is_number(value):
            text = format_number(value, hints.source if hints is not None else None)
        elif isinstance(value, str):
            text = self.string(value, hints.quote_style if hints is not None else None, flow)
        else:
            raise SerializationError(
                f"Unsupported value type {type(value).__name__} at node {getattr(node, 'name', None)!r}")
        return self.tag(node) + text

    @staticmethod
    def string(value: str, quote_style: str | None, flow: bool) -> str:
        if quote_style == "'" and not any(_is_control(ch) for ch in value):
            return "'" + value.replace("'", "''") + "'"
        if quote_style == '"' or _needs_quotes(value, flow):
            return double_quote(value)
        return value

    def block_scalar(self, node, content_prefix: str) -> tuple[str, list[str]] | None:
        """Header and content lines for a literal/folded scalar, or None for inline."""
        value = node.value
        if not isinstance(value, str):
            return None
        hints = _hints(node)
        style = hints.style if hints is not None else None
        if style not in ("|", ">"):
            if "\n" not in value.rstrip("\n") or (hints is not None and hints.quote_style):
                return None
            style = "|"
        body = value.rstrip("\n")
        if not body or any(_is_control(c) for c in body if c != "\n"):
            return None
        parts = body.split("\n")
        if any(part and not part.strip() for part in parts):
            return None
        # the first non-empty line fixes the block's indentation
        if next(part for part in parts if part)[0] in " \t":
            return None
        if style == ">" and any(part[:1] in (" ", "\t") for part in parts):
            style = "|"

        newlines = len(value) - len(body)
        chomp = "-" if newlines == 0 else ("" if newlines == 1 else "+")
        lines: list[str] = []
        if style == "|":
            lines = [content_prefix + part if part else "" for part in parts]
        else:
            width = max(self.config.fold_width - len(content_prefix.expandtabs()), 20)
            for index, part in enumerate(parts):
                if index:
                    lines.append("")
                if part:
                    lines.extend(content_prefix + piece for piece in _wrap(part, width))
        lines.extend("" for _ in range(newlines - 1))
        return style + chomp, lines


class YAMLHandler(BaseHandler):
    """YAML parser/serializer preserving indentation and scalar styles."""

    format_type = "yaml"
    name = "YAML"
    extensions = [".yaml", ".yml"]
    mime_types = ["application/yaml", "application/x-yaml", "text/yaml", "text/x-yaml"]

    KEY_LINE = re.compile(r"^\s*[\w\"'.-][^:]*:(\s|$)")

    def detect(self, content: str) -> bool:
        """YAML-looking content: document markers, `key: value` or `- item` lines."""
        if not content or not isinstance(content, str):
            return False
        trimmed = content.strip()
        if trimmed.startswith("---") or "\n---" in trimmed:
            return True
        if trimmed[:1] in ("{", "["):
            return False
        for line in trimmed.splitlines()[:10]:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if self.KEY_LINE.match(line) or _is_seq_item(stripped):
                return True
        return False

    def parse(self, content: str) -> Node:
        """Parse YAML into a tree, recording presentation hints on the nodes."""
        text = self._require_text(content)
        parser = _Parser(text, id_sequence("yaml"))
        try:
            root = parser.read_document()
        except RecursionError as exc:
            raise ParseError("YAML nesting is too deep") from exc

        cfg = get_config().yaml
        hints = root.metadata.yaml or YamlHints()
        hints.indent_char = parser.indent_char or cfg.indent_char
        hints.indent_size = parser.indent_size or cfg.indent_size
        hints.explicit_start = parser.explicit_start
        logger.debug("Parsed YAML document: indent %r x %d", hints.indent_char, hints.indent_size)
        return self._stamp(root, content, hints)

    def serialize(self, node: Node, options: SerializeOptions | None = None) -> str:
        """Serialize a tree to YAML text."""
        options = options or SerializeOptions()
        cfg = get_config().yaml
        ensure_acyclic(node)
        hints = _hints(node)
        unit = options.indent
        if unit is None and hints is not None and hints.indent_char and hints.indent_size:
            unit = hints.indent_char * hints.indent_size
        emitter = _Emitter(unit or cfg.indent, cfg)
        try:
            lines = emitter.document(node)
        except RecursionError as exc:
            raise SerializationError("Tree is too deep to serialize") from exc

        if hints is not None and (hints.explicit_start or (hints.tag and _node_type(node) != NodeType.VALUE)):
            start = f"--- {hints.tag}" if hints.tag and _node_type(node) != NodeType.VALUE else "---"
            lines.insert(0, start)
        return "\n".join(lines) + "\n"


registry.register(YAMLHandler())
