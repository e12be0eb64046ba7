"""
DOM - Document Object Model for hierdoc

Uniform representation for all parsed documents. Every format handler
produces a tree of Nodes: objects and arrays hold ordered children, values
hold a primitive payload. Presentation details of the source text live in
per-format hint structures on each node's metadata, never on the handler.

Key invariants:
- Value nodes carry `value`; object/array nodes carry `children`.
- Every non-root node is named (member key or stringified array index).
- `parent` is a back-reference for traversal only.
"""

from __future__ import annotations

import copy
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Union

from .errors import SerializationError

Scalar = Union[str, int, float, bool, None]


class NodeType(StrEnum):
    """The three node kinds every format maps onto."""
    OBJECT = "object"
    ARRAY = "array"
    VALUE = "value"


CONTAINER_TYPES = frozenset({NodeType.OBJECT, NodeType.ARRAY})


@dataclass
class YamlHints:
    """YAML presentation hints recorded by the YAML handler."""
    style: str | None = None  # "|", ">", "flow" or "block"
    quote_style: str | None = None  # "'" or '"'
    tag: str | None = None  # non-core tag to re-emit, e.g. "!!binary"
    source: str | None = None  # plain numeric text as written
    # Document-level, set on the root only
    indent_char: str | None = None
    indent_size: int | None = None
    explicit_start: bool = False


@dataclass
class JsonHints:
    """JSON presentation hints (document-level, root only)."""
    indent: str | None = None  # indentation unit detected in the source


@dataclass
class Metadata:
    """Per-node metadata: tree-wide facts on the root, style hints anywhere."""
    format: str | None = None
    original_content: str | None = None
    hints: YamlHints | JsonHints | None = None

    @property
    def yaml(self) -> YamlHints | None:
        return self.hints if isinstance(self.hints, YamlHints) else None

    @property
    def json(self) -> JsonHints | None:
        return self.hints if isinstance(self.hints, JsonHints) else None


def new_node_id() -> str:
    """Random id for nodes created outside a parse."""
    return f"node-{uuid.uuid4().hex[:12]}"


def id_sequence(prefix: str) -> Callable[[], str]:
    """Return a fresh counter-backed id generator, one per parse call."""
    counter = 0

    def next_id() -> str:
        nonlocal counter
        counter += 1
        return f"{prefix}-{counter}"

    return next_id


@dataclass(eq=False)
class Node:
    """A node in the document tree. Compared by identity."""
    type: str | None = NodeType.VALUE
    name: str | None = None
    value: Scalar = None
    children: list[Node] = field(default_factory=list)
    metadata: Metadata = field(default_factory=Metadata)
    id: str = field(default_factory=new_node_id)
    parent: Node | None = field(default=None, repr=False)

    def __post_init__(self):
        for child in self.children:
            child.parent = self

    # ------------------------------------------------------------------
    # Structure queries
    # ------------------------------------------------------------------

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def is_container(self) -> bool:
        return self.type in CONTAINER_TYPES

    @property
    def depth(self) -> int:
        """Number of ancestors above this node."""
        return sum(1 for _ in self.ancestors())

    @property
    def path(self) -> list[str]:
        """Names from the root down to this node (root excluded)."""
        names = [node.name for node in self._chain() if node.parent is not None]
        return [str(name) for name in reversed(names)]

    def _chain(self) -> Iterator[Node]:
        yield self
        yield from self.ancestors()

    def ancestors(self) -> Iterator[Node]:
        """Yield parent, grandparent, ... up to the root."""
        current = self.parent
        while current is not None:
            yield current
            current = current.parent

    def child(self, name: str) -> Node | None:
        """Child by name. Later duplicates never exist after a parse."""
        for child in self.children:
            if child.name == name:
                return child
        return None

    def find(self, node_id: str) -> Node | None:
        """Find a descendant (or self) by id."""
        for node in self.depth_first():
            if node.id == node_id:
                return node
        return None

    def depth_first(self) -> Iterator[Node]:
        """Traverse tree depth-first, yielding self then children."""
        yield self
        for child in self.children:
            yield from child.depth_first()

    def breadth_first(self) -> Iterator[Node]:
        """Traverse tree breadth-first."""
        queue: list[Node] = [self]
        while queue:
            node = queue.pop(0)
            yield node
            queue.extend(node.children)

    def siblings(self) -> list[Node]:
        if self.parent is None:
            return []
        return [node for node in self.parent.children if node is not self]

    def next_sibling(self) -> Node | None:
        return self._sibling_at(1)

    def previous_sibling(self) -> Node | None:
        return self._sibling_at(-1)

    def _sibling_at(self, offset: int) -> Node | None:
        if self.parent is None:
            return None
        siblings = self.parent.children
        index = next(i for i, node in enumerate(siblings) if node is self) + offset
        if 0 <= index < len(siblings):
            return siblings[index]
        return None

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def add_child(self, child: Node) -> Node:
        """Append a child node and return it for chaining."""
        return self.insert_child(len(self.children), child)

    def insert_child(self, index: int, child: Node) -> Node:
        if not self.is_container:
            raise ValueError(f"cannot add children to a {self.type!r} node")
        if child is self or child in self.ancestors():
            raise ValueError("a node cannot become its own descendant")
        if child.parent is not None and child.parent is not self:
            child.parent.remove_child(child)
        child.parent = self
        self.children.insert(index, child)
        self._renumber()
        return child

    def remove_child(self, node_or_id: Node | str) -> Node | None:
        """Detach a child given the node or its id. Returns it, or None."""
        for index, child in enumerate(self.children):
            if child is node_or_id or child.id == node_or_id:
                del self.children[index]
                child.parent = None
                self._renumber()
                return child
        return None

    def set_value(self, value: Scalar) -> None:
        if self.type != NodeType.VALUE:
            raise ValueError(f"cannot set a value on a {self.type!r} node")
        self.value = value

    def rename(self, name: str) -> None:
        if self.parent is not None and self.parent.type == NodeType.ARRAY:
            raise ValueError("array elements are named by their index")
        self.name = name

    def _renumber(self) -> None:
        if self.type == NodeType.ARRAY:
            for index, child in enumerate(self.children):
                child.name = str(index)

    # ------------------------------------------------------------------
    # Copies and conversion
    # ------------------------------------------------------------------

    def clone(self, new_id: Callable[[], str] = new_node_id) -> Node:
        """Deep copy with fresh ids and no parent."""
        return Node(
            type=self.type,
            name=self.name,
            value=self.value,
            children=[child.clone(new_id) for child in self.children],
            metadata=copy.deepcopy(self.metadata),
            id=new_id(),
        )

    def to_python(self) -> Any:
        """Plain dict/list/scalar view of the subtree."""
        if self.type == NodeType.OBJECT:
            return {child.name: child.to_python() for child in self.children}
        if self.type == NodeType.ARRAY:
            return [child.to_python() for child in self.children]
        return self.value


def from_python(data: Any, name: str | None = None,
                new_id: Callable[[], str] = new_node_id) -> Node:
    """
    Build a tree from plain Python data (dict, list, str, int, float, bool, None).

    bool is checked before int since bool subclasses int.
    """
    if isinstance(data, bool) or data is None or isinstance(data, (str, int, float)):
        return Node(type=NodeType.VALUE, name=name, value=data, id=new_id())
    if isinstance(data, dict):
        return Node(
            type=NodeType.OBJECT,
            name=name,
            children=[from_python(val, str(key), new_id) for key, val in data.items()],
            id=new_id(),
        )
    if isinstance(data, (list, tuple)):
        return Node(
            type=NodeType.ARRAY,
            name=name,
            children=[from_python(item, str(i), new_id) for i, item in enumerate(data)],
            id=new_id(),
        )
    raise TypeError(f"Unsupported value type: {type(data)!r}")


def same_structure(a: Node, b: Node) -> bool:
    """
    Structural equality: type, name, value (with its Python type) and child
    order. Ids, parents and metadata are ignored.
    """
    if a.type != b.type or a.name != b.name:
        return False
    if a.type == NodeType.VALUE:
        return type(a.value) is type(b.value) and a.value == b.value
    if len(a.children) != len(b.children):
        return False
    return all(same_structure(x, y) for x, y in zip(a.children, b.children))


def ensure_acyclic(root: Any) -> None:
    """
    Walk `children` keeping the current ancestor chain and raise
    SerializationError when a node is reachable from itself.

    Iterative, so malformed trees cannot exhaust the stack.
    """
    on_path: set[int] = {id(root)}
    stack = [(root, iter(getattr(root, "children", None) or ()))]
    while stack:
        node, remaining = stack[-1]
        child = next(remaining, _DONE)
        if child is _DONE:
            stack.pop()
            on_path.discard(id(node))
            continue
        if id(child) in on_path:
            name = getattr(child, "name", None)
            raise SerializationError(f"Circular reference detected at node {name!r}")
        on_path.add(id(child))
        stack.append((child, iter(getattr(child, "children", None) or ())))


_DONE = object()


def check_tree(root: Node) -> list[str]:
    """Report invariant violations for a tree; empty list means consistent."""
    errors: list[str] = []
    try:
        ensure_acyclic(root)
    except SerializationError as exc:
        return [str(exc)]

    if root.name is not None:
        errors.append(f"root node must be unnamed, got {root.name!r}")

    seen: set[str] = set()
    for node in root.depth_first():
        label = node.id
        if node.id in seen:
            errors.append(f"duplicate node id {node.id!r}")
        seen.add(node.id)

        if node.type not in NodeType.__members__.values():
            errors.append(f"node {label} has invalid type {node.type!r}")
        elif node.type == NodeType.VALUE and node.children:
            errors.append(f"value node {label} must not have children")
        elif node.type != NodeType.VALUE and node.value is not None:
            errors.append(f"{node.type} node {label} must not carry a value")

        for index, child in enumerate(node.children):
            if child.parent is not node:
                errors.append(f"child {index} of node {label} has incorrect parent reference")
            if child.name is None:
                errors.append(f"child {index} of node {label} is unnamed")
            elif node.type == NodeType.ARRAY and child.name != str(index):
                errors.append(f"array element {index} of node {label} is named {child.name!r}")
    return errors
