"""
Tier 0: Data Model Contract Tests

These tests pin down the Node structure every format handler produces
and every serializer consumes.
"""

import pytest

from hierdoc.dom import (
    Metadata,
    Node,
    NodeType,
    YamlHints,
    check_tree,
    ensure_acyclic,
    from_python,
    id_sequence,
    same_structure,
)
from hierdoc.errors import SerializationError


def sample_tree():
    return from_python({"name": "x", "tags": ["a", "b"], "meta": {"n": 1}})


class TestNodeCreation:
    """Test node construction and ids."""

    def test_default_node_is_value(self):
        """A bare Node is a null value node."""
        node = Node()
        assert node.type == NodeType.VALUE
        assert node.value is None
        assert node.children == []

    def test_ids_are_unique(self):
        """Every node gets its own id."""
        assert Node().id != Node().id

    def test_constructor_sets_parent(self):
        """Children passed to the constructor point back at it."""
        child = Node(name="a", value=1)
        parent = Node(type=NodeType.OBJECT, children=[child])
        assert child.parent is parent
        assert parent.is_root
        assert not child.is_root

    def test_id_sequence_counts_per_generator(self):
        """Each id generator counts independently."""
        first = id_sequence("yaml")
        second = id_sequence("yaml")
        assert [first(), first()] == ["yaml-1", "yaml-2"]
        assert second() == "yaml-1"

    def test_metadata_hint_accessors(self):
        """Typed hint accessors return only their own format."""
        metadata = Metadata(format="yaml", hints=YamlHints(style="flow"))
        assert metadata.yaml.style == "flow"
        assert metadata.json is None


class TestNodeNavigation:
    """Test lookup and traversal."""

    def test_child_by_name(self):
        """child() finds direct children by name."""
        root = sample_tree()
        assert root.child("name").value == "x"
        assert root.child("missing") is None

    def test_path_and_depth(self):
        """path lists names from the root; depth counts edges."""
        root = sample_tree()
        item = root.child("tags").children[1]
        assert item.path == ["tags", "1"]
        assert item.depth == 2
        assert root.path == []

    def test_find_by_id(self):
        """find() searches the whole subtree."""
        root = sample_tree()
        target = root.child("meta").child("n")
        assert root.find(target.id) is target
        assert root.find("nope") is None

    def test_depth_first_order(self):
        """Pre-order traversal."""
        root = sample_tree()
        names = [node.name for node in root.depth_first()]
        assert names == [None, "name", "tags", "0", "1", "meta", "n"]

    def test_breadth_first_order(self):
        """Level-order traversal."""
        root = sample_tree()
        names = [node.name for node in root.breadth_first()]
        assert names == [None, "name", "tags", "meta", "0", "1", "n"]

    def test_siblings(self):
        """Sibling access within the parent's children."""
        root = sample_tree()
        tags = root.child("tags")
        assert [n.name for n in tags.siblings()] == ["name", "meta"]
        assert tags.next_sibling().name == "meta"
        assert tags.previous_sibling().name == "name"
        assert root.child("meta").next_sibling() is None
        assert root.next_sibling() is None


class TestNodeEdits:
    """Test structural edits."""

    def test_add_child_returns_child(self):
        """add_child links and returns the child."""
        parent = Node(type=NodeType.OBJECT)
        child = Node(name="a", value=1)
        assert parent.add_child(child) is child
        assert child.parent is parent

    def test_value_node_rejects_children(self):
        """Value nodes cannot hold children."""
        with pytest.raises(ValueError):
            Node(value=1).add_child(Node(name="x"))

    def test_array_children_renumbered(self):
        """Array names follow positions after insert and remove."""
        root = from_python(["a", "b", "c"])
        root.insert_child(0, Node(value="z"))
        assert [c.name for c in root.children] == ["0", "1", "2", "3"]
        assert root.children[0].value == "z"
        root.remove_child(root.children[1])
        assert [c.value for c in root.children] == ["z", "b", "c"]
        assert [c.name for c in root.children] == ["0", "1", "2"]

    def test_remove_child_by_id(self):
        """Removal by id detaches the child."""
        root = sample_tree()
        target = root.child("name")
        assert root.remove_child(target.id) is target
        assert target.parent is None
        assert root.remove_child("missing") is None

    def test_moving_child_detaches_it(self):
        """Adding a child elsewhere removes it from its old parent."""
        root = sample_tree()
        node = root.child("name")
        root.child("meta").add_child(node)
        assert root.child("name") is None
        assert node.parent is root.child("meta")

    def test_cannot_add_ancestor(self):
        """A node cannot become a child of its descendant."""
        root = sample_tree()
        meta = root.child("meta")
        with pytest.raises(ValueError):
            meta.add_child(root)

    def test_rename_array_element_rejected(self):
        """Array element names belong to the index."""
        root = from_python(["a"])
        with pytest.raises(ValueError):
            root.children[0].rename("x")

    def test_set_value_on_container_rejected(self):
        """Containers have no scalar value."""
        with pytest.raises(ValueError):
            sample_tree().set_value(1)


class TestConversion:
    """Test conversion to and from plain Python data."""

    def test_to_python_round_trip(self):
        """from_python then to_python gives the input back."""
        data = {"a": 1, "b": [True, None, 1.5], "c": {"d": "e"}}
        assert from_python(data).to_python() == data

    def test_from_python_rejects_unknown_types(self):
        """Only JSON-like data converts."""
        with pytest.raises(TypeError):
            from_python({"a": object()})

    def test_clone_is_deep_with_fresh_ids(self):
        """clone copies everything but ids and parent."""
        root = sample_tree()
        copy = root.clone()
        assert same_structure(root, copy)
        assert copy.id != root.id
        assert copy.child("tags").parent is copy
        copy.child("name").set_value("y")
        assert root.child("name").value == "x"


class TestSameStructure:
    """Test structural equality."""

    def test_distinguishes_int_and_float(self):
        """1 and 1.0 differ."""
        assert not same_structure(from_python({"a": 1}), from_python({"a": 1.0}))

    def test_distinguishes_bool_and_int(self):
        """True and 1 differ."""
        assert not same_structure(from_python([True]), from_python([1]))

    def test_order_matters(self):
        """Member order is part of the structure."""
        assert not same_structure(from_python({"a": 1, "b": 2}), from_python({"b": 2, "a": 1}))

    def test_ignores_ids_and_metadata(self):
        """Ids and metadata are not compared."""
        a = from_python({"a": 1})
        b = from_python({"a": 1})
        b.metadata = Metadata(format="json")
        assert same_structure(a, b)


class TestInvariants:
    """Test check_tree reports."""

    def test_parsed_like_tree_is_consistent(self):
        """A well-formed tree has no violations."""
        assert check_tree(sample_tree()) == []

    def test_reports_value_with_children(self):
        """Value node with children is reported."""
        root = Node(type=NodeType.VALUE, value=1)
        root.children.append(Node(name="x", parent=root))
        assert any("must not have children" in e for e in check_tree(root))

    def test_reports_broken_parent_link(self):
        """Wrong parent pointer is reported."""
        root = sample_tree()
        root.child("name").parent = None
        assert any("incorrect parent" in e for e in check_tree(root))

    def test_reports_named_root_and_unnamed_child(self):
        """Root names and missing child names are reported."""
        root = Node(type=NodeType.OBJECT, name="root")
        root.children.append(Node(parent=root))
        errors = check_tree(root)
        assert any("root node must be unnamed" in e for e in errors)
        assert any("is unnamed" in e for e in errors)

    def test_reports_duplicate_ids(self):
        """Repeated ids are reported."""
        root = Node(type=NodeType.ARRAY, children=[Node(name="0", id="x"), Node(name="1", id="x")])
        assert any("duplicate node id" in e for e in check_tree(root))

    def test_reports_invalid_type(self):
        """Unknown node types are reported."""
        root = Node(type="widget")
        assert any("invalid type" in e for e in check_tree(root))


class TestCycles:
    """Test cycle detection."""

    def test_acyclic_tree_passes(self):
        """A normal tree passes."""
        ensure_acyclic(sample_tree())

    def test_cycle_detected(self):
        """A node inside its own subtree is reported."""
        root = sample_tree()
        meta = root.child("meta")
        meta.children.append(root)
        with pytest.raises(SerializationError, match="Circular reference"):
            ensure_acyclic(root)
        assert "Circular reference" in check_tree(root)[0]

    def test_shared_subtree_is_not_a_cycle(self):
        """The same node twice under one parent is not a cycle."""
        shared = Node(name="s", value=1)
        root = Node(type=NodeType.ARRAY)
        root.children.extend([shared, shared])
        ensure_acyclic(root)
