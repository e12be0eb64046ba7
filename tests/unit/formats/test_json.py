"""
Unit tests for the JSON format handler.
"""

import json

import pytest

from hierdoc.dom import Node, NodeType, check_tree, from_python, same_structure
from hierdoc.errors import ParseError, SerializationError
from hierdoc.formats.base import SerializeOptions
from hierdoc.formats.json import JSONHandler, detect_indent


@pytest.fixture
def handler():
    return JSONHandler()


class TestJSONDescriptors:
    """Test handler identity and capabilities."""

    def test_descriptors(self, handler):
        """Format id, name, extension and MIME type are advertised."""
        assert handler.format_type == "json"
        assert handler.name == "JSON"
        assert handler.extensions == [".json"]
        assert "application/json" in handler.mime_types
        caps = handler.capabilities
        assert caps.parse and caps.serialize and caps.validate


class TestJSONParsing:
    """Test JSON text into node trees."""

    def test_parse_object(self, handler):
        """Object members become named children in source order."""
        root = handler.parse('{"name": "John", "age": 30}')
        assert root.type == NodeType.OBJECT
        assert root.name is None
        assert [c.name for c in root.children] == ["name", "age"]
        assert root.child("name").value == "John"
        assert root.child("age").value == 30

    def test_parse_types(self, handler):
        """Ints stay int; fractions and exponents are float."""
        root = handler.parse('{"i": 1, "f": 1.5, "e": 1e3, "t": true, "n": null, "s": "x"}')
        values = {c.name: c.value for c in root.children}
        assert type(values["i"]) is int
        assert type(values["f"]) is float
        assert type(values["e"]) is float
        assert values["t"] is True
        assert values["n"] is None
        assert values["s"] == "x"

    def test_array_children_named_by_index(self, handler):
        """Array elements are named "0", "1", ... at every level."""
        root = handler.parse('[10, [20, 30], {"a": 1}]')
        assert root.type == NodeType.ARRAY
        assert [c.name for c in root.children] == ["0", "1", "2"]
        assert [c.name for c in root.children[1].children] == ["0", "1"]

    def test_parent_links_and_ids(self, handler):
        """Parsed trees pass the invariant check and carry json- ids."""
        root = handler.parse('{"a": {"b": [1, 2]}}')
        assert check_tree(root) == []
        ids = [node.id for node in root.depth_first()]
        assert all(i.startswith("json-") for i in ids)

    def test_duplicate_keys_last_wins(self, handler):
        """Repeated key keeps its first position with the last value."""
        root = handler.parse('{"a": 1, "b": 2, "a": 3}')
        assert [c.name for c in root.children] == ["a", "b"]
        assert root.child("a").value == 3

    def test_metadata(self, handler):
        """Root records format, raw source and detected indent."""
        content = '{\n    "a": 1\n}'
        root = handler.parse(content)
        assert root.metadata.format == "json"
        assert root.metadata.original_content == content
        assert root.metadata.json.indent == "    "

    def test_scalar_root(self, handler):
        """A bare scalar document parses to a value root."""
        root = handler.parse('"hello"')
        assert root.type == NodeType.VALUE
        assert root.value == "hello"

    def test_separate_parses_share_nothing(self, handler):
        """Two parses of the same text produce distinct node objects."""
        first = handler.parse('{"a": [1]}')
        second = handler.parse('{"a": [1]}')
        first_ids = {id(n) for n in first.depth_first()}
        assert not first_ids & {id(n) for n in second.depth_first()}


class TestJSONParseErrors:
    """Test rejection of malformed or missing input."""

    @pytest.mark.parametrize("content", [
        '{"a": 1',
        '{a: 1}',
        '{"a": value}',
        '{"a": 1,}',
        '[1, 2,]',
        '{"a": NaN}',
        '{"a": Infinity}',
    ])
    def test_invalid_json(self, handler, content):
        """Grammar violations raise ParseError."""
        with pytest.raises(ParseError):
            handler.parse(content)

    @pytest.mark.parametrize("content", [None, "", "   \n", 42])
    def test_missing_content(self, handler, content):
        """None, blank and non-string input raise ParseError."""
        with pytest.raises(ParseError):
            handler.parse(content)

    def test_error_carries_position(self, handler):
        """Decoder line and column reach the exception and its message."""
        with pytest.raises(ParseError) as info:
            handler.parse('{\n  "a": 1,\n  b: 2\n}')
        assert info.value.line == 3
        assert info.value.column is not None
        assert "line 3" in str(info.value)

    def test_parse_error_is_value_error(self, handler):
        """ParseError can be caught as ValueError."""
        with pytest.raises(ValueError):
            handler.parse("{")


class TestJSONSerialization:
    """Test node trees back to JSON text."""

    def test_default_indent(self, handler):
        """Unparsed trees use the configured two-space indent."""
        tree = from_python({"a": [1, 2], "b": {"c": None}})
        assert handler.serialize(tree) == '{\n  "a": [\n    1,\n    2\n  ],\n  "b": {\n    "c": null\n  }\n}'

    def test_compact(self, handler):
        """Compact output has no whitespace."""
        tree = from_python({"a": [1, 2], "b": "x"})
        assert handler.serialize(tree, SerializeOptions(compact=True)) == '{"a":[1,2],"b":"x"}'

    def test_explicit_indent(self, handler):
        """Indent option overrides everything else."""
        tree = from_python({"a": 1})
        assert handler.serialize(tree, SerializeOptions(indent="\t")) == '{\n\t"a": 1\n}'

    def test_detected_indent_reused(self, handler):
        """Source indentation is written back."""
        root = handler.parse('{\n    "a": 1\n}')
        assert handler.serialize(root) == '{\n    "a": 1\n}'

    def test_array_follows_child_order(self, handler):
        """Element order comes from the children list, not the names."""
        root = Node(type=NodeType.ARRAY)
        root.add_child(Node(name="1", value="first"))
        root.add_child(Node(name="0", value="second"))
        assert json.loads(handler.serialize(root)) == ["first", "second"]

    def test_unicode_kept(self, handler):
        """Non-ASCII text is not escaped by default."""
        assert handler.serialize(from_python({"k": "héllo"}), SerializeOptions(compact=True)) == '{"k":"héllo"}'

    def test_round_trip(self, handler):
        """parse(serialize(parse(x))) equals parse(x)."""
        content = '{"name": "x", "items": [1, 2.5, true, null, {"deep": ["a"]}], "empty": {}, "none": []}'
        root = handler.parse(content)
        again = handler.parse(handler.serialize(root))
        assert same_structure(root, again)
        assert json.loads(handler.serialize(root)) == json.loads(content)


class TestJSONSerializeErrors:
    """Test trees that cannot be written."""

    def test_missing_type(self, handler):
        """Node without a type is rejected."""
        with pytest.raises(SerializationError, match="missing type"):
            handler.serialize(Node(type=None))

    def test_unknown_type(self, handler):
        """Node with an unrecognized type is rejected."""
        with pytest.raises(SerializationError, match="Unknown node type"):
            handler.serialize(Node(type="widget"))

    def test_unnamed_member(self, handler):
        """Object member without a name is rejected."""
        root = Node(type=NodeType.OBJECT)
        root.children.append(Node(value=1, parent=root))
        with pytest.raises(SerializationError):
            handler.serialize(root)

    def test_duplicate_member_names(self, handler):
        """Two members with the same name are rejected, not collapsed."""
        root = from_python({"a": 1, "b": 2})
        root.child("b").rename("a")
        with pytest.raises(SerializationError, match="Duplicate member name 'a'"):
            handler.serialize(root)

    def test_cycle(self, handler):
        """A node reachable from itself is reported."""
        root = from_python({"a": {"b": 1}})
        root.child("a").children.append(root)
        with pytest.raises(SerializationError, match="Circular reference"):
            handler.serialize(root)

    def test_non_finite_float(self, handler):
        """Infinity has no JSON form."""
        with pytest.raises(SerializationError):
            handler.serialize(from_python({"a": float("inf")}))

    def test_unsupported_value(self, handler):
        """Arbitrary Python objects are rejected."""
        with pytest.raises(SerializationError, match="Unsupported value type"):
            handler.serialize(Node(value=object()))


class TestJSONValidationAndDetection:
    """Test validate, detect and the convenience operations."""

    def test_validate_valid(self, handler):
        """Valid input reports no errors."""
        result = handler.validate('{"a": 1}')
        assert result.valid
        assert result.errors == []

    def test_validate_invalid(self, handler):
        """Invalid input reports the decoder message."""
        result = handler.validate('{"a": }')
        assert not result
        assert result.errors and "Invalid JSON" in result.errors[0]

    def test_validate_none_does_not_raise(self, handler):
        """validate never raises, even for None."""
        assert not handler.validate(None).valid

    def test_detect(self, handler):
        """Only well-formed objects and arrays are claimed."""
        assert handler.detect('{"a": 1}')
        assert handler.detect('[1, 2]')
        assert not handler.detect("a: 1")
        assert not handler.detect("{broken")

    def test_detect_indent(self):
        """Indent unit comes from the first indented line."""
        assert detect_indent('{\n  "a": 1\n}') == "  "
        assert detect_indent('{"a": 1}') is None

    def test_reformat_and_default_content(self, handler):
        """reformat pretty-prints; the default document is an empty object."""
        assert handler.reformat('{"a":1}') == '{\n  "a": 1\n}'
        assert handler.default_content() == "{}"
