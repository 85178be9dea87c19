# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the HCL document tree."""

import pytest

from credagent.document import (
    DocumentSyntaxError,
    ObjectItem,
    ObjectList,
    _decode_string,
    parse,
    parse_document,
)


class TestParse:
    """Tests for parse()."""

    def test_attributes(self) -> None:
        """Top-level attributes are decoded to plain values."""
        body = parse('name = "x"\ncount = 3\n')
        assert body == {"name": "x", "count": 3}

    def test_empty_document(self) -> None:
        """An empty document is an empty body."""
        assert parse("") == {}

    def test_syntax_error(self) -> None:
        """Invalid HCL raises DocumentSyntaxError."""
        with pytest.raises(DocumentSyntaxError):
            parse("block {\n  x = \n")

    def test_strips_metadata_keys(self) -> None:
        """Dunder metadata keys never reach callers."""
        body = parse('block {\n  x = "y"\n}\n')
        assert all(not k.startswith("__") for k in body)
        for block in body["block"]:
            assert all(not k.startswith("__") for k in block)

    def test_decodes_escape_sequences(self) -> None:
        """HCL escape sequences in strings are decoded."""
        body = parse(
            r'x = "C:\\tmp\\a"' "\n"
            r'y = "tab\there"' "\n"
            r'z = "a\"b"' "\n"
            r'w = "one\ntwo"' "\n"
        )
        assert body == {
            "x": "C:\\tmp\\a",
            "y": "tab\there",
            "z": 'a"b',
            "w": "one\ntwo",
        }


class TestDecodeString:
    """Tests for string literal decoding."""

    def test_unquoted_passthrough(self) -> None:
        """Unquoted text is returned unchanged."""
        assert _decode_string(r"a\b") == r"a\b"

    def test_unicode_escapes(self) -> None:
        """Four- and eight-digit unicode escapes are decoded."""
        assert _decode_string(r'"caf\u00e9 \U0001F600"') == "café \U0001f600"

    def test_invalid_escape(self) -> None:
        """Unknown escapes are a syntax error."""
        with pytest.raises(DocumentSyntaxError, match="invalid escape"):
            _decode_string(r'"bad\q"')

    def test_out_of_range_codepoint(self) -> None:
        """Code points beyond U+10FFFF are a syntax error."""
        with pytest.raises(DocumentSyntaxError, match="invalid escape"):
            _decode_string(r'"\UFFFFFFFF"')


class TestObjectList:
    """Tests for ObjectList construction and filtering."""

    def test_attribute_item(self) -> None:
        """Attributes become unlabelled non-block items."""
        root = parse_document('pid_file = "/run/a.pid"\n')
        assert root.items == (
            ObjectItem(key="pid_file", value="/run/a.pid", is_block=False),
        )

    def test_unlabelled_block(self) -> None:
        """An unlabelled block keeps its body and has no labels."""
        root = parse_document('method {\n  type = "aws-iam"\n}\n')
        (item,) = root.items
        assert item.key == "method"
        assert item.labels == ()
        assert item.is_block is True
        assert item.value == {"type": "aws-iam"}

    def test_labelled_block(self) -> None:
        """A labelled block exposes its label separately from the body."""
        root = parse_document('sink "file" {\n  path = "/t"\n}\n')
        (item,) = root.items
        assert item.key == "sink"
        assert item.labels == ("file",)
        assert item.value == {"path": "/t"}

    def test_unlabelled_block_with_object_attribute(self) -> None:
        """An object-valued attribute is not mistaken for a block label."""
        root = parse_document("method {\n  opts = {\n    a = 1\n  }\n}\n")
        (item,) = root.items
        assert item.is_block is True
        assert item.labels == ()
        assert item.value == {"opts": {"a": 1}}

    def test_labelled_block_with_object_attribute(self) -> None:
        """A labelled block whose body is one object attribute keeps both."""
        root = parse_document(
            'sink "file" {\n  opts = {\n    a = 1\n  }\n}\n'
        )
        (item,) = root.items
        assert item.labels == ("file",)
        assert item.value == {"opts": {"a": 1}}

    def test_multiple_labels(self) -> None:
        """Every label of a multi-label block is kept in order."""
        root = parse_document('resource "a" "b" {\n  x = 1\n}\n')
        (item,) = root.items
        assert item.labels == ("a", "b")
        assert item.value == {"x": 1}

    def test_list_of_objects_is_attribute(self) -> None:
        """A list of object literals stays a plain attribute."""
        root = parse_document("x = [\n  {\n    a = 1\n  }\n]\n")
        (item,) = root.items
        assert item.is_block is False
        assert item.value == [{"a": 1}]

    def test_repeated_blocks_kept_in_order(self) -> None:
        """Repeated blocks stay separate items, in declaration order."""
        text = (
            'sink "file" {\n  path = "/a"\n}\n'
            'sink "socket" {\n  path = "/b"\n}\n'
            'sink "file" {\n  path = "/c"\n}\n'
        )
        root = parse_document(text)
        assert len(root) == 3
        assert [i.labels for i in root] == [("file",), ("socket",), ("file",)]
        assert [i.value["path"] for i in root] == ["/a", "/b", "/c"]

    def test_filter(self) -> None:
        """filter() keeps only the matching key."""
        text = (
            'pid_file = "/p"\n'
            'method {\n  type = "a"\n}\n'
            'sink "file" {\n  path = "/t"\n}\n'
        )
        root = parse_document(text)
        assert len(root.filter("sink")) == 1
        assert len(root.filter("method")) == 1
        assert len(root.filter("missing")) == 0

    def test_keys(self) -> None:
        """keys() lists distinct keys in first-seen order."""
        text = (
            'a = 1\n'
            'sink "x" {\n  path = "/1"\n}\n'
            'sink "y" {\n  path = "/2"\n}\n'
        )
        assert parse_document(text).keys() == ["a", "sink"]

    def test_from_body(self) -> None:
        """from_body accepts parser output with block markers."""
        root = ObjectList.from_body(
            {
                "sink": [{'"file"': {"path": '"/t"', "__is_block__": True}}],
                "pid_file": '"/p"',
            }
        )
        assert [i.key for i in root] == ["sink", "pid_file"]
        assert root.items[0].labels == ("file",)
        assert root.items[0].value == {"path": "/t"}
        assert root.items[1].value == "/p"

    def test_unmarked_dicts_are_data(self) -> None:
        """A list of dicts without block markers stays an attribute."""
        root = ObjectList.from_body({"sink": [{"file": {"path": "/t"}}]})
        (item,) = root.items
        assert item.is_block is False
        assert item.labels == ()
        assert item.value == [{"file": {"path": "/t"}}]


class TestObjectItemChildren:
    """Tests for ObjectItem.children()."""

    def test_nested_blocks(self) -> None:
        """children() exposes the nested block structure."""
        text = (
            "auto_auth {\n"
            "  method {\n"
            '    type = "aws-iam"\n'
            "  }\n"
            '  sink "file" {\n'
            '    path = "/t"\n'
            "  }\n"
            "}\n"
        )
        (auto_auth,) = parse_document(text).items
        children = auto_auth.children()
        assert children.keys() == ["method", "sink"]
        assert children.filter("sink").items[0].labels == ("file",)

    def test_attribute_has_no_children(self) -> None:
        """children() on a scalar attribute raises TypeError."""
        item = ObjectItem(key="pid_file", value="/p")
        with pytest.raises(TypeError, match="not an object"):
            item.children()
