# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Generic document tree for HCL agent configuration.

``python-hcl2`` turns HCL text into nested dicts where every block type maps
to a list of block bodies.  Each block body carries an ``__is_block__``
marker, and block labels become quoted single-key dicts wrapped around it::

    sink "file" { path = "/tmp/a" }
        ->  {"sink": [{'"file"': {"path": '"/tmp/a"', "__is_block__": True}}]}

    sink { opts = { a = 1 } }
        ->  {"sink": [{"opts": {"a": 1}, "__is_block__": True}]}

This module flattens that shape into an :class:`ObjectList` of
:class:`ObjectItem` entries (key, labels, value).  Repeated keys stay
separate items in declaration order, which is what cardinality checks
(``one and only one 'auto_auth' block``) need.  Values handed to callers are
normalised: string quotes are removed, escape sequences are decoded and
parser metadata keys are dropped.

Nothing here knows about ``auto_auth``, methods or sinks; that is the job
of :mod:`credagent.config`.
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import hcl2
from lark.exceptions import LarkError


_BLOCK_MARKER = "__is_block__"

_ESCAPE = re.compile(r"\\(u[0-9A-Fa-f]{4}|U[0-9A-Fa-f]{8}|.)", re.DOTALL)

_SIMPLE_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    '"': '"',
    "\\": "\\",
}


class DocumentSyntaxError(Exception):
    """Raised when text cannot be parsed as HCL."""


@dataclass(frozen=True)
class ObjectItem:
    """One attribute or block in a document body.

    Attributes:
        key: Attribute name or block type (e.g. ``"sink"``).
        labels: Block labels in order (``sink "file" {}`` has ``("file",)``).
            Always empty for attributes.
        value: Normalised block body as a dict, or the attribute's value.
        is_block: True when the item came from ``key [labels] { ... }``.
        raw: Block body as emitted by the parser, used by :meth:`children`.
    """

    key: str
    labels: tuple[str, ...] = ()
    value: Any = None
    is_block: bool = False
    raw: dict[str, Any] | None = field(default=None, repr=False, compare=False)

    def children(self) -> "ObjectList":
        """Return the item's body as an :class:`ObjectList`.

        Raises:
            TypeError: If the item's value is not an object.
        """
        if not isinstance(self.value, dict):
            raise TypeError(f"{self.key!r} is not an object")
        return ObjectList.from_body(
            self.raw if self.raw is not None else self.value
        )


@dataclass(frozen=True)
class ObjectList:
    """Ordered, possibly-repeating list of document items."""

    items: tuple[ObjectItem, ...] = field(default_factory=tuple)

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> "ObjectList":
        """Build a list from a body dict as emitted by ``hcl2.loads``."""
        items: list[ObjectItem] = []
        for raw_key, value in body.items():
            if _is_meta(raw_key):
                continue
            key = _decode_string(str(raw_key))
            blocks = _split_blocks(value)
            if blocks is None:
                items.append(ObjectItem(key=key, value=_normalize(value)))
                continue
            for labels, block_body in blocks:
                items.append(
                    ObjectItem(
                        key=key,
                        labels=labels,
                        value=_normalize(block_body),
                        is_block=True,
                        raw=block_body,
                    )
                )
        return cls(tuple(items))

    def filter(self, key: str) -> "ObjectList":
        """Return only the items whose key equals *key*, order preserved."""
        return ObjectList(tuple(i for i in self.items if i.key == key))

    def keys(self) -> list[str]:
        """Distinct item keys in first-seen order."""
        return list(dict.fromkeys(i.key for i in self.items))

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[ObjectItem]:
        return iter(self.items)


def _load(text: str) -> dict[str, Any]:
    try:
        raw = hcl2.loads(text)
    except LarkError as e:
        raise DocumentSyntaxError(str(e)) from e
    if not isinstance(raw, dict):
        raise DocumentSyntaxError("file doesn't contain a root object")
    return raw


def parse(text: str) -> dict[str, Any]:
    """Parse HCL *text* into a normalised body dict.

    String values, dict keys and block labels come back without surrounding
    quotes and with escape sequences decoded.  Parser metadata keys
    (``__is_block__`` and friends) are dropped.

    Raises:
        DocumentSyntaxError: If the text is not valid HCL.
    """
    return _normalize(_load(text))


def parse_document(text: str) -> ObjectList:
    """Parse HCL *text* straight into the root :class:`ObjectList`.

    Raises:
        DocumentSyntaxError: If the text is not valid HCL.
    """
    return ObjectList.from_body(_load(text))


def _is_meta(key: object) -> bool:
    name = str(key)
    return name.startswith("__") and name.endswith("__")


def _split_labels(
    block: dict[str, Any],
) -> tuple[tuple[str, ...], dict[str, Any]] | None:
    """Split one parser block into its labels and its body.

    The body is the dict carrying the block marker.  Each dict wrapped around
    it has a single quoted key, the label.  An unlabelled block carries the
    marker itself, so an object-valued attribute is never taken for a label.
    Returns None when *block* has no marker at all, i.e. it is plain data.
    """
    labels: list[str] = []
    body = block
    while _BLOCK_MARKER not in body:
        keys = [k for k in body if not _is_meta(k)]
        if len(keys) != 1 or not isinstance(body[keys[0]], dict):
            return None
        labels.append(_decode_string(str(keys[0])))
        body = body[keys[0]]
    return tuple(labels), body


def _split_blocks(
    value: object,
) -> list[tuple[tuple[str, ...], dict[str, Any]]] | None:
    """Return ``(labels, body)`` per block, or None if *value* is data."""
    if not isinstance(value, list) or not value:
        return None
    blocks = []
    for entry in value:
        if not isinstance(entry, dict):
            return None
        split = _split_labels(entry)
        if split is None:
            return None
        blocks.append(split)
    return blocks


def _unescape(match: re.Match[str]) -> str:
    seq = match.group(1)
    if seq[0] in "uU" and len(seq) > 1:
        try:
            return chr(int(seq[1:], 16))
        except ValueError as e:
            raise DocumentSyntaxError(
                f"invalid escape sequence \\{seq}"
            ) from e
    try:
        return _SIMPLE_ESCAPES[seq]
    except KeyError:
        raise DocumentSyntaxError(f"invalid escape sequence \\{seq}") from None


def _decode_string(value: str) -> str:
    """Strip the quotes of a quoted string literal and decode its escapes.

    Unquoted text (identifiers, expressions) is returned unchanged.
    """
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return _ESCAPE.sub(_unescape, value[1:-1])
    return value


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        return _decode_string(value)
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    if isinstance(value, dict):
        return {
            _decode_string(str(k)): _normalize(v)
            for k, v in value.items()
            if not _is_meta(k)
        }
    return value
