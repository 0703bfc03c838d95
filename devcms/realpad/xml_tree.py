"""Realpad XML payload normalization into an attributed tree.

Every element becomes an :class:`AttributedNode`. Attributes live in their own
mapping and children are always held in ordered lists, so callers never branch
on whether an element occurred zero, one or many times.

When a node is rendered as a plain dict (``to_dict``), attribute names carry
the ``@_`` prefix and text content is stored under ``#text``; neither can
collide with an XML element name. Children that may repeat under their parent are
always rendered as lists.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from devcms.exceptions import ParseError

logger = logging.getLogger(__name__)

ATTRIBUTE_PREFIX = "@_"
TEXT_KEY = "#text"
# Parent tag -> child tags that may legally repeat under it.
REPEATABLE_CHILDREN: dict[str, frozenset[str]] = {
    "export": frozenset({"project"}),
    "project": frozenset({"building"}),
    "building": frozenset({"floor"}),
    "floor": frozenset({"flat"}),
    "flat": frozenset({"flat-attribute"}),
}

_FRAGMENT_RADIUS = 20

T = TypeVar("T")


def to_sequence(value: T | list[T] | tuple[T, ...] | None) -> list[T]:
    """Coerce an absent, single or repeated value into a list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


@dataclass
class AttributedNode:
    """A parsed XML element: tag, attributes and ordered children."""

    tag: str
    attributes: dict[str, str] = field(default_factory=dict)
    children: list[AttributedNode] = field(default_factory=list)
    text: str = ""

    def get(self, name: str, default: str = "") -> str:
        """Return an attribute value, or ``default`` when absent."""
        return self.attributes.get(name, default)

    def find_all(self, tag: str) -> list[AttributedNode]:
        """Return the direct children with ``tag`` in document order."""
        return [child for child in self.children if child.tag == tag]

    def find(self, tag: str) -> AttributedNode | None:
        """Return the first direct child with ``tag``, if any."""
        for child in self.children:
            if child.tag == tag:
                return child
        return None

    def to_dict(
        self, schema: Mapping[str, Iterable[str]] = REPEATABLE_CHILDREN
    ) -> dict[str, Any]:
        """Render the subtree as nested dicts using the ``@_`` attribute prefix.

        ``schema`` maps a parent tag to the child tags that may repeat under
        it; those children are always rendered as lists, empty when absent.
        The schema is followed from this node down its own path only, so a
        ``floor`` under an unrelated parent is rendered like any other element.

        Used for debug dumps of a parsed inventory and for inspection.
        """
        return self._render(schema, None)

    def _render(
        self, schema: Mapping[str, Iterable[str]], parent_tag: str | None
    ) -> dict[str, Any]:
        # parent_tag is None at the root; "" once the path has left the schema.
        on_path = parent_tag is None or self.tag in frozenset(schema.get(parent_tag, ()))
        out: dict[str, Any] = {
            f"{ATTRIBUTE_PREFIX}{name}": value for name, value in self.attributes.items()
        }
        if self.text:
            out[TEXT_KEY] = self.text
        repeatable = frozenset(schema.get(self.tag, ())) if on_path else frozenset()
        for tag in sorted(repeatable):
            out[tag] = []
        for child in self.children:
            rendered = child._render(schema, self.tag if on_path else "")
            if child.tag in repeatable:
                out[child.tag].append(rendered)
            elif child.tag in out:
                out[child.tag] = [*to_sequence(out[child.tag]), rendered]
            else:
                out[child.tag] = rendered
        return out


def _local_name(tag: str) -> str:
    """Strip a ``{namespace}`` qualifier from an element or attribute name."""
    return tag.rsplit("}", 1)[-1]


def _convert(element: ET.Element) -> AttributedNode:
    return AttributedNode(
        tag=_local_name(element.tag),
        attributes={_local_name(name): value for name, value in element.attrib.items()},
        children=[_convert(child) for child in element],
        text=(element.text or "").strip(),
    )


def _fragment_at(raw_xml: str, line: int, column: int) -> str:
    """Return the text around a 1-based line and 0-based column."""
    lines = raw_xml.splitlines()
    if not lines or line < 1 or line > len(lines):
        return raw_xml[: _FRAGMENT_RADIUS * 2]
    text = lines[line - 1]
    start = max(column - _FRAGMENT_RADIUS, 0)
    return text[start : column + _FRAGMENT_RADIUS]


def parse(raw_xml: str) -> AttributedNode:
    """Parse a raw XML document into its root :class:`AttributedNode`.

    Raises ParseError with the offending fragment when the payload is empty
    or not well-formed.
    """
    if not raw_xml or not raw_xml.strip():
        raise ParseError("Empty inventory payload")
    try:
        root = ET.fromstring(raw_xml)
    except ET.ParseError as exc:
        line, column = exc.position
        fragment = _fragment_at(raw_xml, line, column)
        logger.debug("Malformed inventory XML at line %d column %d", line, column)
        raise ParseError(f"Malformed inventory XML: {exc}", fragment=fragment) from exc
    return _convert(root)
