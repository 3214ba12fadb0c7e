"""Namespace-agnostic node lookup over parsed WFS response documents.

Nodes are matched by local name so the same selectors work across the schema
versions FMI serves (WaterML 2.0 time series, IWXXM aviation messages).
Qualified attribute names are resolved through ``NAMESPACES``.
"""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Iterator, List, Optional, Union

from ..providers.base import MalformedDocument


logger = logging.getLogger(__name__)

NAMESPACES = {
    "gml": "http://www.opengis.net/gml/3.2",
    "wml2": "http://www.opengis.net/waterml/2.0",
    "om": "http://www.opengis.net/om/2.0",
    "wfs": "http://www.opengis.net/wfs/2.0",
    "xlink": "http://www.w3.org/1999/xlink",
}


def local_name(tag: object) -> Optional[str]:
    # comments and processing instructions carry non-string tags
    if not isinstance(tag, str):
        return None
    return tag.rsplit("}", 1)[-1]


def qualify(name: str) -> str:
    """Expand ``prefix:name`` into ElementTree's ``{uri}name`` form."""
    if ":" not in name:
        return name
    prefix, local = name.split(":", 1)
    try:
        return f"{{{NAMESPACES[prefix]}}}{local}"
    except KeyError:
        raise ValueError(f"unknown namespace prefix {prefix!r}") from None


class Node:
    __slots__ = ("element",)

    def __init__(self, element: ET.Element) -> None:
        self.element = element

    @property
    def name(self) -> Optional[str]:
        return local_name(self.element.tag)

    @property
    def text(self) -> str:
        return "".join(self.element.itertext()).strip()

    def attr(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.element.get(qualify(name), default)

    def iter(self, name: str) -> Iterator["Node"]:
        """Yield descendants (not self) whose local name is ``name``, in document order."""
        for element in self.element.iter():
            if element is self.element:
                continue
            if local_name(element.tag) == name:
                yield Node(element)

    def find_all(self, selector: str) -> List["Node"]:
        """Resolve a descendant chain such as ``"source input"``."""
        current: List[Node] = [self]
        for step in selector.split():
            seen = set()
            matches: List[Node] = []
            for node in current:
                for child in node.iter(step):
                    if id(child.element) in seen:
                        continue
                    seen.add(id(child.element))
                    matches.append(child)
            current = matches
            if not current:
                break
        return current

    def find(self, selector: str) -> Optional["Node"]:
        found = self.find_all(selector)
        return found[0] if found else None

    def find_text(self, selector: str) -> Optional[str]:
        node = self.find(selector)
        if node is None:
            return None
        return node.text or None

    def find_where(self, name: str, attribute: str, value: str) -> Optional["Node"]:
        for node in self.iter(name):
            if node.attr(attribute) == value:
                return node
        return None

    def __repr__(self) -> str:
        return f"Node({self.name!r})"


class Document(Node):
    """Parsed response body; the root element is itself a queryable node."""

    def iter(self, name: str) -> Iterator[Node]:
        if local_name(self.element.tag) == name:
            yield Node(self.element)
        yield from super().iter(name)


def parse_document(payload: Union[str, bytes]) -> Document:
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as exc:
        logger.warning("XML parse error: %s", exc)
        raise MalformedDocument(f"invalid xml: {exc}") from exc
    return Document(root)


__all__ = ["Document", "NAMESPACES", "Node", "local_name", "parse_document", "qualify"]
