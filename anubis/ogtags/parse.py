"""A small HTML tree builder and Open Graph meta tag extraction."""

from __future__ import annotations

from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Iterable, Iterator, Optional

DOCUMENT = "#document"

_VOID_ELEMENTS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "param", "source", "track", "wbr",
    }
)


@dataclass(eq=False)
class Element:
    """A node of a parsed HTML document; the root has the tag ``#document``."""

    tag: str
    attrs: list[tuple[str, str]] = field(default_factory=list)
    children: list["Element"] = field(default_factory=list)
    parent: Optional["Element"] = field(default=None, repr=False)

    @property
    def is_element(self) -> bool:
        return self.tag != DOCUMENT

    def iter(self) -> Iterator["Element"]:
        """Yield this node and all its descendants in document order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


class HTMLTreeBuilder(HTMLParser):
    """Builds an :class:`Element` tree from HTML text, tolerating broken markup."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.root = Element(DOCUMENT)
        self._stack: list[Element] = [self.root]

    def _append(self, tag: str, attrs) -> Element:
        parent = self._stack[-1]
        element = Element(tag, [(key, value or "") for key, value in attrs], parent=parent)
        parent.children.append(element)
        return element

    def handle_starttag(self, tag, attrs):
        element = self._append(tag, attrs)
        if tag not in _VOID_ELEMENTS:
            self._stack.append(element)

    def handle_startendtag(self, tag, attrs):
        self._append(tag, attrs)

    def handle_endtag(self, tag):
        for depth in range(len(self._stack) - 1, 0, -1):
            if self._stack[depth].tag == tag:
                del self._stack[depth:]
                return


def parse_html(text: str) -> Element:
    """Parse HTML text into a document tree."""
    builder = HTMLTreeBuilder()
    builder.feed(text)
    builder.close()
    return builder.root


def is_og_meta_tag(node: Optional[Element]) -> bool:
    """Return True if ``node`` is any ``meta`` element."""
    return node is not None and node.is_element and node.tag == "meta"


def extract_meta_tag_info(
    node: Element, approved_tags: Iterable[str], approved_prefixes: Iterable[str]
) -> tuple[str, str]:
    """Return the approved property name (or '') and the content of a meta tag."""
    property_key = ""
    content = ""
    for key, value in node.attrs:
        if key in ("property", "name"):
            property_key = value
        elif key == "content":
            content = value

    if not property_key:
        return "", content
    if any(property_key.startswith(prefix) for prefix in approved_prefixes):
        return property_key, content
    if property_key in set(approved_tags):
        return property_key, content
    return "", content


def extract_og_tags(
    doc: Element, approved_tags: Iterable[str], approved_prefixes: Iterable[str]
) -> dict[str, str]:
    """Collect approved meta tag properties and their contents from a document."""
    tags = tuple(approved_tags)
    prefixes = tuple(approved_prefixes)
    result: dict[str, str] = {}
    for node in doc.iter():
        if is_og_meta_tag(node):
            prop, content = extract_meta_tag_info(node, tags, prefixes)
            if prop:
                result[prop] = content
    return result