"""
Document Text Index

An ordered, queryable view of the text-bearing leaves of an lxml document.
lxml has no text-node objects: a leaf is either the .text of an element (the
text before its first child) or the .tail of an element (the text after it,
owned by its parent). Leaves are collected in document order, which the
"first candidate wins" searches rely on.
"""
import logging
from typing import Iterator, List, Optional, Tuple

from lxml import etree

from cliptrace.utils.string_utils import normalize_with_offsets

logger = logging.getLogger(__name__)

# Elements whose own text is never rendered as document text
SKIPPED_CONTENT_TAGS = {'script', 'style', 'noscript', 'template'}


def tag_name(element) -> str:
    """Lowercase local tag name, '' for comments and processing instructions."""
    if element is None or not isinstance(element.tag, str):
        return ""
    return etree.QName(element).localname.lower()


class TextLeaf:
    """One .text or .tail string of an element, with a memoized normalized form."""

    def __init__(self, element, is_tail: bool = False):
        self.element = element
        self.is_tail = is_tail
        self._normalized = None
        self._offsets = None

    @property
    def text(self) -> str:
        value = self.element.tail if self.is_tail else self.element.text
        return value or ""

    @property
    def parent(self):
        """The element the text belongs to, as a DOM text node's parentElement would be."""
        return self.element.getparent() if self.is_tail else self.element

    @property
    def normalized(self) -> str:
        if self._normalized is None:
            self._normalized, self._offsets = normalize_with_offsets(self.text)
        return self._normalized

    @property
    def offsets(self) -> List[int]:
        if self._offsets is None:
            self._normalized, self._offsets = normalize_with_offsets(self.text)
        return self._offsets

    def __len__(self):
        return len(self.text)

    def __eq__(self, other):
        return (isinstance(other, TextLeaf)
                and self.element is other.element
                and self.is_tail == other.is_tail)

    def __hash__(self):
        return hash((id(self.element), self.is_tail))

    def __repr__(self):
        kind = "tail" if self.is_tail else "text"
        return f"<TextLeaf({tag_name(self.element)}.{kind}='{self.text[:30]}')>"


def iter_text_leaves(element, include_blank: bool = False) -> Iterator[TextLeaf]:
    """
    Yield the text leaves inside element in document order (pre-order).

    The element's own tail is outside of it and never yielded. Comment and
    processing-instruction content is skipped, their tails are not. With
    include_blank=False, whitespace-only leaves are dropped.
    """
    skip_depth = 0
    for event, node in etree.iterwalk(element, events=('start', 'end')):
        is_content_node = isinstance(node.tag, str)
        if event == 'start':
            if is_content_node and tag_name(node) in SKIPPED_CONTENT_TAGS:
                skip_depth += 1
                continue
            if skip_depth == 0 and is_content_node and node.text:
                if include_blank or node.text.strip():
                    yield TextLeaf(node)
        else:
            if is_content_node and tag_name(node) in SKIPPED_CONTENT_TAGS:
                skip_depth -= 1
            if node is element or skip_depth > 0:
                continue
            if node.tail and (include_blank or node.tail.strip()):
                yield TextLeaf(node, is_tail=True)


def flattened_text(element) -> str:
    """All text inside element concatenated, the way a DOM node's textContent reads."""
    return "".join(leaf.text for leaf in iter_text_leaves(element, include_blank=True))


def content_root(root):
    """The <body> of a full document, otherwise root itself."""
    if root is None:
        return None
    if tag_name(root) == 'body':
        return root
    body = next((el for el in root.iter() if tag_name(el) == 'body'), None)
    return body if body is not None else root


class DocumentTextIndex:
    """
    Ordered text leaves of one document, rebuilt for every relocation attempt.

    Never shared between relocation calls and never persisted.
    """

    def __init__(self, leaves: List[TextLeaf]):
        self.leaves = leaves

    @classmethod
    def build(cls, root) -> "DocumentTextIndex":
        leaves = list(iter_text_leaves(content_root(root)))
        logger.debug(f"Built text index with {len(leaves)} leaves")
        return cls(leaves)

    def __iter__(self):
        return iter(self.leaves)

    def __len__(self):
        return len(self.leaves)

    def __getitem__(self, item):
        return self.leaves[item]

    def iter_containing(self, needle: str) -> Iterator[Tuple[TextLeaf, int]]:
        """Yield (leaf, normalized_index) for every leaf whose normalized text contains needle."""
        if not needle:
            return
        for leaf in self.leaves:
            index = leaf.normalized.find(needle)
            if index != -1:
                yield leaf, index

    def find_first(self, needle: str) -> Optional[Tuple[TextLeaf, int]]:
        return next(self.iter_containing(needle), None)

    def windows(self, size: int) -> Iterator[Tuple[int, List[TextLeaf]]]:
        """Sliding windows of up to size consecutive leaves; the tail windows shrink."""
        for start in range(len(self.leaves)):
            yield start, self.leaves[start:start + size]


def locate_leaf_at_offset(element, offset: int) -> Optional[TextLeaf]:
    """
    Text leaf inside element whose cumulative character range reaches offset.

    Falls back to the element's own leading text when no leaf reaches it.
    """
    current = 0
    for leaf in iter_text_leaves(element, include_blank=True):
        if current + len(leaf) >= offset:
            return leaf
        current += len(leaf)

    if element.text:
        return TextLeaf(element)
    return None
