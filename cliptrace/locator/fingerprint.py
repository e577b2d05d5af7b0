"""
Context Fingerprint Builder

Runs once per copy event and captures everything the relocation cascade will
need later: the structural address of the selection's container, the raw
offset, flanking text and a coarse parent fingerprint.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from cliptrace.locator.address_codec import encode_address
from cliptrace.locator.models import CONTEXT_CHARS, MAX_ORIGINAL_TEXT, SURROUNDING_CHARS, SelectionAnchor
from cliptrace.locator.text_index import TextLeaf, content_root, flattened_text, iter_text_leaves, tag_name

logger = logging.getLogger(__name__)


@dataclass
class TextPosition:
    leaf: TextLeaf
    offset: int


@dataclass
class SelectionRange:
    start: TextPosition
    end: TextPosition

    @property
    def collapsed(self) -> bool:
        return self.start.leaf == self.end.leaf and self.start.offset == self.end.offset


@dataclass
class Selection:
    ranges: List[SelectionRange] = field(default_factory=list)
    root: object = None

    def to_string(self) -> str:
        """Selected text across all ranges, as the browser's selection.toString() gives it."""
        return "".join(_range_text(r, self.root) for r in self.ranges)


def _range_text(selection_range: SelectionRange, root) -> str:
    start, end = selection_range.start, selection_range.end
    if start.leaf == end.leaf:
        return start.leaf.text[start.offset:end.offset]

    if root is None:
        root = start.leaf.element.getroottree().getroot()

    parts = []
    inside = False
    for leaf in iter_text_leaves(content_root(root), include_blank=True):
        if leaf == start.leaf:
            inside = True
            parts.append(leaf.text[start.offset:])
        elif leaf == end.leaf:
            parts.append(leaf.text[:end.offset])
            break
        elif inside:
            parts.append(leaf.text)
    return "".join(parts)


def _ancestors(element) -> List:
    chain = []
    while element is not None:
        chain.append(element)
        element = element.getparent()
    return chain


def common_container(selection_range: SelectionRange):
    """
    The text leaf itself when the range stays inside one leaf, otherwise the
    lowest element containing both ends.
    """
    start_leaf = selection_range.start.leaf
    end_leaf = selection_range.end.leaf
    if start_leaf == end_leaf:
        return start_leaf

    end_chain = set(id(el) for el in _ancestors(end_leaf.parent))
    for element in _ancestors(start_leaf.parent):
        if id(element) in end_chain:
            return element
    return None


def build_anchor(selection: Selection, original_text: Optional[str] = None) -> Optional[SelectionAnchor]:
    """
    Capture an anchor for the first range of selection.

    Returns None for an empty selection or when anything goes wrong; capture
    must never break the copy itself.
    """
    try:
        if selection is None or not selection.ranges:
            return None

        selection_range = selection.ranges[0]
        selected_text = selection.to_string()
        if original_text is None:
            original_text = selected_text

        container = common_container(selection_range)
        if container is None:
            logger.debug("Selection ends share no common container")
            return None

        if isinstance(container, TextLeaf):
            container_text = container.text
            parent = container.parent
        else:
            container_text = flattened_text(container)
            parent = container

        text_before = ""
        text_after = ""
        text_index = container_text.find(selected_text) if selected_text else -1
        if text_index != -1:
            if text_index > 0:
                text_before = container_text[max(0, text_index - CONTEXT_CHARS):text_index]
            after_start = text_index + len(selected_text)
            text_after = container_text[after_start:after_start + CONTEXT_CHARS]

        class_token = ""
        if parent is not None:
            classes = (parent.get('class') or "").split()
            class_token = classes[0] if classes else ""

        return SelectionAnchor(
            structural_address=encode_address(container),
            offset=selection_range.start.offset,
            length=len(selected_text),
            text_before=text_before,
            text_after=text_after,
            parent_tag=tag_name(parent).upper(),
            parent_class_token=class_token,
            original_text=original_text[:MAX_ORIGINAL_TEXT],
            surrounding_text=container_text[:SURROUNDING_CHARS],
        )
    except Exception as e:
        logger.error(f"❌ Failed to capture selection context: {e}")
        return None


def select_text(root, text: str, occurrence: int = 1) -> Optional[Selection]:
    """
    Selection covering the Nth (1-based) raw occurrence of text in the document.

    Returns None when the document has fewer occurrences.
    """
    if not text or occurrence < 1:
        return None

    leaves = list(iter_text_leaves(content_root(root), include_blank=True))
    full_text = "".join(leaf.text for leaf in leaves)

    position = -1
    for _ in range(occurrence):
        position = full_text.find(text, position + 1)
        if position == -1:
            return None

    start_char = position
    end_char = position + len(text)
    start = end = None
    cumulative = 0
    for leaf in leaves:
        leaf_end = cumulative + len(leaf)
        if start is None and start_char < leaf_end:
            start = TextPosition(leaf, start_char - cumulative)
        if start is not None and end_char <= leaf_end:
            end = TextPosition(leaf, end_char - cumulative)
            break
        cumulative = leaf_end

    if start is None or end is None:
        return None
    return Selection(ranges=[SelectionRange(start, end)], root=root)
