"""
Relocation strategies, in the order the cascade tries them.

Each strategy yields candidate spans, best first. The cascade highlights the
first candidate that survives validation; yielding several candidates is how a
strategy moves on to its next option when a range cannot be applied.
"""
import logging
from typing import Iterator

from cliptrace.locator.address_codec import decode_address
from cliptrace.locator.models import ResolvedSpan, SelectionAnchor
from cliptrace.locator.scorer import find_all_matches_with_scoring
from cliptrace.locator.text_index import DocumentTextIndex, TextLeaf, locate_leaf_at_offset
from cliptrace.utils.string_utils import calculate_similarity, find_actual_index, normalize

logger = logging.getLogger(__name__)


def _raw_end(leaf: TextLeaf, normalized_index: int, normalized_length: int) -> int:
    """Raw index just past a normalized match."""
    last = normalized_index + normalized_length - 1
    offsets = leaf.offsets
    if 0 <= last < len(offsets):
        return offsets[last] + 1
    return len(leaf)


class RelocationStrategy:
    name = "base"

    def candidates(self, anchor: SelectionAnchor, index: DocumentTextIndex, root) -> Iterator[ResolvedSpan]:
        raise NotImplementedError

    def __repr__(self):
        return f"<{self.__class__.__name__}>"


class AddressGuidedStrategy(RelocationStrategy):
    """
    Resolve the structural address and slice at the captured offset.

    Only trusted when the slice agrees with the start of the copied text, since
    several records can share a similar address.
    """
    name = "address"
    PREFIX_CHARS = 30
    MIN_PREFIX_CHARS = 5

    def candidates(self, anchor, index, root):
        if not anchor.structural_address or anchor.offset is None:
            return

        element = decode_address(root, anchor.structural_address)
        if element is None:
            logger.debug(f"Address not found in current document: {anchor.structural_address}")
            return

        leaf = locate_leaf_at_offset(element, anchor.offset)
        if leaf is None:
            return

        actual_offset = min(anchor.offset, len(leaf))
        end_offset = min(actual_offset + anchor.length, len(leaf))
        if actual_offset >= end_offset:
            logger.debug("Address: invalid offset range, trying other methods")
            return

        found = leaf.text[actual_offset:end_offset]
        if not found.strip():
            logger.debug("Address: empty text found, trying other methods")
            return

        if anchor.original_text:
            normalized_found = normalize(found)
            normalized_original = normalize(anchor.original_text)
            prefix_len = min(len(normalized_found), len(normalized_original), self.PREFIX_CHARS)
            if (prefix_len >= self.MIN_PREFIX_CHARS
                    and normalized_found[:prefix_len] != normalized_original[:prefix_len]):
                logger.debug(f"Address text mismatch: expected '{normalized_original[:prefix_len]}', "
                             f"found '{normalized_found[:prefix_len]}'")
                return

        yield ResolvedSpan(leaf, actual_offset, end_offset - actual_offset, self.name)


class ScoredExactMatchStrategy(RelocationStrategy):
    """Every exact (normalized) occurrence, disambiguated by context score."""
    name = "scored_exact"
    MIN_CHARS = 5
    SHORT_TEXT_CHARS = 15
    SHORT_TEXT_MIN_SCORE = 40
    MIN_SCORE = 20

    def candidates(self, anchor, index, root):
        needle = normalize(anchor.original_text)
        if len(needle) < self.MIN_CHARS:
            return

        matches = find_all_matches_with_scoring(index, anchor.original_text, anchor)
        if not matches:
            return

        min_score = self.SHORT_TEXT_MIN_SCORE if len(needle) < self.SHORT_TEXT_CHARS else self.MIN_SCORE
        best = matches[0]
        if best.score < min_score:
            logger.debug(f"Match score {best.score} below threshold {min_score}")
            return

        for rank, match in enumerate(matches[:2]):
            if match.score < min_score:
                break
            end = _raw_end(match.leaf, match.normalized_index, len(needle))
            yield ResolvedSpan(match.leaf, match.start_offset, end - match.start_offset, self.name,
                               detail=f"rank={rank + 1} score={match.score}")


class FirstLineStrategy(RelocationStrategy):
    """
    Anchor on a prefix of the first non-blank line, longest prefix first.

    Highlights the full first-line length from the match, clamped to the leaf.
    """
    name = "first_line"
    MIN_TEXT_CHARS = 10
    PREFIX_LENGTHS = (20, 10, 5)
    MIN_PREFIX_CHARS = 3

    def candidates(self, anchor, index, root):
        text = anchor.original_text
        if len(text) < self.MIN_TEXT_CHARS:
            return

        lines = [line for line in text.split('\n') if line.strip()]
        if not lines:
            return
        first_line = lines[0].strip()

        for prefix_len in self.PREFIX_LENGTHS:
            if len(first_line) < prefix_len:
                continue
            needle = normalize(first_line[:prefix_len])
            if len(needle) < self.MIN_PREFIX_CHARS:
                continue

            for leaf, position in index.iter_containing(needle):
                detail = f"tier={prefix_len}"
                actual = find_actual_index(leaf.text, position, leaf.offsets)
                if actual != -1:
                    length = min(len(first_line), len(leaf) - actual)
                    yield ResolvedSpan(leaf, actual, length, self.name, detail=detail)
                yield ResolvedSpan.whole_leaf(leaf, self.name, detail=detail)


class WindowedSearchStrategy(RelocationStrategy):
    """
    Aggregate runs of consecutive leaves for selections that crossed many small
    elements; highlights the whole first leaf of the matching window.
    """
    name = "windowed"
    MIN_TEXT_CHARS = 15
    SEARCH_CHARS = 20
    MIN_SEARCH_CHARS = 10
    WINDOW_SIZE = 15

    def candidates(self, anchor, index, root):
        text = anchor.original_text
        if len(text) < self.MIN_TEXT_CHARS:
            return

        needle = normalize(text[:self.SEARCH_CHARS])
        if len(needle) < self.MIN_SEARCH_CHARS:
            return

        for start, window in index.windows(self.WINDOW_SIZE):
            window_text = " ".join(leaf.normalized for leaf in window if leaf.normalized)
            if needle in window_text:
                yield ResolvedSpan.whole_leaf(index[start], self.name, detail=f"window={start}")


class FuzzySimilarityStrategy(RelocationStrategy):
    """Best character-aligned similarity of a snippet from the middle of the text."""
    name = "fuzzy"
    MIN_TEXT_CHARS = 20
    SNIPPET_START = 0.2
    SNIPPET_CHARS = 40
    MIN_SNIPPET_CHARS = 15
    MIN_SIMILARITY = 0.7

    def candidates(self, anchor, index, root):
        text = anchor.original_text
        if len(text) < self.MIN_TEXT_CHARS:
            return

        start = int(len(text) * self.SNIPPET_START)
        snippet = normalize(text[start:start + self.SNIPPET_CHARS])
        if len(snippet) < self.MIN_SNIPPET_CHARS:
            return

        best_leaf = None
        best_score = 0.0
        for leaf in index:
            if len(leaf.normalized) < len(snippet):
                continue
            score = calculate_similarity(leaf.normalized, snippet)
            if score > best_score and score > self.MIN_SIMILARITY:
                best_score = score
                best_leaf = leaf

        if best_leaf is not None:
            yield ResolvedSpan.whole_leaf(best_leaf, self.name, detail=f"score={best_score:.2f}")


class SurroundingTextStrategy(RelocationStrategy):
    """Find the captured flanking text and highlight the leaf holding it."""
    name = "surrounding_text"
    MIN_FLANK_CHARS = 10
    SEARCH_CHARS = 60

    def candidates(self, anchor, index, root):
        flank = anchor.text_before or anchor.surrounding_text
        if not flank or len(flank) < self.MIN_FLANK_CHARS:
            return

        needle = normalize(flank[:self.SEARCH_CHARS])
        for leaf, _ in index.iter_containing(needle):
            yield ResolvedSpan.whole_leaf(leaf, self.name)


class PartialMatchStrategy(RelocationStrategy):
    """Search the start, end and middle of the text separately."""
    name = "partial"
    MIN_TEXT_CHARS = 10
    PORTION_CHARS = 20
    MIN_PORTION_CHARS = 8

    def candidates(self, anchor, index, root):
        text = anchor.original_text
        if len(text) < self.MIN_TEXT_CHARS:
            return

        half = self.PORTION_CHARS // 2
        middle = len(text) // 2
        portions = (
            ("start", text[:self.PORTION_CHARS]),
            ("end", text[-self.PORTION_CHARS:]),
            ("middle", text[max(0, middle - half):middle + half]),
        )

        for label, portion in portions:
            needle = normalize(portion)
            if len(needle) < self.MIN_PORTION_CHARS:
                continue
            for leaf, _ in index.iter_containing(needle):
                yield ResolvedSpan.whole_leaf(leaf, self.name, detail=f"portion={label}")


def default_strategies():
    return [
        AddressGuidedStrategy(),
        ScoredExactMatchStrategy(),
        FirstLineStrategy(),
        WindowedSearchStrategy(),
        FuzzySimilarityStrategy(),
        SurroundingTextStrategy(),
        PartialMatchStrategy(),
    ]
