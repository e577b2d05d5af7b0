"""
Multi-Match Scorer

Ranks every occurrence of the search text by how well its surroundings agree
with the anchor captured at copy time. Signals (summed, 0-100):

    text before the match ends with anchor.text_before      35 (partial: 20)
    text after the match starts with anchor.text_after      35 (partial: 20)
    parent tag equals anchor.parent_tag                     12
    parent class contains anchor.parent_class_token          8
    base score for any match                                10
"""
import logging
from typing import List

from cliptrace.locator.models import MatchCandidate, SelectionAnchor
from cliptrace.locator.text_index import DocumentTextIndex, TextLeaf, tag_name
from cliptrace.utils.string_utils import find_actual_index, normalize

logger = logging.getLogger(__name__)

EXACT_CONTEXT_POINTS = 35
PARTIAL_CONTEXT_POINTS = 20
PARTIAL_CONTEXT_MIN_CHARS = 10
PARTIAL_CONTEXT_CHUNK = 20
PARENT_TAG_POINTS = 12
PARENT_CLASS_POINTS = 8
BASE_POINTS = 10
NO_CONTEXT_SCORE = 50
MIN_SEARCH_CHARS = 3


def calculate_context_score(leaf: TextLeaf, match_index: int, anchor: SelectionAnchor) -> int:
    """
    Score one occurrence starting at raw index match_index of leaf.

    Only a missing anchor gets the neutral score; an anchor without context
    signals still earns just the base points.
    """
    if anchor is None:
        return NO_CONTEXT_SCORE

    score = 0
    node_text = leaf.text

    if anchor.text_before:
        before = normalize(node_text[:match_index])
        expected = normalize(anchor.text_before)
        if before.endswith(expected):
            score += EXACT_CONTEXT_POINTS
        elif len(expected) >= PARTIAL_CONTEXT_MIN_CHARS and expected[-PARTIAL_CONTEXT_CHUNK:] in before:
            score += PARTIAL_CONTEXT_POINTS

    if anchor.text_after:
        after = normalize(node_text[match_index + anchor.length:])
        expected = normalize(anchor.text_after)
        if after.startswith(expected):
            score += EXACT_CONTEXT_POINTS
        elif len(expected) >= PARTIAL_CONTEXT_MIN_CHARS and expected[:PARTIAL_CONTEXT_CHUNK] in after:
            score += PARTIAL_CONTEXT_POINTS

    parent = leaf.parent
    if parent is not None and anchor.parent_tag:
        if tag_name(parent) == anchor.parent_tag.lower():
            score += PARENT_TAG_POINTS
        if anchor.parent_class_token and anchor.parent_class_token in (parent.get('class') or ""):
            score += PARENT_CLASS_POINTS

    score += BASE_POINTS
    return score


def find_all_matches_with_scoring(index: DocumentTextIndex, search_text: str,
                                  anchor: SelectionAnchor) -> List[MatchCandidate]:
    """
    Every normalized occurrence of search_text in the index, best score first.

    The sort is stable, so equal scores keep document order.
    """
    needle = normalize(search_text)
    if len(needle) < MIN_SEARCH_CHARS:
        return []

    matches = []
    for leaf in index:
        haystack = leaf.normalized
        position = haystack.find(needle)
        while position != -1:
            actual = find_actual_index(leaf.text, position, leaf.offsets)
            if actual != -1:
                matches.append(MatchCandidate(
                    leaf=leaf,
                    start_offset=actual,
                    score=calculate_context_score(leaf, actual, anchor),
                    normalized_index=position,
                ))
            position = haystack.find(needle, position + 1)

    matches.sort(key=lambda m: m.score, reverse=True)
    if matches:
        logger.debug(f"Found {len(matches)} matches, best score: {matches[0].score}")
    return matches
