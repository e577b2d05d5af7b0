import re
from typing import List, Tuple

# U+3000 is full-width space
_WHITESPACE_RUN = re.compile(r'[\s\u3000]+')
_ZERO_WIDTH = re.compile(r'[\u200b-\u200d\ufeff]')

SIMILARITY_WINDOW = 30


def normalize(text: str) -> str:
    """
    Canonical form used for every text comparison in the locator.

    Lowercases, collapses whitespace runs (including full-width space) to a single
    space, strips zero-width characters and trims. Zero-width characters are
    dropped before whitespace is collapsed so that normalize(normalize(s)) == normalize(s).

    Examples:
    "Foo   BAR" -> "foo bar"
    "\u200bHello\u3000World " -> "hello world"
    """
    if not text:
        return ""

    text = _ZERO_WIDTH.sub('', text)
    text = text.lower()
    text = _WHITESPACE_RUN.sub(' ', text)
    return text.strip()


def normalize_with_offsets(text: str) -> Tuple[str, List[int]]:
    """
    Same result as normalize(), plus the raw index each normalized character came from.

    A collapsed whitespace run maps to the index of its first character.
    """
    chars = []
    offsets = []
    pending_space = None

    for i, ch in enumerate(text or ""):
        if _ZERO_WIDTH.match(ch):
            continue
        if ch.isspace():
            if chars and pending_space is None:
                pending_space = i
            continue
        if pending_space is not None:
            chars.append(' ')
            offsets.append(pending_space)
            pending_space = None
        for lowered in ch.lower():
            chars.append(lowered)
            offsets.append(i)

    return ''.join(chars), offsets


def find_actual_index(original: str, normalized_index: int, offsets: List[int] = None) -> int:
    """
    Map an index in normalize(original) back to an index in the raw string.

    Returns -1 when the index falls outside the normalized text. Callers that
    already hold the offsets from normalize_with_offsets() can pass them in.
    """
    if offsets is None:
        _, offsets = normalize_with_offsets(original)
    if 0 <= normalized_index < len(offsets):
        return offsets[normalized_index]
    return -1


def calculate_similarity(a: str, b: str) -> float:
    """
    Similarity between two (already normalized) strings in [0, 1].

    Containment of the shorter string in the longer one scores 1.0. Otherwise the
    shorter string is compared position-by-position against every window of the
    longer one; the best fraction of equal characters wins.
    """
    if len(a) < len(b):
        shorter, longer = a, b
    else:
        shorter, longer = b, a

    if shorter in longer:
        return 1.0

    window_size = min(len(shorter), SIMILARITY_WINDOW)
    if window_size == 0:
        return 0.0

    best = 0.0
    for i in range(len(longer) - window_size + 1):
        window = longer[i:i + window_size]
        matches = sum(1 for j in range(window_size) if window[j] == shorter[j])
        best = max(best, matches / window_size)
    return best


def truncate_text(text: str, max_length: int, suffix: str = "... (truncated)") -> str:
    """Cap text at max_length characters, marking the cut with suffix."""
    if not text:
        return ""
    return text[:max_length] + suffix if len(text) > max_length else text
