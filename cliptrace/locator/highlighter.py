"""
Highlight Lifecycle Manager

Wraps a resolved span in a <mark>, keeps it visible for a fixed time, fades it,
then unwraps it again so the document reads exactly as before.

    VISIBLE --display_ms--> FADING --fade_ms--> REVERTED
       +---------- superseded by a newer mark ----------> CANCELLED
"""
import logging
from enum import Enum
from typing import Optional

from cliptrace.locator.errors import HighlightError
from cliptrace.locator.models import ResolvedSpan
from cliptrace.locator.text_index import flattened_text
from cliptrace.locator.viewport import Viewport

logger = logging.getLogger(__name__)

HIGHLIGHT_TAG = 'mark'
HIGHLIGHT_CLASS = 'smart-clipboard-highlight'
HIGHLIGHT_STYLE = ("background-color: #89b4d8; padding: 2px 4px; border-radius: 4px; "
                   "box-shadow: 0 0 0 3px rgba(137, 180, 216, 0.3); "
                   "transition: background-color 0.5s, box-shadow 0.5s;")
FADED_STYLE = ("background-color: transparent; padding: 2px 4px; border-radius: 4px; "
               "box-shadow: none; transition: background-color 0.5s, box-shadow 0.5s;")

DEFAULT_DISPLAY_MS = 3000
DEFAULT_FADE_MS = 500


class MarkState(Enum):
    VISIBLE = "visible"
    FADING = "fading"
    REVERTED = "reverted"
    CANCELLED = "cancelled"


def wrap_span(span: ResolvedSpan):
    """
    Split the leaf's text around the span and insert a <mark> holding the middle part.

    Raises HighlightError when the span does not fit inside its leaf.
    """
    leaf = span.leaf
    text = leaf.text
    start = span.start
    end = span.start + span.length

    if start < 0 or span.length <= 0 or end > len(text):
        raise HighlightError(f"Span {start}:{end} outside leaf of length {len(text)}")

    owner = leaf.element
    mark = owner.makeelement(HIGHLIGHT_TAG, {'class': HIGHLIGHT_CLASS, 'style': HIGHLIGHT_STYLE})
    mark.text = text[start:end]
    mark.tail = text[end:] or None

    if leaf.is_tail:
        parent = owner.getparent()
        if parent is None:
            raise HighlightError("Tail text of a detached element cannot be wrapped")
        owner.tail = text[:start] or None
        parent.insert(parent.index(owner) + 1, mark)
    else:
        owner.text = text[:start] or None
        owner.insert(0, mark)

    return mark


def unwrap_mark(mark):
    """Replace the mark with its plain text, merged into the neighbouring text."""
    parent = mark.getparent()
    if parent is None:
        return

    merged = flattened_text(mark) + (mark.tail or "")
    previous = mark.getprevious()
    if previous is not None:
        previous.tail = ((previous.tail or "") + merged) or None
    else:
        parent.text = ((parent.text or "") + merged) or None

    # remove() drops the tail too, which was merged above
    parent.remove(mark)


class HighlightMark:
    """One live highlight and the timers that will revert it."""

    def __init__(self, element, span: ResolvedSpan):
        self.element = element
        self.span = span
        self.state = MarkState.VISIBLE
        self._timer = None

    @property
    def text(self) -> str:
        return flattened_text(self.element)

    @property
    def is_live(self) -> bool:
        return self.state in (MarkState.VISIBLE, MarkState.FADING)

    def start(self, scheduler, display_ms: float, fade_ms: float):
        def _begin_fade():
            self.fade()
            self._timer = scheduler.call_later(fade_ms, self.revert)

        self._timer = scheduler.call_later(display_ms, _begin_fade)

    def fade(self):
        if self.state != MarkState.VISIBLE:
            return
        self.element.set('style', FADED_STYLE)
        self.state = MarkState.FADING

    def revert(self):
        if not self.is_live:
            return
        unwrap_mark(self.element)
        self.state = MarkState.REVERTED
        logger.debug("Highlight reverted")

    def cancel(self):
        """Revert immediately and stop any pending timer."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.is_live:
            unwrap_mark(self.element)
            self.state = MarkState.CANCELLED


class HighlightManager:
    """
    Owns the single live highlight.

    A new highlight always completes the previous one first, so at most one
    mark is in the document at a time.
    """

    def __init__(self, scheduler, viewport: Viewport = None,
                 display_ms: float = DEFAULT_DISPLAY_MS, fade_ms: float = DEFAULT_FADE_MS):
        self.scheduler = scheduler
        self.viewport = viewport or Viewport()
        self.display_ms = display_ms
        self.fade_ms = fade_ms
        self.active: Optional[HighlightMark] = None

    def complete_active(self):
        if self.active is not None and self.active.is_live:
            self.active.cancel()
        self.active = None

    def apply(self, span: ResolvedSpan, document_root=None) -> Optional[HighlightMark]:
        """
        Highlight span. Returns None, leaving the document untouched, when the
        span cannot be wrapped or the mark would not be visible.
        """
        self.complete_active()

        try:
            element = wrap_span(span)
        except HighlightError as e:
            logger.debug(f"Highlight rejected: {e}")
            return None
        except Exception as e:
            logger.debug(f"Highlight failed while wrapping: {e}")
            return None

        if not self._is_visible(element, document_root):
            unwrap_mark(element)
            logger.debug("Highlight mark not attached or empty, unwrapped")
            return None

        mark = HighlightMark(element, span)
        try:
            self.viewport.scroll_into_view(element)
        except Exception as e:
            logger.debug(f"Could not scroll highlight into view: {e}")

        mark.start(self.scheduler, self.display_ms, self.fade_ms)
        self.active = mark
        return mark

    @staticmethod
    def _is_visible(element, document_root) -> bool:
        if element.getparent() is None:
            return False
        if document_root is not None:
            if element.getroottree().getroot() is not document_root.getroottree().getroot():
                return False
        return bool(flattened_text(element).strip())
