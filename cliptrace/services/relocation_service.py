"""
Relocation over serialized HTML, for callers that send a page snapshot instead
of holding a live document.
"""
import logging
from typing import Optional

import lxml.html

from cliptrace.db.database_service import DatabaseService
from cliptrace.locator.cascade import RelocationCascade
from cliptrace.locator.highlighter import DEFAULT_DISPLAY_MS, DEFAULT_FADE_MS, HighlightManager
from cliptrace.locator.models import SelectionAnchor
from cliptrace.locator.scheduler import VirtualScheduler
from cliptrace.locator.viewport import DocumentViewport
from cliptrace.utils.logging_utils import time_execution

logger = logging.getLogger(__name__)


class RelocationService:
    """
    Each request gets its own document, highlighter and virtual clock. The
    clock is never advanced, so the returned snapshot shows the mark while it
    is still live; fading it out is up to whoever renders the snapshot.
    """

    def __init__(self, database_service: DatabaseService = None,
                 display_ms: float = DEFAULT_DISPLAY_MS, fade_ms: float = DEFAULT_FADE_MS,
                 stability_initial_delay_ms: float = 200, stability_poll_ms: float = 150,
                 stability_timeout_ms: float = 1500):
        self.database_service = database_service
        self.display_ms = display_ms
        self.fade_ms = fade_ms
        self.stability_initial_delay_ms = stability_initial_delay_ms
        self.stability_poll_ms = stability_poll_ms
        self.stability_timeout_ms = stability_timeout_ms

    def _build_cascade(self, root) -> RelocationCascade:
        viewport = DocumentViewport(root)
        highlighter = HighlightManager(VirtualScheduler(), viewport,
                                       display_ms=self.display_ms, fade_ms=self.fade_ms)
        return RelocationCascade(highlighter,
                                 stability_initial_delay_ms=self.stability_initial_delay_ms,
                                 stability_poll_ms=self.stability_poll_ms,
                                 stability_timeout_ms=self.stability_timeout_ms)

    @time_execution
    def relocate_html(self, html: str, anchor: SelectionAnchor, original_text: str = None) -> dict:
        """
        Relocate anchor inside html. The returned 'html' carries the live mark
        on success and is the unchanged document otherwise.
        """
        root = lxml.html.document_fromstring(html)
        cascade = self._build_cascade(root)
        result = cascade.relocate(anchor, root, original_text=original_text)

        response = result.to_dict()
        response['html'] = lxml.html.tostring(root, encoding='unicode')
        response['scrolledToTop'] = cascade.highlighter.viewport.scrolled_to_top > 0
        return response

    def relocate_clip(self, html: str, clip_id: str) -> Optional[dict]:
        """Relocate a stored clip; None when the clip id is unknown."""
        if self.database_service is None:
            raise RuntimeError("Relocating stored clips needs a database service")

        clip = self.database_service.get_clip(clip_id)
        if clip is None:
            return None

        anchor = SelectionAnchor.from_dict(clip.selection_info_dict, original_text=clip.text)
        return self.relocate_html(html, anchor)
