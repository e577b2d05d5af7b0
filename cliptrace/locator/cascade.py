"""
Relocation Cascade

Runs the relocation strategies in fixed priority order against the current
document and highlights the first span that can actually be shown. When every
strategy declines, the viewport scrolls to the top exactly once.
"""
import logging
from typing import List, Optional

from cliptrace.locator.highlighter import HighlightManager
from cliptrace.locator.models import RelocationResult, SelectionAnchor
from cliptrace.locator.scheduler import wait_for_page_stable
from cliptrace.locator.strategies import RelocationStrategy, default_strategies
from cliptrace.locator.text_index import DocumentTextIndex, content_root
from cliptrace.utils.logging_utils import sanitize_log_data

logger = logging.getLogger(__name__)


class RelocationCascade:
    def __init__(self, highlighter: HighlightManager, strategies: Optional[List[RelocationStrategy]] = None,
                 stability_initial_delay_ms: float = 200, stability_poll_ms: float = 150,
                 stability_timeout_ms: float = 1500):
        self.highlighter = highlighter
        self.strategies = strategies if strategies is not None else default_strategies()
        self.stability_initial_delay_ms = stability_initial_delay_ms
        self.stability_poll_ms = stability_poll_ms
        self.stability_timeout_ms = stability_timeout_ms

    def relocate(self, anchor: SelectionAnchor, root, original_text: Optional[str] = None,
                 wait_for_stable: bool = True) -> RelocationResult:
        """
        Find and highlight the anchored text in root.

        original_text overrides the text stored on the anchor. Never raises;
        an unexpected failure is logged and reported as an unsuccessful result.
        """
        if original_text is not None:
            anchor = anchor.with_original_text(original_text)

        # Reverting an old mark changes text leaves, so do it before indexing
        self.highlighter.complete_active()

        if wait_for_stable:
            wait_for_page_stable(self.highlighter.viewport, self.highlighter.scheduler,
                                 initial_delay_ms=self.stability_initial_delay_ms,
                                 poll_ms=self.stability_poll_ms,
                                 timeout_ms=self.stability_timeout_ms)

        logger.info(f"🔍 Relocating '{sanitize_log_data(anchor.original_text)}'")

        try:
            result = self._run(anchor, root)
        except Exception as e:
            logger.error(f"❌ Relocation failed: {e}")
            result = RelocationResult(success=False)

        if not result.success:
            logger.warning("⚠️ Cannot locate text, scrolling to top")
            self._scroll_to_top()
        return result

    def _run(self, anchor: SelectionAnchor, root) -> RelocationResult:
        index = DocumentTextIndex.build(content_root(root))
        attempted = []

        for strategy in self.strategies:
            attempted.append(strategy.name)
            try:
                for span in strategy.candidates(anchor, index, root):
                    mark = self.highlighter.apply(span, document_root=root)
                    if mark is None:
                        continue
                    detail = f" ({span.detail})" if span.detail else ""
                    logger.info(f"✅ Highlighted with strategy '{strategy.name}'{detail}")
                    return RelocationResult(success=True, strategy=strategy.name, mark=mark, attempted=attempted)
            except Exception as e:
                logger.debug(f"Strategy '{strategy.name}' failed: {e}")
                continue
            logger.debug(f"Strategy '{strategy.name}' found nothing")

        return RelocationResult(success=False, attempted=attempted)

    def _scroll_to_top(self):
        try:
            self.highlighter.viewport.scroll_to_top()
        except Exception as e:
            logger.error(f"❌ Could not scroll to top: {e}")
