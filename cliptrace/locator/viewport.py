import logging

logger = logging.getLogger(__name__)


class Viewport:
    """
    The rendering-side hooks the locator needs from its host.

    A headless host has nothing to scroll, so the defaults only log. Hosts
    with a real renderer override these.
    """

    def scroll_into_view(self, mark):
        logger.debug("Scrolling highlight into view")

    def scroll_to_top(self):
        logger.debug("Scrolling to top of document")

    def document_height(self) -> float:
        return 0


class DocumentViewport(Viewport):
    """
    Viewport over an lxml document, using the amount of text as the size proxy.

    Lets the stability wait observe content appended by another step of the
    host's loop (e.g. a lazy-load simulation) without a renderer.
    """

    def __init__(self, root):
        self.root = root
        self.scrolled_to = None
        self.scrolled_to_top = 0

    def scroll_into_view(self, mark):
        self.scrolled_to = mark

    def scroll_to_top(self):
        self.scrolled_to_top += 1

    def document_height(self) -> float:
        return len(self.root.text_content()) if hasattr(self.root, 'text_content') else 0
