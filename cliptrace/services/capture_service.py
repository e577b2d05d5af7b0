"""
Turns a copy event into a stored clip record.
"""
import logging
import random
import re
import string
import time
from dataclasses import dataclass
from typing import List, Optional

import lxml.html

from cliptrace.db.database_service import DatabaseService
from cliptrace.db.models import Clip
from cliptrace.locator.fingerprint import build_anchor, select_text
from cliptrace.services.capture_gate import CaptureGate
from cliptrace.utils.logging_utils import sanitize_log_data
from cliptrace.utils.string_utils import truncate_text

logger = logging.getLogger(__name__)

DEFAULT_MAX_CLIP_CHARS = 10000

TAG_PATTERNS = [
    ('code', re.compile(r'function\s|const\s|let\s|var\s|class\s|def\s|import\s|=>')),
    ('link', re.compile(r'https?://[^\s]+')),
    ('email', re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}')),
    ('numbers', re.compile(r'\d{4,}')),
]

_BASE36 = string.digits + string.ascii_lowercase


def extract_tags(text: str) -> List[str]:
    if not text:
        return []
    return [tag for tag, pattern in TAG_PATTERNS if pattern.search(text)]


def _to_base36(value: int) -> str:
    digits = []
    while True:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
        if value == 0:
            return "".join(reversed(digits))


def generate_id(now_ms: int = None) -> str:
    """Time-ordered base36 id with a random suffix."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(random.choice(_BASE36) for _ in range(11))
    return _to_base36(now_ms) + suffix


@dataclass
class CaptureOutcome:
    record: Optional[Clip] = None
    skipped_reason: Optional[str] = None

    @property
    def saved(self) -> bool:
        return self.record is not None


class CaptureService:
    def __init__(self, database_service: DatabaseService, capture_gate: CaptureGate,
                 max_clip_chars: int = DEFAULT_MAX_CLIP_CHARS):
        self.database_service = database_service
        self.capture_gate = capture_gate
        self.max_clip_chars = max_clip_chars

    def capture(self, selected_text: str, url: str = "", page_title: str = "", html: str = None,
                root=None, occurrence: int = 1, timestamp: int = None, favicon: str = "",
                near_password_field: bool = False) -> CaptureOutcome:
        """
        Record a copy of selected_text made on the page given as html (or an
        already parsed root).

        The anchor is best effort: a record without one is still saved and can
        only be found again by text.
        """
        text = (selected_text or "").strip()
        if not text:
            return CaptureOutcome(skipped_reason="empty")

        reason = self.capture_gate.should_skip(text, url, near_password_field=near_password_field)
        if reason:
            logger.info(f"🔒 Skipping capture from {url or 'unknown page'}: {reason}")
            return CaptureOutcome(skipped_reason=reason)

        stored_text = truncate_text(text, self.max_clip_chars)

        anchor = None
        if root is None and html:
            root = self._parse(html)
        if root is not None:
            selection = select_text(root, selected_text.strip(), occurrence)
            if selection is None:
                logger.debug(f"Copied text not found in page: '{sanitize_log_data(text)}'")
            else:
                anchor = build_anchor(selection, original_text=stored_text)

        record = Clip(
            id=generate_id(),
            text=stored_text,
            url=url,
            page_title=page_title,
            favicon=favicon or "",
            timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
            selection_info=anchor.to_dict() if anchor is not None else None,
            tags=extract_tags(stored_text),
        )

        saved = self.database_service.add_clip(record)
        if saved is None:
            return CaptureOutcome(skipped_reason="duplicate")

        logger.info(f"📋 Saved clip '{sanitize_log_data(stored_text)}'")
        return CaptureOutcome(record=saved)

    @staticmethod
    def _parse(html: str):
        try:
            return lxml.html.document_fromstring(html)
        except Exception as e:
            logger.warning(f"⚠️ Could not parse page HTML, saving without anchor: {e}")
            return None
