from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cliptrace.locator.text_index import TextLeaf

MAX_ORIGINAL_TEXT = 10000
CONTEXT_CHARS = 50
SURROUNDING_CHARS = 200


@dataclass(frozen=True)
class SelectionAnchor:
    """
    Where a selection was made at capture time.

    Serialized with camelCase keys so records written by the browser side
    (and older records using xpath/parentTagName/parentClassName) load unchanged.
    """
    structural_address: Optional[str] = None
    offset: Optional[int] = None
    length: int = 0
    text_before: str = ""
    text_after: str = ""
    parent_tag: str = ""
    parent_class_token: str = ""
    original_text: str = ""
    surrounding_text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "structuralAddress": self.structural_address,
            "offset": self.offset,
            "length": self.length,
            "textBefore": self.text_before,
            "textAfter": self.text_after,
            "parentTag": self.parent_tag,
            "parentClassToken": self.parent_class_token,
            "originalText": self.original_text,
            "surroundingText": self.surrounding_text,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], original_text: Optional[str] = None) -> "SelectionAnchor":
        data = data or {}
        offset = data.get("offset")
        text = original_text if original_text is not None else data.get("originalText") or ""
        return cls(
            structural_address=data.get("structuralAddress") or data.get("xpath"),
            offset=int(offset) if offset is not None else None,
            length=int(data.get("length") or 0),
            text_before=data.get("textBefore") or "",
            text_after=data.get("textAfter") or "",
            parent_tag=data.get("parentTag") or data.get("parentTagName") or "",
            parent_class_token=data.get("parentClassToken") or data.get("parentClassName") or "",
            original_text=text[:MAX_ORIGINAL_TEXT],
            surrounding_text=data.get("surroundingText") or "",
        )

    def with_original_text(self, original_text: str) -> "SelectionAnchor":
        values = self.to_dict()
        return SelectionAnchor.from_dict(values, original_text=original_text)


@dataclass
class MatchCandidate:
    leaf: TextLeaf
    start_offset: int
    score: int
    normalized_index: int = -1


@dataclass
class ResolvedSpan:
    """A range a strategy proposes for highlighting."""
    leaf: TextLeaf
    start: int
    length: int
    strategy: str = ""
    detail: str = ""

    @classmethod
    def whole_leaf(cls, leaf: TextLeaf, strategy: str = "", detail: str = "") -> "ResolvedSpan":
        return cls(leaf=leaf, start=0, length=len(leaf), strategy=strategy, detail=detail)


@dataclass
class RelocationResult:
    success: bool
    strategy: Optional[str] = None
    mark: Any = None
    attempted: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "strategy": self.strategy,
            "attempted": list(self.attempted),
        }
