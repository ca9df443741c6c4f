from enum import Enum
from typing import List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class _Frozen(BaseModel):
    """Shared config: immutable, camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class ParagraphMatch(_Frozen):
    target_index: int
    source_index: int


class UnmatchedSource(_Frozen):
    """
    Source text with no target counterpart.
    Displayed before the target paragraph at `before_target_index`;
    an index equal to the paragraph count means "after the last row".
    """

    before_target_index: int = Field(..., ge=0)
    text: str


class ParagraphMatchResult(_Frozen):
    """
    Source <-> target paragraph correspondence.

    `source_paragraphs[i]` is the source text aligned to `target_paragraphs[i]`
    ("" when nothing is aligned). `target_paragraphs` is the split the store was
    computed against and may lag behind the live text.
    """

    target_paragraphs: List[str] = Field(default_factory=list)
    source_paragraphs: List[str] = Field(default_factory=list)
    unmatched_source: List[UnmatchedSource] = Field(default_factory=list)
    matches: List[ParagraphMatch] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_lengths(self):
        if len(self.source_paragraphs) != len(self.target_paragraphs):
            raise ValueError(
                f"source_paragraphs has {len(self.source_paragraphs)} entries, "
                f"expected {len(self.target_paragraphs)} (one per target paragraph)"
            )
        return self

    @classmethod
    def empty(cls) -> "ParagraphMatchResult":
        return cls()

    @property
    def paragraph_count(self) -> int:
        return len(self.target_paragraphs)

    def has_source_content(self) -> bool:
        """False when every aligned slot is blank and nothing is unmatched."""
        if self.unmatched_source:
            return True
        return any(p.strip() for p in self.source_paragraphs)


def identity_matches(count: int) -> List[ParagraphMatch]:
    return [ParagraphMatch(target_index=i, source_index=i) for i in range(count)]


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReviewIssue(_Frozen):
    """
    A reviewer annotation pinned to a span of the target text.
    `start`/`end` are hints only; `text` is the literal span kept as a fallback locator.
    """

    start: Optional[int] = Field(None, ge=0)
    end: Optional[int] = Field(None, ge=0)
    text: Optional[str] = Field(None, description="Exact substring of the target text the issue refers to.")
    category: str
    subcategory: Optional[str] = None
    severity: Severity
    message: str
    suggestion: Optional[str] = None

    @property
    def has_offsets(self) -> bool:
        return self.start is not None and self.end is not None


class Point(NamedTuple):
    """Position inside the editable tree: (block index, leaf index) plus a character offset in that leaf."""

    path: Tuple[int, int]
    offset: int


class TextRange(NamedTuple):
    anchor: Point
    focus: Point


class AnchoredIssue(_Frozen):
    """Result of one resolution pass for a single issue. Unanchored issues are kept, never dropped."""

    issue: ReviewIssue
    start: Optional[int] = None
    end: Optional[int] = None
    anchor: Optional[TextRange] = None
    anchored: bool = False
