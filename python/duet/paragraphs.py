"""
Paragraph splitting and offset recovery.

A paragraph is a run of text between blank lines. Splitting throws away the
separators, so `locate_paragraph_ranges` recovers where each paragraph sits in
the text it was split from.
"""

import re
from typing import List, NamedTuple, Optional, Sequence

import structlog

logger = structlog.get_logger(__name__)

PARAGRAPH_SEPARATOR = "\n\n"

_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_BLANK_LINES = re.compile(r"\n\n+")
_WHITESPACE = re.compile(r"\s+")


class ParagraphRange(NamedTuple):
    start: int
    end: int

    @property
    def located(self) -> bool:
        return self.start >= 0


UNLOCATED = ParagraphRange(-1, -1)


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def split_paragraphs(text: Optional[str]) -> List[str]:
    """
    Splits text on blank lines.
    Line endings are normalized and runs of 3+ newlines collapse to one separator.
    Whitespace-only pieces are discarded, so blank input yields [].
    """
    if not text:
        return []
    normalized = _EXCESS_NEWLINES.sub(PARAGRAPH_SEPARATOR, normalize_newlines(text))
    return [p for p in _BLANK_LINES.split(normalized) if p.strip()]


def join_paragraphs(paragraphs: Sequence[str]) -> str:
    return PARAGRAPH_SEPARATOR.join(paragraphs)


def normalize_for_match(text: str) -> str:
    """Collapses internal whitespace and trims, for comparison only."""
    return _WHITESPACE.sub(" ", text).strip()


def _newline_offsets(text: str) -> List[int]:
    """
    Original offset of every character of `normalize_newlines(text)`, plus one
    trailing entry for the end of the text.
    """
    offsets = []
    idx = 0
    while idx < len(text):
        offsets.append(idx)
        idx += 2 if text.startswith("\r\n", idx) else 1
    offsets.append(len(text))
    return offsets


def locate_paragraph_ranges(text: str, paragraphs: Sequence[str]) -> List[ParagraphRange]:
    """
    Returns the (start, end) offset of each paragraph inside `text`.

    The search only moves forward from the end of the previous hit, so ranges come
    back in order and never overlap. A paragraph that cannot be found gets
    UNLOCATED (-1, -1) and keeps its slot. Paragraphs are matched with line endings
    normalized, but offsets always refer to `text` as given.
    """
    ranges: List[ParagraphRange] = []
    cursor = 0

    normalized = normalize_newlines(text)
    offsets = _newline_offsets(text) if len(normalized) != len(text) else None

    for idx, paragraph in enumerate(paragraphs):
        paragraph = normalize_newlines(paragraph)
        start = normalized.find(paragraph, cursor)
        if start == -1:
            logger.warning(f"Paragraph {idx} could not be located after offset {cursor}")
            ranges.append(UNLOCATED)
            continue

        end = start + len(paragraph)
        cursor = end
        if offsets:
            ranges.append(ParagraphRange(offsets[start], offsets[end]))
        else:
            ranges.append(ParagraphRange(start, end))

    return ranges
