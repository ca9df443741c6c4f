"""
Find / replace over the target text.
Matches are (start, end) ranges in plain-text coordinates.
"""

import re
from typing import List, NamedTuple, Sequence

import structlog

from duet.editor.mapper import TextTree

logger = structlog.get_logger(__name__)


class SearchPatternError(ValueError):
    """The query is not a valid regular expression."""


class SearchMatch(NamedTuple):
    start: int
    end: int


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


def _on_word_boundary(text: str, start: int, end: int) -> bool:
    left = text[start - 1] if start > 0 else " "
    right = text[end] if end < len(text) else " "
    return not _is_word_char(left) and not _is_word_char(right)


def find_matches(
    text: str,
    query: str,
    case_sensitive: bool = False,
    whole_word: bool = False,
    use_regex: bool = False,
) -> List[SearchMatch]:
    if not query:
        return []

    flags = 0 if case_sensitive else re.IGNORECASE
    if use_regex:
        try:
            pattern = re.compile(query, flags)
        except re.error as e:
            logger.warning(f"Invalid search pattern {query!r}: {e}")
            raise SearchPatternError(f"Invalid search pattern: {e}") from e
    else:
        # Match on the original text; lowercasing can change its length
        pattern = re.compile(re.escape(query), flags)

    matches: List[SearchMatch] = []
    for m in pattern.finditer(text):
        if m.end() == m.start():
            continue
        if whole_word and not _on_word_boundary(text, m.start(), m.end()):
            continue
        matches.append(SearchMatch(m.start(), m.end()))
    return matches


def replace_matches(tree: TextTree, matches: Sequence[SearchMatch], replacement: str) -> int:
    """
    Replaces each match with `replacement` literally, last match first so that
    earlier offsets stay valid. Returns the number of replacements made.
    """
    applied = 0
    for match in sorted(matches, key=lambda m: m.start, reverse=True):
        tree.replace_range(match.start, match.end, replacement)
        applied += 1
    logger.info(f"Replaced {applied} matches")
    return applied
