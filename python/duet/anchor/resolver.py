"""
Resolves review issues against the live editable tree.

Stored offsets are only a hint. Each pass re-derives them from the current
text, falling back to the issue's literal text when the offsets are missing,
out of range, point at different text, or cannot be translated into the tree.
Issues that cannot be placed come back with anchored=False; they are never dropped.
"""

import re
from typing import List, Optional, Sequence, Tuple

import structlog

from duet.editor.mapper import EditorSurface
from duet.models import AnchoredIssue, ReviewIssue, TextRange

logger = structlog.get_logger(__name__)


def _replace_smart_quotes(text: str) -> str:
    return text.replace("“", '"').replace("”", '"').replace("‘", "'").replace("’", "'")


def _make_fuzzy_regex(literal: str) -> str:
    """Pattern permitting variable whitespace and smart-quote variation."""
    literal = _replace_smart_quotes(literal)
    parts = []
    token_pattern = re.compile(r"(\s+)|(['\"])")

    last_idx = 0
    for match in token_pattern.finditer(literal):
        chunk = literal[last_idx : match.start()]
        if chunk:
            parts.append(re.escape(chunk))

        g_space, g_quote = match.groups()
        if g_space:
            parts.append(r"\s+")
        elif g_quote == "'":
            parts.append(r"['‘’]")
        else:
            parts.append(r"[\"“”]")

        last_idx = match.end()

    remaining = literal[last_idx:]
    if remaining:
        parts.append(re.escape(remaining))

    return "".join(parts)


def find_literal(text: str, literal: str, cursor: int = 0) -> Tuple[int, int]:
    """
    First occurrence of `literal` at or after `cursor`.
    Tries exact, then smart-quote-normalized, then whitespace-tolerant matching.
    Returns (start, end) or (-1, -1).
    """
    if not literal:
        return -1, -1

    idx = text.find(literal, cursor)
    if idx != -1:
        return idx, idx + len(literal)

    idx = _replace_smart_quotes(text).find(_replace_smart_quotes(literal), cursor)
    if idx != -1:
        return idx, idx + len(literal)

    if literal.strip():
        match = re.compile(_make_fuzzy_regex(literal)).search(text, cursor)
        if match:
            return match.start(), match.end()

    return -1, -1


def _offset_candidate(text: str, issue: ReviewIssue) -> Optional[Tuple[int, int]]:
    if not issue.has_offsets:
        return None
    start, end = issue.start, issue.end
    if start > end or end > len(text):
        return None
    if issue.text and text[start:end] != issue.text:
        # Offsets drifted onto other text; the literal decides
        return None
    return start, end


def _literal_candidate(text: str, issue: ReviewIssue, cursor: Optional[int]) -> Optional[Tuple[int, int]]:
    if not issue.text:
        return None
    if cursor:
        start, end = find_literal(text, issue.text, cursor)
        if start != -1:
            return start, end
    start, end = find_literal(text, issue.text)
    if start != -1:
        return start, end
    return None


def resolve_issue(surface: EditorSurface, issue: ReviewIssue, cursor: Optional[int] = None) -> AnchoredIssue:
    """
    Resolves one issue. Without a cursor the literal fallback is a plain
    first-occurrence search (navigation); with one it prefers hits at or after it.
    """
    text = surface.plain_text()

    candidates = []
    by_offset = _offset_candidate(text, issue)
    if by_offset:
        candidates.append(by_offset)
    by_literal = _literal_candidate(text, issue, cursor)
    if by_literal and by_literal not in candidates:
        candidates.append(by_literal)

    for start, end in candidates:
        anchor = surface.to_point(start)
        focus = surface.to_point(end)
        if anchor is None or focus is None:
            logger.debug(f"Range {start}-{end} has no position in the editable tree")
            continue
        resolved = issue
        if (issue.start, issue.end) != (start, end):
            resolved = issue.model_copy(update={"start": start, "end": end})
        return AnchoredIssue(issue=resolved, start=start, end=end, anchor=TextRange(anchor, focus), anchored=True)

    logger.warning(f"Issue could not be anchored: {issue.category} '{(issue.text or '')[:40]}'")
    return AnchoredIssue(issue=issue, anchored=False)


def resolve_issues(surface: EditorSurface, issues: Sequence[ReviewIssue]) -> List[AnchoredIssue]:
    """
    Resolves a batch in list order. A cursor advances past each placed issue, so a
    phrase that repeats is matched to successive occurrences, approximating the
    left-to-right order the issues were written in.
    """
    cursor = 0
    resolved = []
    for issue in issues:
        result = resolve_issue(surface, issue, cursor)
        if result.anchored:
            cursor = max(cursor, result.end)
        resolved.append(result)

    anchored = sum(1 for r in resolved if r.anchored)
    logger.info(f"Anchored {anchored}/{len(resolved)} review issues")
    return resolved


def order_for_display(resolved: Sequence[AnchoredIssue]) -> List[AnchoredIssue]:
    """Anchored issues in text order, then unanchored ones stacked below in list order."""
    anchored = sorted((r for r in resolved if r.anchored), key=lambda r: (r.start, r.end))
    return anchored + [r for r in resolved if not r.anchored]
