from typing import Optional, Sequence

import structlog

from duet.models import ParagraphMatchResult, UnmatchedSource, identity_matches
from duet.paragraphs import join_paragraphs, split_paragraphs

logger = structlog.get_logger(__name__)


def build_fallback_alignment(
    source_text: str,
    target_count: int,
    target_paragraphs: Optional[Sequence[str]] = None,
) -> ParagraphMatchResult:
    """
    Positional alignment used when no real alignment is available.

    Target row i gets source paragraph i for the common prefix. Source paragraphs
    left over after the last row are joined into a single unmatched entry placed
    after the last row, so every source paragraph is emitted exactly once.
    """
    target_count = max(0, target_count)
    if target_paragraphs is None:
        target_paragraphs = [""] * target_count
    elif len(target_paragraphs) != target_count:
        raise ValueError(f"target_paragraphs has {len(target_paragraphs)} entries, expected {target_count}")

    source = split_paragraphs(source_text)
    aligned = [source[i] if i < len(source) else "" for i in range(target_count)]

    unmatched = []
    leftover = source[target_count:]
    if leftover:
        unmatched.append(UnmatchedSource(before_target_index=target_count, text=join_paragraphs(leftover)))

    logger.debug(
        f"Fallback alignment: {min(target_count, len(source))} aligned, {len(leftover)} leftover source paragraphs"
    )

    return ParagraphMatchResult(
        target_paragraphs=list(target_paragraphs),
        source_paragraphs=aligned,
        unmatched_source=unmatched,
        matches=identity_matches(target_count),
    )


def ensure_displayable(
    alignment: Optional[ParagraphMatchResult],
    source_text: str,
    target_paragraphs: Sequence[str],
) -> ParagraphMatchResult:
    """
    Returns `alignment` unless it would show no source text at all, in which case
    the positional fallback for the current layout is returned instead.
    """
    if alignment is not None and alignment.has_source_content():
        return alignment

    if alignment is not None and split_paragraphs(source_text):
        logger.warning("Alignment carries no source text; substituting fallback alignment")

    return build_fallback_alignment(source_text, len(target_paragraphs), target_paragraphs)
