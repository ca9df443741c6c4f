"""
Carries an alignment forward after the target text has been edited.

Old and new target paragraphs are paired by substring containment on
whitespace-normalized text. That classifies the two common edit shapes:
several old paragraphs merged into one new paragraph, and one old paragraph
split into several new ones.
"""

from typing import List, Optional, Sequence, Set

import structlog

from duet.models import ParagraphMatchResult, UnmatchedSource, identity_matches
from duet.paragraphs import join_paragraphs, normalize_for_match, split_paragraphs

logger = structlog.get_logger(__name__)


def remap_alignment(previous: ParagraphMatchResult, new_text: str) -> ParagraphMatchResult:
    """Re-splits `new_text` and remaps `previous` onto the new paragraphs."""
    new_paragraphs = split_paragraphs(new_text)
    if not new_paragraphs:
        return ParagraphMatchResult.empty()
    return remap_paragraphs(previous, new_paragraphs)


def remap_paragraphs(previous: ParagraphMatchResult, new_paragraphs: Sequence[str]) -> ParagraphMatchResult:
    if not new_paragraphs:
        return ParagraphMatchResult.empty()

    old_norm = [normalize_for_match(p) for p in previous.target_paragraphs]
    new_norm = [normalize_for_match(p) for p in new_paragraphs]
    old_source = previous.source_paragraphs
    old_count = len(old_norm)
    new_count = len(new_norm)

    aligned = [""] * new_count
    # mapping[j] = old index new paragraph j is considered to come from
    mapping: List[Optional[int]] = [None] * new_count
    consumed: Set[int] = set()
    unhit: List[int] = []

    for j, text in enumerate(new_norm):
        hits = _find_hits(text, old_norm, consumed)

        if not hits:
            unhit.append(j)
            continue

        if len(hits) == 1:
            i = hits[0]
            mapping[j] = i
            if i in consumed:
                # Later fragment of a split paragraph: the first fragment already owns the source
                logger.debug(f"New paragraph {j} is a further fragment of old paragraph {i}")
                continue
            aligned[j] = old_source[i]
            consumed.add(i)
            continue

        # Merge: several old paragraphs now live inside this one
        mapping[j] = hits[0]
        parts = [old_source[i] for i in hits if i not in consumed and old_source[i].strip()]
        aligned[j] = join_paragraphs(parts)
        consumed.update(hits)
        logger.debug(f"New paragraph {j} merges old paragraphs {hits}")

    # Positional guesses run last so they never take a slot a containment hit claims
    for j in unhit:
        if old_count == 0:
            continue
        i = min(j, old_count - 1)
        mapping[j] = i
        if i not in consumed:
            aligned[j] = old_source[i]
            consumed.add(i)
        logger.debug(f"New paragraph {j} has no containment match; positional guess {i}")

    unmatched = _remap_unmatched(previous.unmatched_source, old_source, consumed, mapping, old_count, new_count)

    logger.info(
        f"Remapped alignment: {old_count} -> {new_count} paragraphs, "
        f"{len(unhit)} positional guesses, {len(unmatched)} unmatched entries"
    )

    return ParagraphMatchResult(
        target_paragraphs=list(new_paragraphs),
        source_paragraphs=aligned,
        unmatched_source=unmatched,
        matches=identity_matches(new_count),
    )


def _find_hits(text: str, old_norm: Sequence[str], consumed: Set[int]) -> List[int]:
    """
    Old indices matching a new paragraph, ascending.
    An exact match beats containment, so unchanged text remaps onto itself.
    Blank paragraphs never match: "" is a substring of everything.
    """
    if not text:
        return []

    exact = [i for i, old in enumerate(old_norm) if old == text]
    if exact:
        free = [i for i in exact if i not in consumed]
        return [free[0] if free else exact[0]]

    return [i for i, old in enumerate(old_norm) if old and (old in text or text in old)]


def remap_anchor(position: int, mapping: Sequence[Optional[int]], old_count: int, new_count: int) -> int:
    """
    Moves an insertion point expressed in old paragraph indices to new indices:
    the first new paragraph descended from an old index >= position.
    """
    if position <= 0:
        return 0
    if position >= old_count:
        return new_count
    for j, i in enumerate(mapping):
        if i is not None and i >= position:
            return j
    return new_count


def _remap_unmatched(
    unmatched: Sequence[UnmatchedSource],
    old_source: Sequence[str],
    consumed: Set[int],
    mapping: Sequence[Optional[int]],
    old_count: int,
    new_count: int,
) -> List[UnmatchedSource]:
    # Sort key uses doubled positions: an entry before old row b sits at 2b-1,
    # the orphaned source of old row i sits at 2i.
    keyed = []
    for seq, entry in enumerate(unmatched):
        anchor = remap_anchor(entry.before_target_index, mapping, old_count, new_count)
        keyed.append(((anchor, 2 * entry.before_target_index - 1, seq), entry.text))

    # Source whose target paragraph disappeared moves to the unmatched list
    for i, text in enumerate(old_source):
        if i in consumed or not text.strip():
            continue
        anchor = remap_anchor(i, mapping, old_count, new_count)
        logger.debug(f"Old paragraph {i} has no successor; moving its source before new row {anchor}")
        keyed.append(((anchor, 2 * i, len(unmatched) + i), text))

    keyed.sort(key=lambda item: item[0])
    return [UnmatchedSource(before_target_index=key[0], text=text) for key, text in keyed]
