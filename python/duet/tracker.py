from typing import Optional, Sequence

from duet.paragraphs import ParagraphRange


def find_active_row(offset: int, ranges: Sequence[ParagraphRange], paragraph_count: int) -> Optional[int]:
    """
    Index of the paragraph whose [start, end] range holds `offset`.

    Returns None when the offset is between located paragraphs, or when the
    paragraph lies beyond the rows the alignment covers.
    """
    for idx, rng in enumerate(ranges):
        if not rng.located:
            continue
        if rng.start <= offset <= rng.end:
            return idx if idx < paragraph_count else None
    return None
