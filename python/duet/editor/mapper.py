from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import structlog

from duet.models import Point
from duet.paragraphs import PARAGRAPH_SEPARATOR

logger = structlog.get_logger(__name__)

ChangeListener = Callable[["EditorSurface"], None]


class EditorSurface(Protocol):
    """The capabilities the alignment engine needs from an editing surface."""

    def plain_text(self) -> str: ...

    def to_point(self, offset: int) -> Optional[Point]: ...

    def to_offset(self, point: Point) -> Optional[int]: ...

    def add_change_listener(self, listener: ChangeListener) -> None: ...

    def remove_change_listener(self, listener: ChangeListener) -> None: ...


@dataclass
class TextSpan:
    start: int
    end: int
    text: str
    path: Optional[Tuple[int, int]]  # None for virtual separators


class TextTree:
    """
    In-memory editable tree: blocks of text leaves.

    The plain-text view joins blocks with a blank-line separator. A span map ties
    every plain-text offset to either a leaf (real span) or a separator
    (virtual span), which is what offset <-> point translation walks.
    """

    def __init__(self, blocks: Optional[Sequence[Sequence[str]]] = None):
        self.blocks: List[List[str]] = [list(b) or [""] for b in (blocks or [[""]])]
        self.full_text = ""
        self.spans: List[TextSpan] = []
        self._listeners: List[ChangeListener] = []
        self._build_map()

    @classmethod
    def from_text(cls, text: str) -> "TextTree":
        """Whole text in a single leaf, paragraph breaks kept as literal newlines."""
        return cls([[text]])

    @classmethod
    def from_paragraphs(cls, paragraphs: Sequence[str]) -> "TextTree":
        return cls([[p] for p in paragraphs] or [[""]])

    def _build_map(self):
        current = 0
        self.spans = []
        parts = []

        for b_idx, block in enumerate(self.blocks):
            if b_idx > 0:
                self.spans.append(TextSpan(current, current + len(PARAGRAPH_SEPARATOR), PARAGRAPH_SEPARATOR, None))
                parts.append(PARAGRAPH_SEPARATOR)
                current += len(PARAGRAPH_SEPARATOR)

            for l_idx, leaf in enumerate(block):
                self.spans.append(TextSpan(current, current + len(leaf), leaf, (b_idx, l_idx)))
                parts.append(leaf)
                current += len(leaf)

        self.full_text = "".join(parts)

    # --- EditorSurface ---

    def plain_text(self) -> str:
        return self.full_text

    def to_point(self, offset: int) -> Optional[Point]:
        if offset < 0 or offset > len(self.full_text):
            return None

        real = [s for s in self.spans if s.path is not None]

        containing = [s for s in real if s.start <= offset < s.end]
        if containing:
            span = containing[0]
            return Point(span.path, offset - span.start)

        ending = [s for s in real if s.end == offset]
        if ending:
            span = ending[0]
            return Point(span.path, len(span.text))

        # Inside a separator: snap to the end of the preceding leaf
        preceding = [s for s in real if s.end < offset]
        if preceding:
            span = preceding[-1]
            return Point(span.path, len(span.text))

        return None

    def to_offset(self, point: Point) -> Optional[int]:
        for span in self.spans:
            if span.path == tuple(point.path):
                if 0 <= point.offset <= len(span.text):
                    return span.start + point.offset
                return None
        return None

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # --- Editing ---

    def set_text(self, text: str):
        self.blocks = [[text]]
        self._changed()

    def replace_range(self, start: int, end: int, text: str):
        """
        Replaces plain-text [start, end) with `text`.
        A range crossing a separator merges the blocks it touches.
        """
        if end < start:
            raise ValueError(f"Invalid range: end {end} before start {start}")
        a = self.to_point(start)
        b = self.to_point(end)
        if a is None or b is None:
            raise ValueError(f"Range {start}-{end} is outside the document (length {len(self.full_text)})")

        (a_block, a_leaf), a_off = a
        (b_block, b_leaf), b_off = b

        head = self.blocks[a_block][a_leaf][:a_off]
        tail = self.blocks[b_block][b_leaf][b_off:]
        merged = self.blocks[a_block][:a_leaf] + [head + text + tail] + self.blocks[b_block][b_leaf + 1 :]
        self.blocks[a_block : b_block + 1] = [merged]

        if b_block > a_block:
            logger.debug(f"Edit at {start}-{end} merged blocks {a_block}..{b_block}")
        self._changed()

    def insert_text(self, offset: int, text: str):
        self.replace_range(offset, offset, text)

    def delete_range(self, start: int, end: int):
        self.replace_range(start, end, "")

    def _changed(self):
        self._build_map()
        for listener in list(self._listeners):
            listener(self)
