"""
Review session: the one owner of alignment, issue and search state for a
document on screen.

Edits reported by the editing surface are not processed inline. Each one bumps
the session version and (re)schedules a single debounced pass; a pass that
fires for an older version does nothing. Within a pass the order is fixed:
split, remap, locate ranges, carry issue offsets, resolve anchors.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import structlog

from duet.alignment.fallback import ensure_displayable
from duet.alignment.remap import remap_paragraphs
from duet.anchor.resolver import resolve_issues
from duet.config import SessionConfig
from duet.diff import carry_issue_offsets
from duet.editor.mapper import EditorSurface
from duet.models import AnchoredIssue, ParagraphMatchResult, ReviewIssue
from duet.paragraphs import ParagraphRange, locate_paragraph_ranges, split_paragraphs
from duet.search import SearchMatch, SearchPatternError, find_matches
from duet.tracker import find_active_row

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PassResult:
    """Output of one pass. Replaced wholesale by the next pass, never patched."""

    version: int
    text: str
    alignment: ParagraphMatchResult
    ranges: List[ParagraphRange] = field(default_factory=list)
    issues: List[AnchoredIssue] = field(default_factory=list)


PassListener = Callable[[PassResult], None]


class PassScheduler:
    """Holds at most one pending timer; scheduling again cancels the previous one."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, version: int, delay_ms: int, callback: Callable[[int], None]) -> bool:
        self.cancel()
        try:
            loop = self._loop or asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No event loop; pass for version {version} waits for an explicit flush")
            return False
        self._handle = loop.call_later(delay_ms / 1000.0, self._fire, version, callback)
        return True

    def _fire(self, version: int, callback: Callable[[int], None]):
        self._handle = None
        callback(version)

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class ReviewSession:
    def __init__(
        self,
        source_text: str,
        surface: EditorSurface,
        alignment: Optional[ParagraphMatchResult] = None,
        issues: Optional[Sequence[ReviewIssue]] = None,
        config: Optional[SessionConfig] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.source_text = source_text
        self.surface = surface
        self.config = config or SessionConfig()
        self.version = 0
        self.search_matches: List[SearchMatch] = []

        self._alignment = alignment
        self._issues: List[ReviewIssue] = list(issues or [])
        # Text the stored issue offsets refer to
        self._issues_text = surface.plain_text()
        self._result: Optional[PassResult] = None
        self._listeners: List[PassListener] = []
        self._scheduler = PassScheduler(loop)
        self._closed = False

        surface.add_change_listener(self._on_surface_change)
        self.run_pass()

    # --- State ---

    @property
    def result(self) -> Optional[PassResult]:
        return self._result

    @property
    def alignment(self) -> ParagraphMatchResult:
        """The store to render: the real alignment, or the fallback when it shows no source."""
        if self._result is None:
            return ensure_displayable(self._alignment, self.source_text, split_paragraphs(self.surface.plain_text()))
        return self._result.alignment

    @property
    def issues(self) -> List[AnchoredIssue]:
        return list(self._result.issues) if self._result else []

    @property
    def pending(self) -> bool:
        return self._scheduler.pending

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: PassListener):
        self._listeners.append(listener)

    def unsubscribe(self, listener: PassListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    # --- Triggers ---

    def _on_surface_change(self, surface: EditorSurface):
        if self._closed:
            return
        self.version += 1
        self._scheduler.schedule(self.version, self.config.text_debounce_ms, self._run_scheduled)

    def set_issues(self, issues: Sequence[ReviewIssue]):
        """Replaces the issue list; offsets are taken to refer to the current text."""
        self._issues = list(issues)
        self._issues_text = self.surface.plain_text()
        self._bump(self.config.issue_debounce_ms)

    def set_alignment(self, alignment: Optional[ParagraphMatchResult]):
        self._alignment = alignment
        self._bump(self.config.text_debounce_ms)

    def _bump(self, delay_ms: int):
        if self._closed:
            return
        self.version += 1
        self._scheduler.schedule(self.version, delay_ms, self._run_scheduled)

    def _run_scheduled(self, version: int):
        if self._closed:
            return
        if version != self.version:
            logger.debug(f"Skipping stale pass for version {version} (current {self.version})")
            return
        self.run_pass()

    def flush(self) -> Optional[PassResult]:
        """Runs any pending pass now."""
        self._scheduler.cancel()
        if self._closed:
            return self._result
        return self.run_pass()

    # --- Pass ---

    def run_pass(self) -> PassResult:
        text = self.surface.plain_text()
        paragraphs = split_paragraphs(text)

        if self._alignment is not None and self._alignment.target_paragraphs != paragraphs:
            if paragraphs:
                self._alignment = remap_paragraphs(self._alignment, paragraphs)
            else:
                self._alignment = ParagraphMatchResult.empty()

        display = ensure_displayable(self._alignment, self.source_text, paragraphs)
        ranges = locate_paragraph_ranges(text, paragraphs)

        if self._issues_text != text:
            self._issues = carry_issue_offsets(self._issues_text, text, self._issues)
            self._issues_text = text
        anchored = resolve_issues(self.surface, self._issues)
        self._issues = [a.issue for a in anchored]

        result = PassResult(version=self.version, text=text, alignment=display, ranges=ranges, issues=anchored)
        self._result = result

        logger.info(f"Pass {self.version}: {len(paragraphs)} paragraphs, {len(anchored)} issues")
        for listener in list(self._listeners):
            listener(result)
        return result

    # --- Queries ---

    def active_row(self, offset: int) -> Optional[int]:
        if self._result is None:
            return None
        return find_active_row(offset, self._result.ranges, self._result.alignment.paragraph_count)

    def find(self, query: str, case_sensitive: bool = False, whole_word: bool = False, use_regex: bool = False):
        """
        Searches the current text and keeps the matches.
        An invalid pattern clears them and propagates SearchPatternError to the caller.
        """
        try:
            self.search_matches = find_matches(
                self.surface.plain_text(),
                query,
                case_sensitive=case_sensitive,
                whole_word=whole_word,
                use_regex=use_regex,
            )
        except SearchPatternError:
            self.search_matches = []
            raise
        return self.search_matches

    # --- Teardown ---

    def close(self):
        """Cancels the pending pass and detaches from the surface."""
        if self._closed:
            return
        self._closed = True
        self._scheduler.cancel()
        self.surface.remove_change_listener(self._on_surface_change)
        self._listeners.clear()
        logger.debug(f"Session closed at version {self.version}")
