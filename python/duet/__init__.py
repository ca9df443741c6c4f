from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from duet.alignment.fallback import build_fallback_alignment, ensure_displayable
from duet.alignment.remap import remap_alignment
from duet.anchor.resolver import resolve_issue, resolve_issues
from duet.editor.mapper import EditorSurface, TextTree
from duet.models import AnchoredIssue, ParagraphMatchResult, ReviewIssue, UnmatchedSource
from duet.paragraphs import locate_paragraph_ranges, split_paragraphs
from duet.session import ReviewSession

try:
    __version__ = version("duet")
except PackageNotFoundError:
    # Loaded straight from the source tree; use the VERSION file if one is bundled.
    _version_file = Path(__file__).parent / "VERSION"
    if _version_file.is_file():
        __version__ = _version_file.read_text().strip()
    else:
        __version__ = "0.0.0-dev"

__all__ = [
    "AnchoredIssue",
    "EditorSurface",
    "ParagraphMatchResult",
    "ReviewIssue",
    "ReviewSession",
    "TextTree",
    "UnmatchedSource",
    "build_fallback_alignment",
    "ensure_displayable",
    "locate_paragraph_ranges",
    "remap_alignment",
    "resolve_issue",
    "resolve_issues",
    "split_paragraphs",
    "__version__",
]
