import json
import logging
import sys
from typing import List, Optional

import structlog
from mcp.server.fastmcp import FastMCP

from duet.alignment.fallback import ensure_displayable
from duet.alignment.remap import remap_alignment
from duet.anchor.resolver import order_for_display, resolve_issues
from duet.editor.mapper import TextTree
from duet.models import ParagraphMatchResult, ReviewIssue
from duet.paragraphs import locate_paragraph_ranges
from duet.paragraphs import split_paragraphs as _split_paragraphs
from duet.search import SearchPatternError, find_matches

# --- LOGGING CONFIGURATION ---
# MCP talks JSON-RPC over stdout, so every log line goes to stderr.
logging.basicConfig(stream=sys.stderr, level=logging.INFO, force=True)

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

mcp = FastMCP("Duet Paragraph Alignment Service")


@mcp.tool()
def split_paragraphs(text: str) -> str:
    """
    Splits text into paragraphs on blank lines and reports each paragraph's offsets.
    Offsets of -1 mean the paragraph could not be located in the text.
    """
    paragraphs = _split_paragraphs(text)
    ranges = locate_paragraph_ranges(text, paragraphs)
    return json.dumps(
        [{"index": i, "start": r.start, "end": r.end, "text": p} for i, (p, r) in enumerate(zip(paragraphs, ranges))],
        ensure_ascii=False,
    )


@mcp.tool()
def align_paragraphs(source_text: str, target_text: str, previous_alignment: Optional[dict] = None) -> str:
    """
    Returns the source <-> target paragraph alignment for the current target text.

    Args:
        source_text: The fixed source document.
        target_text: The current (edited) target document.
        previous_alignment: Optional alignment JSON computed for an earlier version of the target.
                            It is carried over to the new paragraphs (merges and splits are detected).
                            Without it, or when it holds no source text, a positional alignment is used.
    """
    try:
        alignment = None
        if previous_alignment:
            alignment = remap_alignment(ParagraphMatchResult.model_validate(previous_alignment), target_text)
        result = ensure_displayable(alignment, source_text, _split_paragraphs(target_text))
        return result.model_dump_json(by_alias=True)
    except Exception as e:
        return f"Error aligning paragraphs: {str(e)}"


@mcp.tool()
def anchor_issues(target_text: str, issues: List[ReviewIssue]) -> str:
    """
    Re-derives the character offsets of review issues in the current target text.

    Each issue is located by its start/end offsets when they still cover its `text`,
    otherwise by searching for `text`. Issues that cannot be placed are returned with
    anchored=false after the placed ones; none are dropped.
    """
    try:
        tree = TextTree.from_text(target_text)
        resolved = order_for_display(resolve_issues(tree, issues))
        return json.dumps([r.model_dump(by_alias=True, mode="json") for r in resolved], ensure_ascii=False)
    except Exception as e:
        return f"Error anchoring issues: {str(e)}"


@mcp.tool()
def find_in_text(
    text: str,
    query: str,
    case_sensitive: bool = False,
    whole_word: bool = False,
    use_regex: bool = False,
) -> str:
    """Finds every occurrence of `query` in `text` and returns the (start, end) ranges."""
    try:
        matches = find_matches(text, query, case_sensitive=case_sensitive, whole_word=whole_word, use_regex=use_regex)
        return json.dumps([{"start": m.start, "end": m.end} for m in matches])
    except SearchPatternError as e:
        return f"Error: {str(e)}"


def main():
    mcp.run()


if __name__ == "__main__":
    main()
