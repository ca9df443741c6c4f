from typing import List, Sequence

import structlog
from diff_match_patch import diff_match_patch

from duet.models import ReviewIssue

logger = structlog.get_logger(__name__)


def carry_issue_offsets(old_text: str, new_text: str, issues: Sequence[ReviewIssue]) -> List[ReviewIssue]:
    """
    Moves each issue's start/end from `old_text` coordinates into `new_text`.

    Uses a character diff between the two snapshots. When the spanned text was
    deleted outright the offsets are cleared, leaving the literal text as the
    only locator for the next resolution pass.
    """
    if old_text == new_text or not any(issue.has_offsets for issue in issues):
        return list(issues)

    dmp = diff_match_patch()
    diffs = dmp.diff_main(old_text, new_text, False)
    dmp.diff_cleanupSemantic(diffs)

    carried = []
    for idx, issue in enumerate(issues):
        if not issue.has_offsets:
            carried.append(issue)
            continue

        start = dmp.diff_xIndex(diffs, issue.start)
        end = dmp.diff_xIndex(diffs, issue.end)

        if issue.end > issue.start and end <= start:
            logger.debug(f"Issue {idx}: spanned text deleted; dropping offsets")
            carried.append(issue.model_copy(update={"start": None, "end": None}))
            continue

        if (start, end) != (issue.start, issue.end):
            logger.debug(f"Issue {idx}: offsets {issue.start}-{issue.end} -> {start}-{end}")
            issue = issue.model_copy(update={"start": start, "end": end})
        carried.append(issue)

    return carried
