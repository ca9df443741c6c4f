"""
Both ends of the exchange with the external alignment model: the request text
and the validation of whatever comes back. The model call itself is not made here.
"""

import json
import re
from typing import Any, List, Sequence

import structlog
from pydantic import ValidationError

from duet.config import LAYOUT_RECOVERY_MIN_CHARS, MIN_COVERAGE_RATIO
from duet.models import ParagraphMatchResult, ReviewIssue, UnmatchedSource, identity_matches
from duet.paragraphs import split_paragraphs

logger = structlog.get_logger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_WHITESPACE = re.compile(r"\s+")


def split_target_layout(text: str, min_chars: int = LAYOUT_RECOVERY_MIN_CHARS) -> List[str]:
    """
    Paragraph split used when requesting an alignment.
    Long text that came back without blank lines is split on single newlines instead.
    """
    paragraphs = split_paragraphs(text)
    if len(paragraphs) <= 1 and len(text) > min_chars:
        lines = [line for line in re.split(r"\n+", text.replace("\r\n", "\n")) if line.strip()]
        if len(lines) > len(paragraphs):
            logger.info(f"Target has no blank-line layout; using {len(lines)} single-newline paragraphs")
            return lines
    return paragraphs


def build_matching_prompt(source_text: str, target_paragraphs: Sequence[str]) -> str:
    count = len(target_paragraphs)
    numbered = "\n\n---\n\n".join(f"[T-{idx}]\n{para}" for idx, para in enumerate(target_paragraphs))

    return f"""You are a precise paragraph alignment expert.

TASK: Given the SOURCE TEXT and the TARGET paragraphs (already split on blank lines):
1) Segment the source text so that it follows the TARGET paragraph layout (same number of paragraphs).
2) Source content with no counterpart in the target goes into "unmatchedSource".

RULES:
- Do not translate or rewrite. Return source text only.
- "sourceParagraphs" MUST have EXACTLY {count} items, in target order.
- Every character of the source must appear in sourceParagraphs OR unmatchedSource.
- sourceParagraphs[i] is the source slice for [T-i]; it may be empty.
- unmatchedSource[].beforeTargetIndex is 0..{count}: k means "between T-(k-1) and T-k", {count} means after the last one.

TARGET PARAGRAPHS ({count}):
{numbered}

SOURCE TEXT:
{source_text}

Return ONLY this JSON object:
{{"sourceParagraphs": ["..."], "unmatchedSource": [{{"beforeTargetIndex": 0, "text": "..."}}]}}"""


def _extract_json(content: str) -> Any:
    match = _JSON_OBJECT.search(content or "")
    if not match:
        raise ValueError("No JSON found in response")
    return json.loads(match.group(0))


def parse_matching_response(
    content: str,
    source_text: str,
    target_paragraphs: Sequence[str],
    min_coverage: float = MIN_COVERAGE_RATIO,
) -> ParagraphMatchResult:
    """
    Turns the alignment model's reply into a store shaped for `target_paragraphs`.

    Row count is forced to the target count, unmatched anchors are clamped into range,
    and a reply that lost too much source is replaced by "everything unmatched at the top".
    """
    count = len(target_paragraphs)
    try:
        parsed = _extract_json(content)
        raw_aligned = parsed.get("sourceParagraphs") if isinstance(parsed, dict) else None
        if not isinstance(raw_aligned, list):
            raise ValueError("Invalid response format: missing sourceParagraphs array")
    except ValueError as e:
        logger.error(f"Alignment response rejected: {e}")
        raise ValueError(f"Failed to parse matching result: {e}") from e

    aligned = ["" if x is None else str(x) for x in raw_aligned]
    if len(aligned) != count:
        logger.warning(f"Aligned source length mismatch: target={count}, source={len(aligned)}")
        aligned = (aligned + [""] * count)[:count]

    unmatched = []
    raw_unmatched = parsed.get("unmatchedSource")
    for item in raw_unmatched if isinstance(raw_unmatched, list) else []:
        if not isinstance(item, dict):
            continue
        text = "" if item.get("text") is None else str(item.get("text"))
        if not text.strip():
            continue
        index = item.get("beforeTargetIndex")
        if not isinstance(index, int) or isinstance(index, bool):
            index = count
        unmatched.append(UnmatchedSource(before_target_index=min(max(index, 0), count), text=text))

    original_len = len(_WHITESPACE.sub("", source_text))
    rebuilt_len = len(_WHITESPACE.sub("", "".join(aligned) + "".join(u.text for u in unmatched)))
    if original_len > 0 and rebuilt_len < original_len * min_coverage:
        logger.warning(
            f"Alignment covers {rebuilt_len}/{original_len} source characters; showing all source as unmatched"
        )
        aligned = [""] * count
        unmatched = [UnmatchedSource(before_target_index=0, text=source_text)]

    return ParagraphMatchResult(
        target_paragraphs=list(target_paragraphs),
        source_paragraphs=aligned,
        unmatched_source=unmatched,
        matches=identity_matches(count),
    )


def parse_review_response(content: str) -> List[ReviewIssue]:
    """
    Validates the review model's `{"issues": [...]}` reply.
    Individual malformed issues are skipped; a malformed document raises ValueError.
    """
    try:
        parsed = _extract_json(content)
    except ValueError as e:
        raise ValueError(f"Failed to parse review result: {e}") from e

    raw_issues = parsed.get("issues") if isinstance(parsed, dict) else None
    if not isinstance(raw_issues, list):
        raise ValueError("Failed to parse review result: missing issues array")

    issues = []
    for idx, item in enumerate(raw_issues):
        try:
            issues.append(ReviewIssue.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping review issue {idx}: {e.error_count()} validation errors")

    logger.info(f"Parsed {len(issues)} of {len(raw_issues)} review issues")
    return issues
