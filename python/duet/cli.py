import argparse
import json
import sys
from pathlib import Path
from typing import Any, List

from pydantic import TypeAdapter, ValidationError

from duet import __version__
from duet.alignment.fallback import ensure_displayable
from duet.alignment.matching import parse_matching_response, split_target_layout
from duet.alignment.remap import remap_alignment
from duet.anchor.resolver import order_for_display, resolve_issues
from duet.config import SessionConfig
from duet.editor.mapper import TextTree
from duet.models import ParagraphMatchResult, ReviewIssue
from duet.paragraphs import locate_paragraph_ranges, split_paragraphs
from duet.search import SearchPatternError, find_matches


def _read_text(path: Path) -> str:
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _load_json(path: Path) -> Any:
    try:
        return json.loads(_read_text(path))
    except json.JSONDecodeError as e:
        print(f"Error: {path} is not valid JSON: {e}", file=sys.stderr)
        sys.exit(1)


def _load_issues(path: Path) -> List[ReviewIssue]:
    data = _load_json(path)
    if isinstance(data, dict):
        data = data.get("issues", [])
    try:
        return TypeAdapter(List[ReviewIssue]).validate_python(data)
    except ValidationError as e:
        print(f"Error parsing issues: {e}", file=sys.stderr)
        sys.exit(1)


def _dump(payload: Any):
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def handle_split(args):
    text = _read_text(args.input)
    paragraphs = split_paragraphs(text)
    ranges = locate_paragraph_ranges(text, paragraphs)
    _dump([{"index": i, "start": r.start, "end": r.end, "text": p} for i, (p, r) in enumerate(zip(paragraphs, ranges))])
    print(f"{len(paragraphs)} paragraphs", file=sys.stderr)


def handle_align(args):
    source = _read_text(args.source)
    target = _read_text(args.target)
    paragraphs = split_paragraphs(target)

    alignment = None
    if args.alignment:
        try:
            previous = ParagraphMatchResult.model_validate(_load_json(args.alignment))
        except ValidationError as e:
            print(f"Error parsing alignment: {e}", file=sys.stderr)
            sys.exit(1)
        alignment = remap_alignment(previous, target)

    result = ensure_displayable(alignment, source, paragraphs)
    _dump(result.model_dump(by_alias=True))
    print(
        f"{result.paragraph_count} rows, {len(result.unmatched_source)} unmatched source entries",
        file=sys.stderr,
    )


def handle_match(args):
    config = SessionConfig.from_env()
    source = _read_text(args.source)
    target = _read_text(args.target)
    response = _read_text(args.response)

    paragraphs = split_target_layout(target, min_chars=config.layout_recovery_min_chars)
    try:
        result = parse_matching_response(response, source, paragraphs, min_coverage=config.min_coverage_ratio)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    _dump(result.model_dump(by_alias=True))


def handle_anchor(args):
    tree = TextTree.from_text(_read_text(args.target))
    issues = _load_issues(args.issues)

    resolved = order_for_display(resolve_issues(tree, issues))
    _dump([r.model_dump(by_alias=True, mode="json") for r in resolved])

    unanchored = sum(1 for r in resolved if not r.anchored)
    print(f"Stats: {len(resolved) - unanchored} anchored, {unanchored} unanchored.", file=sys.stderr)


def handle_find(args):
    text = _read_text(args.target)
    try:
        matches = find_matches(
            text,
            args.query,
            case_sensitive=args.case_sensitive,
            whole_word=args.whole_word,
            use_regex=args.regex,
        )
    except SearchPatternError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    _dump([{"start": m.start, "end": m.end, "text": text[m.start : m.end]} for m in matches])
    print(f"Found {len(matches)} matches", file=sys.stderr)


def main():
    parser = argparse.ArgumentParser(prog="duet", description="Duet: paragraph alignment for dual-pane review")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    p_split = subparsers.add_parser("split", help="Split a text file into paragraphs with offsets")
    p_split.add_argument("input", type=Path, help="Text file")
    p_split.set_defaults(func=handle_split)

    p_align = subparsers.add_parser("align", help="Align source paragraphs to a target text")
    p_align.add_argument("source", type=Path, help="Source text file")
    p_align.add_argument("target", type=Path, help="Target text file (current version)")
    p_align.add_argument("--alignment", type=Path, help="Previous alignment JSON to remap onto the target")
    p_align.set_defaults(func=handle_align)

    p_match = subparsers.add_parser("match", help="Validate an alignment model reply against source and target")
    p_match.add_argument("source", type=Path, help="Source text file")
    p_match.add_argument("target", type=Path, help="Target text file")
    p_match.add_argument("response", type=Path, help="File holding the raw model reply")
    p_match.set_defaults(func=handle_match)

    p_anchor = subparsers.add_parser("anchor", help="Resolve review issues against a target text")
    p_anchor.add_argument("target", type=Path, help="Target text file")
    p_anchor.add_argument("issues", type=Path, help='JSON list of issues (or {"issues": [...]})')
    p_anchor.set_defaults(func=handle_anchor)

    p_find = subparsers.add_parser("find", help="Search a target text")
    p_find.add_argument("target", type=Path, help="Target text file")
    p_find.add_argument("query", help="Text or pattern to find")
    p_find.add_argument("--regex", action="store_true", help="Treat the query as a regular expression")
    p_find.add_argument("--case-sensitive", action="store_true", help="Match case exactly")
    p_find.add_argument("--whole-word", action="store_true", help="Only match whole words")
    p_find.set_defaults(func=handle_find)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
