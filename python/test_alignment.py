"""
Tests for the alignment store: fallback alignment, the display-safety rule,
containment remapping and validation of alignment model replies.

Run: python3 test_alignment.py
From: python/
"""

import pytest

from duet.alignment.fallback import build_fallback_alignment, ensure_displayable
from duet.alignment.matching import (
    build_matching_prompt,
    parse_matching_response,
    parse_review_response,
    split_target_layout,
)
from duet.alignment.remap import remap_alignment, remap_anchor
from duet.models import ParagraphMatch, ParagraphMatchResult, Severity, UnmatchedSource, identity_matches
from duet.paragraphs import join_paragraphs, split_paragraphs


def _store(targets, sources, unmatched=()):
    return ParagraphMatchResult(
        target_paragraphs=list(targets),
        source_paragraphs=list(sources),
        unmatched_source=[UnmatchedSource(before_target_index=i, text=t) for i, t in unmatched],
        matches=identity_matches(len(targets)),
    )


# ---------------------------------------------------------------------------
# Store model
# ---------------------------------------------------------------------------


def test_store_rejects_length_mismatch():
    with pytest.raises(ValueError):
        ParagraphMatchResult(target_paragraphs=["a", "b"], source_paragraphs=["x"])
    print("PASS: store length invariant")


def test_store_reads_and_writes_camel_case():
    payload = {
        "targetParagraphs": ["One."],
        "sourceParagraphs": ["하나."],
        "unmatchedSource": [{"beforeTargetIndex": 1, "text": "둘."}],
        "matches": [{"targetIndex": 0, "sourceIndex": 0}],
    }
    store = ParagraphMatchResult.model_validate(payload)
    assert store.unmatched_source[0].before_target_index == 1
    assert store.matches == [ParagraphMatch(target_index=0, source_index=0)]
    assert store.model_dump(by_alias=True) == payload
    print("PASS: camelCase round trip")


def test_has_source_content():
    assert not ParagraphMatchResult.empty().has_source_content()
    assert not _store(["a", "b"], ["", "  \n"]).has_source_content()
    assert _store(["a"], [""], unmatched=[(0, "x")]).has_source_content()
    assert _store(["a"], ["x"]).has_source_content()
    print("PASS: has_source_content")


# ---------------------------------------------------------------------------
# Fallback aligner
# ---------------------------------------------------------------------------


def test_fallback_more_source_than_target():
    result = build_fallback_alignment("문장1.\n\n문장2.\n\n문장3.", 2, ["One.", "Two."])
    assert result.target_paragraphs == ["One.", "Two."]
    assert result.source_paragraphs == ["문장1.", "문장2."]
    assert result.unmatched_source == [UnmatchedSource(before_target_index=2, text="문장3.")]
    print("PASS: fallback with leftover source")


def test_fallback_more_target_than_source():
    result = build_fallback_alignment("하나.", 3)
    assert result.source_paragraphs == ["하나.", "", ""]
    assert result.target_paragraphs == ["", "", ""]
    assert result.unmatched_source == []
    assert len(result.matches) == 3
    print("PASS: fallback with extra target rows")


def test_fallback_never_loses_source():
    source = "가.\n\n나.\n\n다."
    expected = split_paragraphs(source)
    for n in range(0, 6):
        result = build_fallback_alignment(source, n)
        emitted = [p for p in result.source_paragraphs if p.strip()]
        for entry in result.unmatched_source:
            emitted.extend(split_paragraphs(entry.text))
        assert emitted == expected, f"n={n}: {emitted}"
        assert len(result.unmatched_source) <= 1
    print("PASS: fallback accounts for every source paragraph")


def test_fallback_rejects_wrong_paragraph_list():
    with pytest.raises(ValueError):
        build_fallback_alignment("a", 2, ["only one"])
    print("PASS: fallback argument check")


def test_display_safety_substitutes_degenerate_store():
    degenerate = _store(["One.", "Two."], ["", " "])
    result = ensure_displayable(degenerate, "가.\n\n나.", ["One.", "Two."])
    assert result.source_paragraphs == ["가.", "나."]

    assert ensure_displayable(None, "가.", ["One."]).source_paragraphs == ["가."]
    print("PASS: display safety substitution")


def test_display_safety_keeps_real_store():
    real = _store(["One.", "Two."], ["", "나."])
    assert ensure_displayable(real, "가.\n\n나.", ["One.", "Two."]) is real

    only_unmatched = _store(["One."], [""], unmatched=[(0, "가.")])
    assert ensure_displayable(only_unmatched, "가.", ["One."]) is only_unmatched
    print("PASS: display safety keeps real store")


# ---------------------------------------------------------------------------
# Containment remapper
# ---------------------------------------------------------------------------


def test_remap_merge():
    old = _store(["Alpha.", "Beta."], ["가.", "나."])
    result = remap_alignment(old, "Alpha. Beta.")
    assert result.target_paragraphs == ["Alpha. Beta."]
    assert result.source_paragraphs == ["가.\n\n나."]
    assert result.matches == [ParagraphMatch(target_index=0, source_index=0)]
    assert result.unmatched_source == []
    print("PASS: merge")


def test_remap_merge_keeps_order_and_skips_blank():
    old = _store(["First part.", "Second part.", "Third part."], ["A", "", "B"])
    result = remap_alignment(old, "First part.\nSecond part.\nThird part.")
    assert result.source_paragraphs == ["A\n\nB"]
    print("PASS: merge order")


def test_remap_split_keeps_source_once():
    old = _store(["One sentence. Another sentence."], ["한 문장. 다른 문장."])
    result = remap_alignment(old, "One sentence.\n\nAnother sentence.")
    assert result.source_paragraphs == ["한 문장. 다른 문장.", ""]
    assert result.unmatched_source == []
    print("PASS: split")


def test_remap_split_in_middle():
    old = _store(["Intro.", "Left half and right half.", "Outro."], ["s0", "s1", "s2"])
    result = remap_alignment(old, "Intro.\n\nLeft half\n\nand right half.\n\nOutro.")
    assert result.source_paragraphs == ["s0", "s1", "", "s2"]
    print("PASS: split in middle")


def test_remap_is_idempotent():
    old = _store(
        ["Alpha.", "Beta gamma.", "Delta."],
        ["가.", "나 다.", "라."],
        unmatched=[(0, "머리."), (2, "중간."), (3, "꼬리.")],
    )
    result = remap_alignment(old, join_paragraphs(old.target_paragraphs))
    assert result == old
    print("PASS: idempotent remap")


def test_remap_is_idempotent_with_repeated_and_nested_paragraphs():
    old = _store(["Yes.", "Yes. I agree.", "Yes."], ["s0", "s1", "s2"], unmatched=[(1, "u")])
    result = remap_alignment(old, join_paragraphs(old.target_paragraphs))
    assert result == old
    print("PASS: idempotent remap with repeats")


def test_remap_ignores_whitespace_noise():
    old = _store(["Alpha  beta.", "Gamma."], ["가.", "나."])
    result = remap_alignment(old, "Alpha\nbeta.\n\n  Gamma.  ")
    assert result.source_paragraphs == ["가.", "나."]
    print("PASS: whitespace-insensitive matching")


def test_remap_appended_text_still_matches():
    old = _store(["Alpha.", "Beta."], ["가.", "나."])
    result = remap_alignment(old, "Alpha. And more words.\n\nBeta.")
    assert result.source_paragraphs == ["가.", "나."]
    print("PASS: appended text")


def test_remap_inserted_paragraph_gets_no_source():
    old = _store(["Alpha.", "Beta."], ["가.", "나."])
    result = remap_alignment(old, "Alpha.\n\nInserted line.\n\nBeta.")
    assert result.source_paragraphs == ["가.", "", "나."]
    assert result.unmatched_source == []
    print("PASS: inserted paragraph")


def test_remap_rewrite_falls_back_to_position():
    old = _store(["Alpha.", "Beta."], ["가.", "나."])
    result = remap_alignment(old, "Alpha.\n\nSomething else entirely.")
    assert result.source_paragraphs == ["가.", "나."]
    print("PASS: positional guess")


def test_remap_deleted_paragraph_moves_to_unmatched():
    old = _store(["Alpha.", "Beta.", "Gamma."], ["가.", "나.", "다."])
    result = remap_alignment(old, "Alpha.\n\nGamma.")
    assert result.source_paragraphs == ["가.", "다."]
    assert result.unmatched_source == [UnmatchedSource(before_target_index=1, text="나.")]
    print("PASS: deleted paragraph keeps its source")


def test_remap_moves_unmatched_anchors():
    old = _store(
        ["A one.", "B two.", "C three."],
        ["s0", "s1", "s2"],
        unmatched=[(0, "u0"), (2, "u2"), (3, "u3")],
    )
    result = remap_alignment(old, "A one. B two.\n\nC three.")
    assert result.source_paragraphs == ["s0\n\ns1", "s2"]
    assert result.unmatched_source == [
        UnmatchedSource(before_target_index=0, text="u0"),
        UnmatchedSource(before_target_index=1, text="u2"),
        UnmatchedSource(before_target_index=2, text="u3"),
    ]
    print("PASS: unmatched anchors")


def test_remap_anchor_rules():
    mapping = [0, 0, 2]
    assert remap_anchor(0, mapping, 3, 3) == 0
    assert remap_anchor(-1, mapping, 3, 3) == 0
    assert remap_anchor(1, mapping, 3, 3) == 2
    assert remap_anchor(2, mapping, 3, 3) == 2
    assert remap_anchor(3, mapping, 3, 3) == 3
    assert remap_anchor(2, [0, 1], 4, 2) == 2  # nothing maps that far: end of list
    print("PASS: anchor rules")


def test_remap_empty_text_gives_empty_store():
    old = _store(["Alpha."], ["가."])
    assert remap_alignment(old, "") == ParagraphMatchResult.empty()
    assert remap_alignment(old, " \n\n ") == ParagraphMatchResult.empty()
    print("PASS: empty text")


def test_remap_from_empty_store():
    result = remap_alignment(ParagraphMatchResult.empty(), "X.\n\nY.")
    assert result.target_paragraphs == ["X.", "Y."]
    assert result.source_paragraphs == ["", ""]
    assert len(result.matches) == 2
    print("PASS: remap from empty store")


def test_remap_blank_old_targets_fall_back_to_position():
    fallback = build_fallback_alignment("S1.\n\nS2.\n\nS3.", 3)
    result = remap_alignment(fallback, "One.\n\nTwo.\n\nThree.")
    assert result.source_paragraphs == ["S1.", "S2.", "S3."]
    assert result.unmatched_source == []

    old = _store(["Alpha.", "", "Gamma."], ["가.", "나.", "다."])
    result = remap_alignment(old, "Alpha.\n\nNew middle.\n\nGamma.")
    assert result.source_paragraphs == ["가.", "나.", "다."]
    print("PASS: blank old targets")


# ---------------------------------------------------------------------------
# Alignment model replies
# ---------------------------------------------------------------------------


def test_parse_matching_response_normalizes_shape():
    content = (
        "Here is the alignment:\n"
        '{"sourceParagraphs": ["가나다라.", "마바사."], '
        '"unmatchedSource": [{"beforeTargetIndex": 9, "text": "아."}, {"text": "  "}, '
        '{"beforeTargetIndex": -2, "text": "자."}]}'
    )
    result = parse_matching_response(content, "가나다라.\n\n마바사.\n\n아.", ["One.", "Two.", "Three."])
    assert result.source_paragraphs == ["가나다라.", "마바사.", ""]
    assert result.unmatched_source == [
        UnmatchedSource(before_target_index=3, text="아."),
        UnmatchedSource(before_target_index=0, text="자."),
    ]
    assert len(result.matches) == 3
    print("PASS: matching reply normalization")


def test_parse_matching_response_truncates_and_defaults_index():
    content = '{"sourceParagraphs": ["가.", "나.", "다."], "unmatchedSource": [{"text": "라."}]}'
    result = parse_matching_response(content, "가.나.다.라.", ["One.", "Two."])
    assert result.source_paragraphs == ["가.", "나."]
    assert result.unmatched_source == [UnmatchedSource(before_target_index=2, text="라.")]
    print("PASS: matching reply truncation")


def test_parse_matching_response_low_coverage_falls_back():
    source = "가나다라마바사아자차."
    result = parse_matching_response('{"sourceParagraphs": ["가.", "", ""]}', source, ["A", "B", "C"])
    assert result.source_paragraphs == ["", "", ""]
    assert result.unmatched_source == [UnmatchedSource(before_target_index=0, text=source)]
    print("PASS: low coverage fallback")


def test_parse_matching_response_rejects_garbage():
    with pytest.raises(ValueError, match="Failed to parse matching result"):
        parse_matching_response("no json here", "가.", ["A"])
    with pytest.raises(ValueError, match="Failed to parse matching result"):
        parse_matching_response('{"other": []}', "가.", ["A"])
    with pytest.raises(ValueError, match="Failed to parse matching result"):
        parse_matching_response('{"sourceParagraphs": [', "가.", ["A"])
    print("PASS: matching reply rejection")


def test_split_target_layout_recovers_single_newlines():
    long_text = "\n".join(f"Line number {i} is here." for i in range(12))
    assert len(long_text) > 200
    assert split_target_layout(long_text) == long_text.split("\n")

    assert split_target_layout("a\nb") == ["a\nb"]
    assert split_target_layout("a\n\nb") == ["a", "b"]
    print("PASS: layout recovery")


def test_build_matching_prompt_lists_targets():
    prompt = build_matching_prompt("원문.", ["One.", "Two."])
    assert "[T-0]\nOne." in prompt
    assert "[T-1]\nTwo." in prompt
    assert "EXACTLY 2 items" in prompt
    assert "원문." in prompt
    print("PASS: matching prompt")


def test_parse_review_response_skips_bad_items():
    content = """{"issues": [
        {"text": "cat", "category": "Fluency", "severity": "low", "message": "Awkward."},
        {"text": "dog", "category": "Accuracy", "severity": "critical", "message": "Bad severity."},
        {"category": "Style", "severity": "high", "message": "No text.", "suggestion": "Rewrite."}
    ]}"""
    issues = parse_review_response(content)
    assert len(issues) == 2
    assert issues[0].severity == Severity.LOW
    assert issues[1].text is None
    assert issues[1].suggestion == "Rewrite."

    with pytest.raises(ValueError):
        parse_review_response('{"notissues": 1}')
    print("PASS: review reply parsing")


if __name__ == "__main__":
    tests = [
        test_store_rejects_length_mismatch,
        test_store_reads_and_writes_camel_case,
        test_has_source_content,
        test_fallback_more_source_than_target,
        test_fallback_more_target_than_source,
        test_fallback_never_loses_source,
        test_fallback_rejects_wrong_paragraph_list,
        test_display_safety_substitutes_degenerate_store,
        test_display_safety_keeps_real_store,
        test_remap_merge,
        test_remap_merge_keeps_order_and_skips_blank,
        test_remap_split_keeps_source_once,
        test_remap_split_in_middle,
        test_remap_is_idempotent,
        test_remap_is_idempotent_with_repeated_and_nested_paragraphs,
        test_remap_ignores_whitespace_noise,
        test_remap_appended_text_still_matches,
        test_remap_inserted_paragraph_gets_no_source,
        test_remap_rewrite_falls_back_to_position,
        test_remap_deleted_paragraph_moves_to_unmatched,
        test_remap_moves_unmatched_anchors,
        test_remap_anchor_rules,
        test_remap_empty_text_gives_empty_store,
        test_remap_from_empty_store,
        test_remap_blank_old_targets_fall_back_to_position,
        test_parse_matching_response_normalizes_shape,
        test_parse_matching_response_truncates_and_defaults_index,
        test_parse_matching_response_low_coverage_falls_back,
        test_parse_matching_response_rejects_garbage,
        test_split_target_layout_recovers_single_newlines,
        test_build_matching_prompt_lists_targets,
        test_parse_review_response_skips_bad_items,
    ]

    passed = 0
    failed = 0
    for t in tests:
        try:
            t()
            passed += 1
        except Exception as e:
            print(f"FAIL: {t.__name__} — {e}")
            failed += 1

    print(f"\n{'=' * 50}")
    print(f"Results: {passed} passed, {failed} failed out of {len(tests)} tests")
    if failed > 0:
        raise SystemExit(1)
