import pytest

from core.diff_utils import (
    DiffType,
    VisualDiffType,
    WordWindowDiff,
    calculate_statistics,
    format_region_for_api,
    sentence_visual_diff,
)
from utils import words


def _assert_order_preserving(old: str, new: str, regions):
    old_words, new_words = words(old), words(new)
    stats = calculate_statistics(regions)
    # Tokens outside any region are the shared ones, so both sides must agree on their count
    assert len(old_words) - stats.words_removed == len(new_words) - stats.words_added

    for side, tokens in (("old_text", old_words), ("new_text", new_words)):
        cursor = 0
        for region in sorted(regions, key=lambda r: r.position):
            fragment = getattr(region, side)
            if not fragment:
                continue
            piece = fragment.split(" ")
            while tokens[cursor:cursor + len(piece)] != piece:
                cursor += 1
                assert cursor <= len(tokens), f"{fragment!r} not found in order"
            cursor += len(piece)


def test_quick_fox_scenario():
    regions = WordWindowDiff().diff("The quick fox jumps.", "The quick brown fox jumps over the lazg dog.")

    assert [r.type for r in regions] == [DiffType.ADDITION, DiffType.MODIFICATION, DiffType.ADDITION]
    assert regions[0].new_text == "brown"
    assert regions[0].confidence == 0.8
    assert (regions[1].old_text, regions[1].new_text) == ("jumps.", "jumps")
    assert regions[1].confidence == 0.7
    assert regions[2].new_text == "over the lazg dog."
    assert regions[2].confidence == 0.9


def test_identical_texts_produce_no_regions():
    text = "Nothing changed here at all.\n\nNot even this paragraph."
    assert WordWindowDiff().diff(text, text) == []


@pytest.mark.parametrize("old,new", [
    ("one two three four five", "one three four five six"),
    ("alpha beta gamma", "delta epsilon zeta eta"),
    ("a b c d e f g", "a x b c y z d g"),
    ("keep this sentence intact please", "please keep intact"),
    ("short", "a much longer replacement sentence"),
])
def test_diff_is_order_preserving(old, new):
    _assert_order_preserving(old, new, WordWindowDiff().diff(old, new))


def test_lookahead_detects_deletion():
    regions = WordWindowDiff().diff("a b c d", "a d")
    assert len(regions) == 1
    assert regions[0].type is DiffType.DELETION
    assert regions[0].old_text == "b c"


def test_window_bounds_lookahead():
    old, new = "a z", "a b c d e z"
    wide = WordWindowDiff(window=4).diff(old, new)
    narrow = WordWindowDiff(window=1).diff(old, new)
    assert [r.type for r in wide] == [DiffType.ADDITION]
    assert wide[0].new_text == "b c d e"
    assert narrow[0].type is DiffType.MODIFICATION


def test_empty_sides():
    assert WordWindowDiff().diff("", "") == []
    (added,) = WordWindowDiff().diff("", "new words")
    assert added.type is DiffType.ADDITION and added.new_text == "new words"
    (removed,) = WordWindowDiff().diff("old words", "   ")
    assert removed.type is DiffType.DELETION and removed.old_text == "old words"


def test_window_must_be_positive():
    with pytest.raises(ValueError):
        WordWindowDiff(window=0)


def test_from_heuristics_reads_confidences():
    engine = WordWindowDiff.from_heuristics({"window": 2, "tail_confidence": 0.5})
    assert engine.window == 2
    (region,) = engine.diff("", "x")
    assert region.confidence == 0.5


def test_statistics_and_api_format():
    regions = WordWindowDiff().diff("The quick fox jumps.", "The quick brown fox jumps over the lazg dog.")
    stats = calculate_statistics(regions)
    assert (stats.additions, stats.deletions, stats.modifications) == (2, 0, 1)
    assert stats.words_added == 6
    assert stats.words_removed == 1

    payload = format_region_for_api(regions[0])
    assert payload["type"] == "addition"
    assert payload["oldText"] is None


def test_sentence_visual_diff():
    spans = sentence_visual_diff("First one. Second one.", "First one. Second two. Third.")
    assert [s.type for s in spans] == [VisualDiffType.UNCHANGED, VisualDiffType.MODIFIED, VisualDiffType.ADDED]
    assert spans[0].start_position == 0
    assert spans[1].start_position == spans[0].end_position + 1
