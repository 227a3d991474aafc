import pytest

from core.comparator import ChangeType, IterationComparator
from core.diff_utils import DiffType, WordWindowDiff
from domain import Iteration, IterationTiming, UserFeedback
from settings import Settings


def _it(iid, output, attempt=1, feedback=None, latency=2.0):
    return Iteration(id=iid, session_id="s", attempt_number=attempt, prompt="p", output=output,
                     timing=IterationTiming(100.0, 100.0 + latency), feedback=feedback)


@pytest.fixture
def comparator():
    return IterationComparator(WordWindowDiff(), Settings().section("comparison"))


def test_quick_fox_comparison(comparator):
    a = _it("a", "The quick fox jumps.", feedback=UserFeedback(type="reject", rating=-1))
    b = _it("b", "The quick brown fox jumps over the lazg dog.", attempt=2)

    result = comparator.compare(a, b)

    assert any(r.type is DiffType.ADDITION for r in result.regions)
    assert ChangeType.CONTENT_ADDITION in result.change_types
    assert ChangeType.LENGTH_CHANGE in result.change_types
    assert result.improvement_score >= 0.5 + 0.2 + 0.1
    # 24 extra chars over a 20 char body clears the length bonus too
    assert result.improvement_score == pytest.approx(0.9)


def test_improvement_score_baseline_and_latency(comparator):
    a = _it("a", "Same length text.", latency=10.0)
    b = _it("b", "Same length text!", attempt=2, latency=10.0)
    assert comparator.improvement_score(a, b) == pytest.approx(0.5)

    faster = _it("c", "Same length text!", attempt=2, latency=5.0)
    assert comparator.improvement_score(a, faster) == pytest.approx(0.6)


def test_improvement_score_capped(comparator):
    a = _it("a", "Tiny.", feedback=UserFeedback(type="reject", rating=-1), latency=10.0)
    b = _it("b", "A dramatically longer replacement body of text.", attempt=2, latency=1.0)
    assert comparator.improvement_score(a, b) == pytest.approx(1.0)


def test_empty_previous_body_has_no_length_signal(comparator):
    a = _it("a", "")
    b = _it("b", "Brand new words appear.", attempt=2)
    assert comparator.improvement_score(a, b) == pytest.approx(0.5)
    assert ChangeType.LENGTH_CHANGE not in comparator.change_types(a, b, comparator.content_diff(a, b))


def test_removal_and_style_tags(comparator):
    long = _it("a", "one two three four five six seven eight")
    short = _it("b", "one eight", attempt=2)
    assert ChangeType.CONTENT_REMOVAL in comparator.compare(long, short).change_types

    before = _it("c", "alpha beta gamma delta")
    after = _it("d", "omega sigma kappa theta", attempt=2)
    assert ChangeType.STYLE_REFINEMENT in comparator.compare(before, after).change_types


def test_structure_and_tone_tags(comparator):
    a = _it("a", "One block of text.", feedback=UserFeedback(type="refine", refinement_request="Use a more formal tone"))
    b = _it("b", "One block of text.\n\nA second block.", attempt=2)
    tags = comparator.compare(a, b).change_types
    assert ChangeType.STRUCTURE_CHANGE in tags
    assert ChangeType.TONE_ADJUSTMENT in tags
    assert len(tags) == len(set(tags))


def test_feedback_impact(comparator):
    a = _it("a", "Our product helps teams.",
            feedback=UserFeedback(type="refine", refinement_request="mention pricing and include examples"))
    b = _it("b", "Our product helps teams. Pricing starts low, and many teams already rely on it daily.", attempt=2)

    impact = comparator.feedback_impact(a, b)
    assert impact.addressed_feedback == ["pricing"]
    assert impact.remaining_issues == ["mention", "include", "examples"]
    assert impact.improvement_areas == ["content_expansion"]

    shrunk = comparator.feedback_impact(b, a)
    assert shrunk.improvement_areas == ["content_conciseness"]
    assert shrunk.addressed_feedback == []


def test_diff_cache_and_eviction(comparator):
    a = _it("a", "first version")
    b = _it("b", "second version", attempt=2)
    first = comparator.content_diff(a, b)
    assert comparator.content_diff(a, b) == first
    assert comparator.evict(["b"]) == 1
    assert comparator.evict(["b"]) == 0


def test_to_dict_payload(comparator):
    a = _it("a", "The quick fox jumps.")
    b = _it("b", "The quick brown fox jumps.", attempt=2)
    payload = comparator.compare(a, b).to_dict()
    assert payload["previousIterationId"] == "a"
    assert payload["statistics"]["additions"] == 1
    assert "content_addition" in payload["changeTypes"]
