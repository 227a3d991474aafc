import pytest

from core.content_analyzer import ContentAnalyzer, StructuralSummary
from core.feedback import feedback_score, half_split_trend, refinement_keywords, satisfaction_score
from core.quality import QualityScorer
from domain import AcceptanceLevel, Iteration, IterationTiming, UserFeedback
from settings import Settings


def _iteration(output, feedback=None, iid="i1", attempt=1):
    return Iteration(id=iid, session_id="s", attempt_number=attempt, prompt="p", output=output,
                     timing=IterationTiming(0.0, 1.0), feedback=feedback)


@pytest.fixture
def scorer():
    return QualityScorer(ContentAnalyzer(), Settings().section("quality"))


@pytest.mark.parametrize("output", [
    "",
    "x",
    "Great great great great great!",
    "Terrible awful horrible bad poor disappointing.",
    "# Plan\n\nIntro sentence here. Another one.\n\n- item\n- item\n\nConclusion sentence. Done.",
])
@pytest.mark.parametrize("feedback", [
    None,
    UserFeedback(type="accept", rating=1, acceptance_level="as_is"),
    UserFeedback(type="reject", rating=-1),
])
def test_scores_stay_in_unit_interval(scorer, output, feedback):
    metric = scorer.metric(_iteration(output, feedback))
    assert 0.0 <= metric.overall_score <= 1.0
    for value in metric.dimensions.to_dict().values():
        assert 0.0 <= value <= 1.0
    assert 0.0 <= metric.user_feedback_score <= 1.0


def test_feedback_score_mapping():
    assert feedback_score(None) == 0.5
    assert feedback_score(UserFeedback(type="accept")) == pytest.approx(0.9)
    assert feedback_score(UserFeedback(type="accept", rating=1)) == pytest.approx(1.0)
    assert feedback_score(UserFeedback(type="reject", rating=-1)) == pytest.approx(0.0)
    assert feedback_score(UserFeedback(type="refine", rating=1)) == pytest.approx(0.5)
    # Acceptance granularity wins over type and rating
    assert feedback_score(UserFeedback(type="reject", rating=-1, acceptance_level=AcceptanceLevel.AS_IS)) == 1.0
    assert feedback_score(UserFeedback(type="accept", rating=1, acceptance_level="inspiration")) == pytest.approx(0.3)


def test_satisfaction_score_mapping():
    assert satisfaction_score(UserFeedback(type="accept")) == pytest.approx(0.8)
    assert satisfaction_score(UserFeedback(type="accept", acceptance_level="as_is")) == 1.0
    assert satisfaction_score(UserFeedback(type="accept", acceptance_level="inspiration")) == pytest.approx(0.6)
    assert satisfaction_score(UserFeedback(type="reject", rating=-1)) == pytest.approx(0.1)
    assert satisfaction_score(UserFeedback(type="refine", rating=1)) == pytest.approx(0.5)


def test_refinement_keywords_and_trend_helpers():
    fb = UserFeedback(type="refine", refinement_request="Add MORE pricing detail to it")
    assert refinement_keywords(fb) == ["more", "pricing", "detail"]
    assert refinement_keywords(None) == []
    assert half_split_trend([0.2]) == 0.0
    assert half_split_trend([0.2, 0.4, 0.6, 0.8]) == pytest.approx(0.4)


def test_structural_score_rules(scorer):
    bare = StructuralSummary(paragraph_count=0, sentence_count=0, average_paragraph_length=0.0,
                             has_introduction=False, has_conclusion=False, list_elements=0, heading_elements=0)
    assert scorer.structural_score(bare) == pytest.approx(0.5)

    rich = StructuralSummary(paragraph_count=4, sentence_count=12, average_paragraph_length=3.0,
                             has_introduction=True, has_conclusion=True, list_elements=2, heading_elements=1)
    assert scorer.structural_score(rich) == pytest.approx(1.0)


def test_feedback_moves_overall_score(scorer):
    text = "A plain paragraph. With two sentences."
    neutral = scorer.quality_score(_iteration(text, iid="a"))
    accepted = scorer.quality_score(_iteration(text, UserFeedback(type="accept"), iid="b"))
    rejected = scorer.quality_score(_iteration(text, UserFeedback(type="reject"), iid="c"))
    assert accepted - neutral == pytest.approx(0.4 * 0.2)
    assert rejected < neutral < accepted


def test_improvement_from_previous(scorer):
    first = scorer.metric(_iteration("Short.", iid="a"))
    second = scorer.metric(_iteration("Short.", UserFeedback(type="accept"), iid="b", attempt=2), first)
    assert first.improvement_from_previous == 0.0
    assert second.improvement_from_previous == pytest.approx(second.overall_score - first.overall_score)
    assert second.to_dict()["attemptNumber"] == 2
