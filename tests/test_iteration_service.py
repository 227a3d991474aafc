import pytest

from core.session_analysis import InvalidPreconditionError
from domain import IterationContext, UserFeedback
from iteration_service import IterationService
from settings import Settings


def test_compare_iterations_by_id(service, add):
    a = add("The quick fox jumps.")
    b = add("The quick brown fox jumps over the lazg dog.")
    service.add_feedback("s1", a.id, UserFeedback(type="reject", rating=-1))

    result = service.compare_iterations("s1", a.id, b.id)
    assert result.improvement_score >= 0.8
    assert service.compare_iterations("s1", a.id, "missing") is None
    assert service.compare_iterations("other", a.id, b.id) is None


def test_add_feedback_unknown_returns_none(service):
    assert service.add_feedback("missing-session", "iter-1", UserFeedback(type="accept")) is None


def test_alternatives_through_service(service, add, timing):
    root = add("Root draft.")
    alt = service.create_alternative("s1", root.id, IterationContext(session_id="s1"), "p", "Branch draft.", timing())
    assert service.get_alternatives("s1", root.id) == [alt]
    assert service.get_version_tree("s1").main_path == [root.id]
    assert service.create_alternative("s1", "nope", IterationContext(session_id="s1"), "p", "x", timing()) is None


def test_quality_metric_includes_previous_delta(service, add):
    a = add("Short.")
    b = add("Short.")
    service.add_feedback("s1", b.id, UserFeedback(type="accept"))

    first = service.get_quality_metric("s1", a.id)
    second = service.get_quality_metric("s1", b.id)
    assert first.improvement_from_previous == 0.0
    assert second.improvement_from_previous == pytest.approx(0.08)
    assert service.get_quality_metric("s1", "missing") is None


def test_analyze_session_uses_history(service, add):
    add("First attempt at the text.")
    b = add("Second attempt at the text.")
    service.add_feedback("s1", b.id, UserFeedback(type="accept"))

    analysis = service.analyze_session("s1")
    assert [it.attempt_number for it in analysis.iterations] == [1, 2]
    assert analysis.best_iteration.id == b.id


def test_analyze_session_empty_raises(service):
    with pytest.raises(InvalidPreconditionError):
        service.analyze_session("nobody")


def test_analysis_window_cap(timing):
    service = IterationService(Settings(max_analysis_iterations=2))
    for n in range(4):
        service.create_iteration(IterationContext(session_id="s"), "p", f"Draft number {n}.", timing())
    analysis = service.analyze_session("s")
    assert [it.attempt_number for it in analysis.iterations] == [3, 4]


def test_side_by_side_subset(service, add):
    a = add("One.")
    add("Two.")
    c = add("Three.\n\nFour.")
    comparison = service.side_by_side("s1", [a.id, c.id, "unknown"])
    assert [it.id for it in comparison.iterations] == [a.id, c.id]
    assert len(service.side_by_side("s1").iterations) == 3


def test_clear_session_evicts_caches(service, add):
    a = add("Alpha text here.")
    b = add("Beta text here.")
    service.compare_iterations("s1", a.id, b.id)
    service.analyze_session("s1")
    service.side_by_side("s1")
    assert service.analyzer.cached_ids()

    assert service.clear_session("s1") == 2
    assert service.analyzer.cached_ids() == []
    assert service.comparator.evict([a.id, b.id]) == 0
    assert service.sessions.evict([a.id, b.id]) == 0
    assert service.get_history("s1") == []
    assert service.get_iteration_stats("s1")["totalIterations"] == 0


def test_stats_and_metrics(service, add):
    a = add("Some output.", latency=3.0)
    assert service.get_iteration_metrics(a.id).generation_time == 3.0
    assert service.get_iteration_stats("s1")["averageGenerationTime"] == 3.0
    assert service.describe()["sessions"] == 1
