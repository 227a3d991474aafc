from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from core.comparator import ComparisonResult, IterationComparator
from core.content_analyzer import ContentAnalyzer
from core.diff_utils import WordWindowDiff
from core.iteration_store import IterationStore
from core.quality import QualityMetric, QualityScorer
from core.session_analysis import SessionAnalysis, SessionComparisonService, SideBySideComparison
from domain import (
    Iteration,
    IterationContext,
    IterationMetrics,
    IterationTiming,
    UserFeedback,
    VersionTree,
)
from logger import log_event, log_metrics, log_performance
from settings import Settings


class IterationService:
    """Wires the store, analyzer, scorer, comparator and session analysis together.

    The store is the only writer. Everything else reads snapshots and keeps
    id-keyed caches which are evicted when a session is cleared.
    """

    def __init__(self, settings: Optional[Settings] = None, store: Optional[IterationStore] = None):
        self.settings = settings or Settings()
        s = self.settings

        self.store = store or IterationStore(satisfaction_heuristics=s.section("satisfaction"))
        self.analyzer = ContentAnalyzer(s.section("analyzer"))
        self.scorer = QualityScorer(self.analyzer, s.section("quality"))

        diff_heur = s.section("diff")
        diff_heur["window"] = s.diff_window
        self.comparator = IterationComparator(WordWindowDiff.from_heuristics(diff_heur), s.section("comparison"))
        self.sessions = SessionComparisonService(self.analyzer, self.scorer, {
            "best_iteration": s.section("best_iteration"),
            "insights": s.section("insights"),
            "satisfaction": s.section("satisfaction"),
            "recommendations": s.section("recommendations"),
            "quality": s.section("quality"),
            "comparison": s.section("comparison"),
        })

    # ---- writes ----
    def create_iteration(self, context: IterationContext, prompt: str, output: str,
                         timing: IterationTiming) -> Iteration:
        iteration = self.store.create_iteration(context, prompt, output, timing)
        log_event("ITERATION_CREATED",
                  f"session={iteration.session_id} id={iteration.id} attempt={iteration.attempt_number}")
        return iteration

    def create_alternative(self, session_id: str, base_iteration_id: str, context: IterationContext,
                           prompt: str, output: str, timing: IterationTiming) -> Optional[Iteration]:
        iteration = self.store.create_alternative(session_id, base_iteration_id, context, prompt, output, timing)
        if iteration is not None:
            log_event("ALTERNATIVE_CREATED",
                      f"session={session_id} base={base_iteration_id} id={iteration.id}")
        return iteration

    def add_feedback(self, session_id: str, iteration_id: str, feedback: UserFeedback) -> Optional[Iteration]:
        iteration = self.store.add_feedback(session_id, iteration_id, feedback)
        if iteration is not None:
            log_event("FEEDBACK_ATTACHED",
                      f"session={session_id} id={iteration_id} type={feedback.type.value} rating={feedback.rating}")
        return iteration

    def clear_session(self, session_id: str) -> int:
        evicted = self.store.clear_session(session_id)
        self.analyzer.evict(evicted)
        self.comparator.evict(evicted)
        self.sessions.evict(evicted)
        log_event("SESSION_CLEARED", f"session={session_id} iterations={len(evicted)}")
        return len(evicted)

    # ---- reads ----
    def get_history(self, session_id: str) -> List[Iteration]:
        return self.store.get_history(session_id)

    def get_latest(self, session_id: str) -> Optional[Iteration]:
        return self.store.get_latest(session_id)

    def get_iteration(self, session_id: str, iteration_id: str) -> Optional[Iteration]:
        return self.store.get_iteration(session_id, iteration_id)

    def get_version_tree(self, session_id: str) -> Optional[VersionTree]:
        return self.store.get_version_tree(session_id)

    def get_alternatives(self, session_id: str, iteration_id: str) -> List[Iteration]:
        return self.store.get_alternatives(session_id, iteration_id)

    def get_iteration_metrics(self, iteration_id: str) -> Optional[IterationMetrics]:
        return self.store.get_iteration_metrics(iteration_id)

    def get_iteration_stats(self, session_id: str) -> Dict[str, float]:
        return self.store.get_iteration_stats(session_id)

    # ---- analysis ----
    def compare(self, previous: Iteration, current: Iteration) -> ComparisonResult:
        return self.comparator.compare(previous, current)

    def compare_iterations(self, session_id: str, from_id: str, to_id: str) -> Optional[ComparisonResult]:
        previous = self.store.get_iteration(session_id, from_id)
        current = self.store.get_iteration(session_id, to_id)
        if previous is None or current is None:
            return None
        return self.comparator.compare(previous, current)

    def get_quality_metric(self, session_id: str, iteration_id: str) -> Optional[QualityMetric]:
        """Metric for one iteration, with the delta against the attempt before it."""
        history = self.store.get_history(session_id)
        for idx, iteration in enumerate(history):
            if iteration.id == iteration_id:
                previous = self.scorer.metric(history[idx - 1]) if idx > 0 else None
                return self.scorer.metric(iteration, previous)
        return None

    def analyze_session(self, session_id: str, iterations: Optional[List[Iteration]] = None) -> SessionAnalysis:
        """Analyze the given snapshot, or the stored history when none is passed.

        Raises InvalidPreconditionError when there is nothing to analyze.
        """
        if iterations is None:
            iterations = self.store.get_history(session_id)
            cap = self.settings.max_analysis_iterations
            if cap and len(iterations) > cap:
                iterations = iterations[-cap:]

        t0 = time.perf_counter()
        analysis = self.sessions.analyze_session_progress(session_id, iterations)
        duration_ms = (time.perf_counter() - t0) * 1000.0

        log_performance("SESSION_ANALYSIS", duration_ms, session_id=session_id, iterations=len(analysis.iterations))
        log_metrics("SESSION_ANALYSIS", {
            "session_id": session_id,
            "iterations": len(analysis.iterations),
            "best_iteration": analysis.best_iteration.id,
            "trend": analysis.satisfaction_trend.overall,
            "insights": len(analysis.improvement_insights),
            "recommendations": [a.action for a in analysis.recommended_next],
        })
        return analysis

    def side_by_side(self, session_id: str, iteration_ids: Optional[List[str]] = None) -> SideBySideComparison:
        history = self.store.get_history(session_id)
        if iteration_ids:
            by_id = {it.id: it for it in history}
            iterations = [by_id[iid] for iid in iteration_ids if iid in by_id]
        else:
            iterations = history
        return self.sessions.create_side_by_side(iterations)

    def describe(self) -> Dict[str, Any]:
        return {
            "sessions": len(self.store.session_ids()),
            "diffWindow": self.settings.diff_window,
            "maxAnalysisIterations": self.settings.max_analysis_iterations,
        }
