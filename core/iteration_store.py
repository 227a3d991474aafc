"""
In-memory iteration history, version trees and per-iteration metrics.

The store is the single writer for a session's history. Nothing is persisted;
a persistence backend can sit behind the same methods later without touching
the analysis code.
"""

import time
import uuid
from typing import Callable, Dict, List, Optional

from core.feedback import half_split_trend, satisfaction_score
from domain import (
    Iteration,
    IterationContext,
    IterationMetrics,
    IterationTiming,
    UserFeedback,
    VersionTree,
)
from logger import get_logger
from utils import estimate_tokens

logger = get_logger(__name__)


class IterationStore:
    """Owns iteration history, version trees and metrics for every session."""

    def __init__(self, clock: Callable[[], float] = time.time, satisfaction_heuristics: Optional[Dict] = None):
        self._clock = clock
        self._satisfaction_heur = dict(satisfaction_heuristics or {})
        self._history: Dict[str, List[Iteration]] = {}
        self._trees: Dict[str, VersionTree] = {}
        self._metrics: Dict[str, IterationMetrics] = {}

    def create_iteration(self, context: IterationContext, prompt: str, output: str,
                         timing: IterationTiming) -> Iteration:
        """Append a new attempt to the session's main path."""
        iteration = self._append(context, prompt, output, timing)
        self._extend_main_path(iteration)
        return iteration

    def create_alternative(self, session_id: str, base_iteration_id: str, context: IterationContext,
                           prompt: str, output: str, timing: IterationTiming) -> Optional[Iteration]:
        """Record a side branch explored from `base_iteration_id`.

        The alternative joins the history (and takes the next attempt number)
        but never the main path. Returns None when the base is unknown.
        """
        if self.get_iteration(session_id, base_iteration_id) is None:
            logger.debug(f"Alternative base {base_iteration_id} not found in session {session_id}")
            return None
        if context.session_id != session_id:
            context = IterationContext(session_id=session_id, content_type=context.content_type,
                                       user_brief=context.user_brief)

        iteration = self._append(context, prompt, output, timing)
        tree = self._trees[session_id]
        tree.alternatives.setdefault(base_iteration_id, []).append(iteration)
        return iteration

    def add_feedback(self, session_id: str, iteration_id: str, feedback: UserFeedback) -> Optional[Iteration]:
        """Attach (or overwrite) feedback. Unknown ids return None."""
        iteration = self.get_iteration(session_id, iteration_id)
        if iteration is None:
            logger.debug(f"Feedback target {iteration_id} not found in session {session_id}")
            return None

        iteration.feedback = feedback
        iteration.timing.user_response_time = self._clock()

        metrics = self._metrics.get(iteration.id)
        if metrics is not None:
            metrics.user_response_time = iteration.timing.user_response_time - iteration.timing.response_time
            metrics.user_satisfaction = satisfaction_score(feedback, self._satisfaction_heur)
            metrics.quality_score = metrics.user_satisfaction
        return iteration

    def get_history(self, session_id: str) -> List[Iteration]:
        """Snapshot of the session's iterations in creation order."""
        return list(self._history.get(session_id, []))

    def get_latest(self, session_id: str) -> Optional[Iteration]:
        history = self._history.get(session_id)
        return history[-1] if history else None

    def get_iteration(self, session_id: str, iteration_id: str) -> Optional[Iteration]:
        for iteration in self._history.get(session_id, []):
            if iteration.id == iteration_id:
                return iteration
        return None

    def get_version_tree(self, session_id: str) -> Optional[VersionTree]:
        return self._trees.get(session_id)

    def get_alternatives(self, session_id: str, iteration_id: str) -> List[Iteration]:
        tree = self._trees.get(session_id)
        if tree is None:
            return []
        return list(tree.alternatives.get(iteration_id, []))

    def get_iteration_metrics(self, iteration_id: str) -> Optional[IterationMetrics]:
        return self._metrics.get(iteration_id)

    def get_session_metrics(self, session_id: str) -> List[IterationMetrics]:
        return [self._metrics[it.id] for it in self._history.get(session_id, []) if it.id in self._metrics]

    def get_iteration_stats(self, session_id: str) -> Dict[str, float]:
        metrics = self.get_session_metrics(session_id)
        if not metrics:
            return {
                "totalIterations": 0,
                "averageGenerationTime": 0.0,
                "averageUserResponseTime": 0.0,
                "improvementTrend": 0.0,
                "satisfactionTrend": 0.0,
            }

        response_times = [m.user_response_time for m in metrics if m.user_response_time is not None]
        satisfactions = [m.user_satisfaction for m in metrics if m.user_satisfaction is not None]
        trend = half_split_trend(satisfactions)
        return {
            "totalIterations": len(metrics),
            "averageGenerationTime": sum(m.generation_time for m in metrics) / len(metrics),
            "averageUserResponseTime": sum(response_times) / len(response_times) if response_times else 0.0,
            "improvementTrend": trend,
            "satisfactionTrend": trend,
        }

    def session_ids(self) -> List[str]:
        return list(self._history.keys())

    def clear_session(self, session_id: str) -> List[str]:
        """Drop history, tree and metrics for a session; returns the evicted iteration ids."""
        history = self._history.pop(session_id, [])
        self._trees.pop(session_id, None)
        evicted = [it.id for it in history]
        for iid in evicted:
            self._metrics.pop(iid, None)
        return evicted

    def _append(self, context: IterationContext, prompt: str, output: str,
                timing: IterationTiming) -> Iteration:
        if timing.response_time < timing.request_time:
            raise ValueError(
                f"response_time ({timing.response_time}) precedes request_time ({timing.request_time})"
            )

        history = self._history.setdefault(context.session_id, [])
        iteration = Iteration(
            id=str(uuid.uuid4()),
            session_id=context.session_id,
            attempt_number=len(history) + 1,
            prompt=prompt,
            output=output,
            timing=IterationTiming(timing.request_time, timing.response_time, timing.user_response_time),
            content_type=context.content_type,
        )
        history.append(iteration)

        if context.session_id not in self._trees:
            self._trees[context.session_id] = VersionTree(root_iteration=iteration)

        self._metrics[iteration.id] = IterationMetrics(
            iteration_id=iteration.id,
            attempt_number=iteration.attempt_number,
            generation_time=timing.latency,
            content_length=len(output),
            prompt_tokens=estimate_tokens(prompt),
            response_tokens=estimate_tokens(output),
        )
        return iteration

    def _extend_main_path(self, iteration: Iteration) -> None:
        self._trees[iteration.session_id].main_path.append(iteration.id)
