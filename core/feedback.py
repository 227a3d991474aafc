"""
Feedback-derived scores.

Two separate mappings:
  - feedback_score: the 20% component of the quality score, also used for the
    session satisfaction trend.
  - satisfaction_score: the per-iteration user satisfaction recorded in
    iteration metrics when feedback is attached.
"""

from typing import Any, Dict, List, Optional

from domain import AcceptanceLevel, FeedbackType, UserFeedback
from utils import clamp


def feedback_score(feedback: Optional[UserFeedback], heur: Optional[Dict[str, Any]] = None) -> float:
    heur = heur or {}
    neutral = float(heur.get("feedback_neutral", 0.5))
    if feedback is None:
        return neutral

    score = neutral
    if feedback.type is FeedbackType.ACCEPT:
        score = float(heur.get("feedback_accept", 0.9))
    elif feedback.type is FeedbackType.REJECT:
        score = float(heur.get("feedback_reject", 0.1))
    elif feedback.type is FeedbackType.REFINE:
        score = float(heur.get("feedback_refine", 0.4))

    step = float(heur.get("feedback_rating_step", 0.1))
    if feedback.rating == 1:
        score += step
    elif feedback.rating == -1:
        score -= step

    # Acceptance granularity overrides everything above
    if feedback.acceptance_level is AcceptanceLevel.AS_IS:
        score = float(heur.get("feedback_as_is", 1.0))
    elif feedback.acceptance_level is AcceptanceLevel.INSPIRATION:
        score = float(heur.get("feedback_inspiration", 0.3))

    return clamp(score)


def satisfaction_score(feedback: UserFeedback, heur: Optional[Dict[str, Any]] = None) -> float:
    heur = heur or {}
    score = float(heur.get("neutral", 0.5))

    if feedback.type is FeedbackType.ACCEPT:
        score = float(heur.get("accept", 0.8))
        if feedback.acceptance_level is AcceptanceLevel.AS_IS:
            score = float(heur.get("as_is", 1.0))
        elif feedback.acceptance_level is AcceptanceLevel.INSPIRATION:
            score = float(heur.get("inspiration", 0.6))
    elif feedback.type is FeedbackType.REJECT:
        score = float(heur.get("reject", 0.2))
    elif feedback.type is FeedbackType.REFINE:
        score = float(heur.get("refine", 0.4))

    step = float(heur.get("rating_step", 0.1))
    if feedback.rating == 1:
        score += step
    elif feedback.rating == -1:
        score -= step

    return clamp(score)


def refinement_keywords(feedback: Optional[UserFeedback], min_length: int = 4) -> List[str]:
    """Lowercased words of the refinement request at least `min_length` long."""
    if feedback is None or not feedback.refinement_request:
        return []
    return [w for w in feedback.refinement_request.lower().split() if len(w) >= min_length]


def half_split_trend(scores: List[float]) -> float:
    """Second-half average minus first-half average; 0.0 with fewer than two scores."""
    if len(scores) < 2:
        return 0.0
    mid = len(scores) // 2
    first, second = scores[:mid], scores[mid:]
    return sum(second) / len(second) - sum(first) / len(first)
