"""
Pairwise comparison of two iterations (previous -> current).

Combines the diff strategy with feedback and timing signals into an
improvement score, a set of change-type tags and a feedback-impact breakdown.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from core.diff_utils import (
    DiffRegion,
    DiffStrategy,
    DiffType,
    calculate_statistics,
    count_by_type,
    format_region_for_api,
    format_statistics_for_api,
)
from core.feedback import refinement_keywords
from domain import FeedbackType, Iteration
from utils import clamp, count_list_items, paragraphs, safe_ratio


class ChangeType(Enum):
    TONE_ADJUSTMENT = "tone_adjustment"
    LENGTH_CHANGE = "length_change"
    STRUCTURE_CHANGE = "structure_change"
    CONTENT_ADDITION = "content_addition"
    CONTENT_REMOVAL = "content_removal"
    STYLE_REFINEMENT = "style_refinement"


@dataclass
class FeedbackImpact:
    addressed_feedback: List[str] = field(default_factory=list)
    remaining_issues: List[str] = field(default_factory=list)
    improvement_areas: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "addressedFeedback": list(self.addressed_feedback),
            "remainingIssues": list(self.remaining_issues),
            "improvementAreas": list(self.improvement_areas),
        }


@dataclass
class ComparisonResult:
    previous: Iteration
    current: Iteration
    regions: List[DiffRegion]
    improvement_score: float
    change_types: List[ChangeType]
    feedback_impact: FeedbackImpact

    def to_dict(self) -> Dict[str, Any]:
        return {
            "previousIterationId": self.previous.id,
            "currentIterationId": self.current.id,
            "contentDiff": [format_region_for_api(r) for r in self.regions],
            "statistics": format_statistics_for_api(calculate_statistics(self.regions)),
            "improvementScore": round(self.improvement_score, 4),
            "changeTypes": [c.value for c in self.change_types],
            "feedbackImpact": self.feedback_impact.to_dict(),
        }


class IterationComparator:
    def __init__(self, strategy: DiffStrategy, heuristics: Optional[Dict[str, Any]] = None) -> None:
        self.strategy = strategy
        self.heur = dict(heuristics or {})
        # Keyed by (previous id, current id); output text is write-once.
        self._diff_cache: Dict[Tuple[str, str], List[DiffRegion]] = {}

    def compare(self, previous: Iteration, current: Iteration) -> ComparisonResult:
        regions = self.content_diff(previous, current)
        return ComparisonResult(
            previous=previous,
            current=current,
            regions=regions,
            improvement_score=self.improvement_score(previous, current),
            change_types=self.change_types(previous, current, regions),
            feedback_impact=self.feedback_impact(previous, current),
        )

    def content_diff(self, previous: Iteration, current: Iteration) -> List[DiffRegion]:
        key = (previous.id, current.id)
        regions = self._diff_cache.get(key)
        if regions is None:
            regions = self.strategy.diff(previous.output, current.output)
            self._diff_cache[key] = regions
        return list(regions)

    def improvement_score(self, previous: Iteration, current: Iteration) -> float:
        h = self.heur
        score = float(h.get("baseline", 0.5))

        fb = previous.feedback
        if fb is not None:
            if fb.type is FeedbackType.REJECT:
                score += float(h.get("reject_bonus", 0.2))
            if fb.rating == -1:
                score += float(h.get("negative_rating_bonus", 0.1))

        if self._length_ratio(previous, current) > float(h.get("length_change_ratio", 0.5)):
            score += float(h.get("length_change_bonus", 0.1))

        prev_latency = previous.timing.latency
        if current.timing.latency < prev_latency * float(h.get("latency_ratio", 0.8)):
            score += float(h.get("latency_bonus", 0.1))

        return clamp(score)

    def change_types(self, previous: Iteration, current: Iteration,
                     regions: List[DiffRegion]) -> List[ChangeType]:
        h = self.heur
        found: List[ChangeType] = []

        def tag(change: ChangeType) -> None:
            if change not in found:
                found.append(change)

        if self._length_ratio(previous, current) > float(h.get("length_change_tag_ratio", 0.2)):
            tag(ChangeType.LENGTH_CHANGE)

        counts = count_by_type(regions)
        additions = counts[DiffType.ADDITION]
        deletions = counts[DiffType.DELETION]
        modifications = counts[DiffType.MODIFICATION]
        factor = float(h.get("dominance_factor", 2.0))

        if additions > deletions * factor:
            tag(ChangeType.CONTENT_ADDITION)
        if deletions > additions * factor:
            tag(ChangeType.CONTENT_REMOVAL)
        if modifications > additions + deletions:
            tag(ChangeType.STYLE_REFINEMENT)

        if (len(paragraphs(previous.output)) != len(paragraphs(current.output))
                or count_list_items(previous.output) != count_list_items(current.output)):
            tag(ChangeType.STRUCTURE_CHANGE)

        request = (previous.feedback.refinement_request or "") if previous.feedback else ""
        request = request.lower()
        if any(k in request for k in h.get("tone_keywords", ["tone", "formal", "casual"])):
            tag(ChangeType.TONE_ADJUSTMENT)

        return found

    def feedback_impact(self, previous: Iteration, current: Iteration) -> FeedbackImpact:
        h = self.heur
        impact = FeedbackImpact()
        body = current.output.lower()
        for keyword in refinement_keywords(previous.feedback, int(h.get("keyword_min_length", 4))):
            if keyword in body:
                impact.addressed_feedback.append(keyword)
            else:
                impact.remaining_issues.append(keyword)

        prev_len = len(previous.output)
        curr_len = len(current.output)
        if curr_len > prev_len * float(h.get("expansion_ratio", 1.2)):
            impact.improvement_areas.append("content_expansion")
        if curr_len < prev_len * float(h.get("conciseness_ratio", 0.8)):
            impact.improvement_areas.append("content_conciseness")
        return impact

    def evict(self, iteration_ids) -> int:
        ids = set(iteration_ids)
        stale = [key for key in self._diff_cache if key[0] in ids or key[1] in ids]
        for key in stale:
            del self._diff_cache[key]
        return len(stale)

    @staticmethod
    def _length_ratio(previous: Iteration, current: Iteration) -> float:
        # Empty previous body: no baseline to measure against, ratio falls back to 0
        return safe_ratio(abs(len(current.output) - len(previous.output)), len(previous.output))
