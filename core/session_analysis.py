"""
Session-level analysis: quality progression, best iteration, insights,
satisfaction trend and ranked next-step recommendations, plus the
side-by-side comparison data a renderer consumes.

All methods work on the snapshot list they are handed; nothing here reads or
mutates the iteration store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.content_analyzer import ContentAnalyzer
from core.diff_utils import VisualDiff, format_visual_diff_for_api, sentence_visual_diff
from core.feedback import feedback_score, half_split_trend, refinement_keywords
from core.quality import QualityMetric, QualityScorer
from domain import FeedbackType, Iteration
from utils import normalized_words, paragraphs, safe_ratio


class InvalidPreconditionError(ValueError):
    """The caller handed the analysis something it cannot work with."""


PRIORITY_WEIGHT = {"high": 3, "medium": 2, "low": 1}


@dataclass
class ImprovementInsight:
    type: str
    description: str
    evidence: List[str]
    confidence: float
    actionable: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "evidence": list(self.evidence),
            "confidence": round(self.confidence, 4),
            "actionable": self.actionable,
        }


@dataclass
class SatisfactionMilestone:
    iteration_number: int
    satisfaction_level: float
    significant_change: bool = True
    change_reason: Optional[str] = None


@dataclass
class SatisfactionTrend:
    overall: str  # improving | declining | stable | unknown
    trend_score: float = 0.0
    milestones: List[SatisfactionMilestone] = field(default_factory=list)
    prediction_confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall,
            "trendScore": round(self.trend_score, 4),
            "milestones": [
                {
                    "iterationNumber": m.iteration_number,
                    "satisfactionLevel": round(m.satisfaction_level, 4),
                    "significantChange": m.significant_change,
                    "changeReason": m.change_reason,
                }
                for m in self.milestones
            ],
            "predictionConfidence": round(self.prediction_confidence, 4),
        }


@dataclass
class RecommendedAction:
    action: str
    description: str
    rationale: str
    priority: str  # high | medium | low
    estimated_impact: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "description": self.description,
            "rationale": self.rationale,
            "priority": self.priority,
            "estimatedImpact": self.estimated_impact,
        }


@dataclass
class SessionAnalysis:
    session_id: str
    iterations: List[Iteration]
    quality_progression: List[QualityMetric]
    best_iteration: Iteration
    improvement_insights: List[ImprovementInsight]
    satisfaction_trend: SatisfactionTrend
    recommended_next: List[RecommendedAction]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "iterationIds": [it.id for it in self.iterations],
            "qualityProgression": [m.to_dict() for m in self.quality_progression],
            "bestIterationId": self.best_iteration.id,
            "improvementInsights": [i.to_dict() for i in self.improvement_insights],
            "userSatisfactionTrend": self.satisfaction_trend.to_dict(),
            "recommendedNext": [a.to_dict() for a in self.recommended_next],
        }


@dataclass
class AlignedSection:
    section_id: str
    section_type: str  # introduction | body | conclusion
    versions: List[Dict[str, Any]]


@dataclass
class KeyDifference:
    type: str  # addition | removal
    description: str
    location: str
    impact: str
    significance: float


@dataclass
class ImprovementHighlight:
    area: str
    before: str
    after: str
    improvement_type: str
    user_likely_to_approve: bool


@dataclass
class SideBySideComparison:
    iterations: List[Iteration]
    aligned_sections: List[AlignedSection]
    key_differences: List[KeyDifference]
    improvement_highlights: List[ImprovementHighlight]
    visual_diff: List[VisualDiff]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iterationIds": [it.id for it in self.iterations],
            "alignedSections": [
                {"sectionId": s.section_id, "sectionType": s.section_type, "versions": s.versions}
                for s in self.aligned_sections
            ],
            "keyDifferences": [
                {
                    "type": d.type,
                    "description": d.description,
                    "location": d.location,
                    "impact": d.impact,
                    "significance": round(d.significance, 4),
                }
                for d in self.key_differences
            ],
            "improvementHighlights": [
                {
                    "area": h.area,
                    "before": h.before,
                    "after": h.after,
                    "improvementType": h.improvement_type,
                    "userLikelyToApprove": h.user_likely_to_approve,
                }
                for h in self.improvement_highlights
            ],
            "visualDiffData": [format_visual_diff_for_api(v) for v in self.visual_diff],
        }


class SessionComparisonService:
    def __init__(self, analyzer: ContentAnalyzer, scorer: QualityScorer,
                 heuristics: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self.analyzer = analyzer
        self.scorer = scorer
        heuristics = heuristics or {}
        self.best_heur = dict(heuristics.get("best_iteration") or {})
        self.insight_heur = dict(heuristics.get("insights") or {})
        self.satisfaction_heur = dict(heuristics.get("satisfaction") or {})
        self.recommendation_heur = dict(heuristics.get("recommendations") or {})
        self.quality_heur = dict(heuristics.get("quality") or {})
        self.comparison_heur = dict(heuristics.get("comparison") or {})
        # Content-only parts of side-by-side results, keyed by the iteration-id tuple
        self._comparison_cache: Dict[Tuple[str, ...], Tuple[list, list, list]] = {}

    def analyze_session_progress(self, session_id: str, iterations: Sequence[Iteration]) -> SessionAnalysis:
        iterations = list(iterations)
        if not iterations:
            raise InvalidPreconditionError(f"No iterations provided for analysis of session {session_id}")

        progression = self.quality_progression(iterations)
        trend = self.satisfaction_trend(iterations)
        return SessionAnalysis(
            session_id=session_id,
            iterations=iterations,
            quality_progression=progression,
            best_iteration=self.identify_best_iteration(iterations, progression),
            improvement_insights=self.improvement_insights(iterations, progression),
            satisfaction_trend=trend,
            recommended_next=self.recommended_actions(iterations, progression, trend),
        )

    def quality_progression(self, iterations: Sequence[Iteration]) -> List[QualityMetric]:
        metrics: List[QualityMetric] = []
        for iteration in iterations:
            metrics.append(self.scorer.metric(iteration, metrics[-1] if metrics else None))
        return metrics

    def identify_best_iteration(self, iterations: Sequence[Iteration],
                                progression: Sequence[QualityMetric]) -> Iteration:
        """Highest adjusted score; later attempts win ties via a small position bonus."""
        if not iterations:
            raise InvalidPreconditionError("Cannot pick a best iteration from an empty list")
        h = self.best_heur
        best_index, best_score = 0, None
        for index, (iteration, metric) in enumerate(zip(iterations, progression)):
            score = metric.overall_score
            fb = iteration.feedback
            if fb is not None:
                if fb.type is FeedbackType.ACCEPT:
                    score += float(h.get("accept_bonus", 0.2))
                if fb.rating == 1:
                    score += float(h.get("positive_rating_bonus", 0.1))
                if fb.type is FeedbackType.REJECT:
                    score -= float(h.get("reject_penalty", 0.2))
                if fb.rating == -1:
                    score -= float(h.get("negative_rating_penalty", 0.1))
            score += index * float(h.get("position_bonus", 0.01))

            if best_score is None or score > best_score:
                best_index, best_score = index, score
        return iterations[best_index]

    def improvement_insights(self, iterations: Sequence[Iteration],
                             progression: Sequence[QualityMetric]) -> List[ImprovementInsight]:
        h = self.insight_heur
        insights: List[ImprovementInsight] = []

        delta_threshold = float(h.get("quality_delta", 0.1))
        if len(progression) > 1:
            first = progression[0].overall_score
            last = progression[-1].overall_score
            delta = last - first
            if delta > delta_threshold:
                improved = sum(1 for m in progression if m.improvement_from_previous > 0)
                insights.append(ImprovementInsight(
                    type="quality_improvement",
                    description="Content quality has improved significantly across iterations",
                    evidence=[
                        f"Quality score increased from {first:.2f} to {last:.2f}",
                        f"{improved} iterations showed improvement",
                    ],
                    confidence=min(delta * 2, 1.0),
                    actionable=False,
                ))
            elif delta <= -delta_threshold:
                insights.append(ImprovementInsight(
                    type="quality_regression",
                    description="Content quality has declined in recent iterations",
                    evidence=[
                        f"Quality score decreased from {first:.2f} to {last:.2f}",
                        "Consider reverting to an earlier approach",
                    ],
                    confidence=min(abs(delta) * 2, 1.0),
                    actionable=True,
                ))

        feedbacks = [it.feedback for it in iterations if it.feedback is not None]
        if len(feedbacks) > 1:
            rate = sum(1 for f in feedbacks if f.type is FeedbackType.ACCEPT) / len(feedbacks)
            if rate > float(h.get("acceptance_rate", 0.6)):
                insights.append(ImprovementInsight(
                    type="user_preference_alignment",
                    description="Content is well-aligned with user preferences",
                    evidence=[f"{round(rate * 100)}% acceptance rate", "User feedback patterns show consistency"],
                    confidence=rate,
                    actionable=False,
                ))

        tones = [self.analyzer.analyze(it).style.tone for it in iterations]
        distinct = list(dict.fromkeys(tones))
        if len(distinct) == 1 and len(iterations) >= int(h.get("consistency_min_iterations", 3)):
            insights.append(ImprovementInsight(
                type="style_consistency",
                description=f"Consistent {tones[0]} tone maintained throughout iterations",
                evidence=[f"All {len(iterations)} iterations use {tones[0]} tone"],
                confidence=0.9,
                actionable=False,
            ))
        elif len(distinct) >= int(h.get("tone_variety", 3)):
            insights.append(ImprovementInsight(
                type="tone_evolution",
                description="Tone has varied significantly across iterations",
                evidence=[f"Used {len(distinct)} different tones: {', '.join(distinct)}"],
                confidence=0.8,
                actionable=True,
            ))

        return insights

    def satisfaction_trend(self, iterations: Sequence[Iteration]) -> SatisfactionTrend:
        h = self.satisfaction_heur
        scored = [
            (it.attempt_number, feedback_score(it.feedback, self.quality_heur))
            for it in iterations if it.feedback is not None
        ]
        if len(scored) < 2:
            return SatisfactionTrend(overall="unknown")

        trend_score = half_split_trend([s for _, s in scored])

        threshold = float(h.get("trend_threshold", 0.1))
        if trend_score > threshold:
            overall = "improving"
        elif trend_score < -threshold:
            overall = "declining"
        else:
            overall = "stable"

        milestone_threshold = float(h.get("milestone_threshold", 0.3))
        milestones: List[SatisfactionMilestone] = []
        for (_, prev_score), (number, score) in zip(scored, scored[1:]):
            change = score - prev_score
            if abs(change) > milestone_threshold:
                milestones.append(SatisfactionMilestone(
                    iteration_number=number,
                    satisfaction_level=score,
                    change_reason="significant_improvement" if change > 0 else "significant_decline",
                ))

        return SatisfactionTrend(
            overall=overall,
            trend_score=trend_score,
            milestones=milestones,
            prediction_confidence=min(len(scored) * float(h.get("confidence_per_feedback", 0.2)), 1.0),
        )

    def recommended_actions(self, iterations: Sequence[Iteration], progression: Sequence[QualityMetric],
                            trend: SatisfactionTrend) -> List[RecommendedAction]:
        h = self.recommendation_heur
        actions: List[RecommendedAction] = []
        latest = iterations[-1]
        latest_score = progression[-1].overall_score if progression else 0.0

        if trend.overall == "improving" and latest_score > float(h.get("high_quality", 0.7)):
            if latest.feedback is not None and latest.feedback.type is FeedbackType.ACCEPT:
                actions.append(RecommendedAction(
                    action="accept_current",
                    description="Accept the current content as it meets quality standards",
                    rationale="High quality score and positive user feedback indicate success",
                    priority="high",
                    estimated_impact=0.9,
                ))
            else:
                actions.append(RecommendedAction(
                    action="continue_current_approach",
                    description="Continue with the current content direction",
                    rationale="Quality is improving and user satisfaction is trending upward",
                    priority="medium",
                    estimated_impact=0.7,
                ))

        if trend.overall == "declining":
            actions.append(RecommendedAction(
                action="try_alternative_style",
                description="Experiment with a different writing style or approach",
                rationale="Current approach is showing declining user satisfaction",
                priority="high",
                estimated_impact=0.6,
            ))

        structure = self.analyzer.analyze(latest).structure
        if self.scorer.structural_score(structure) < float(h.get("low_structure", 0.5)):
            actions.append(RecommendedAction(
                action="focus_on_structure",
                description="Improve content organization and structure",
                rationale="Content structure analysis shows room for improvement",
                priority="medium",
                estimated_impact=0.5,
            ))

        window = int(h.get("fresh_start_window", 3))
        recent = iterations[-window:]
        if (len(iterations) >= int(h.get("fresh_start_after", 5))
                and not any(it.feedback is not None and it.feedback.type is FeedbackType.ACCEPT for it in recent)):
            actions.append(RecommendedAction(
                action="start_fresh",
                description="Start with a completely new approach",
                rationale="Multiple iterations without successful outcomes suggest need for fresh perspective",
                priority="medium",
                estimated_impact=0.4,
            ))

        actions.sort(key=lambda a: (-PRIORITY_WEIGHT[a.priority], -a.estimated_impact))
        return actions[:int(h.get("max_actions", 3))]

    def create_side_by_side(self, iterations: Sequence[Iteration]) -> SideBySideComparison:
        iterations = list(iterations)
        if not iterations:
            raise InvalidPreconditionError("No iterations provided for side-by-side comparison")

        key = tuple(it.id for it in iterations)
        cached = self._comparison_cache.get(key)
        if cached is None:
            cached = (
                self._align_sections(iterations),
                self._key_differences(iterations),
                self._visual_diff(iterations),
            )
            self._comparison_cache[key] = cached
        sections, differences, visual = cached

        return SideBySideComparison(
            iterations=iterations,
            aligned_sections=list(sections),
            key_differences=list(differences),
            # Feedback can change after caching, so highlights are always fresh
            improvement_highlights=self._improvement_highlights(iterations),
            visual_diff=list(visual),
        )

    def evict(self, iteration_ids) -> int:
        ids = set(iteration_ids)
        stale = [key for key in self._comparison_cache if ids.intersection(key)]
        for key in stale:
            del self._comparison_cache[key]
        return len(stale)

    def _align_sections(self, iterations: List[Iteration]) -> List[AlignedSection]:
        split = [paragraphs(it.output) for it in iterations]
        max_paragraphs = max((len(p) for p in split), default=0)
        sections: List[AlignedSection] = []
        for index in range(max_paragraphs):
            if index == 0:
                section_type = "introduction"
            elif index == max_paragraphs - 1:
                section_type = "conclusion"
            else:
                section_type = "body"
            versions = []
            for it, paras in zip(iterations, split):
                content = paras[index] if index < len(paras) else ""
                versions.append({
                    "iterationId": it.id,
                    "content": content,
                    "qualityScore": 0.7 if content else 0.0,
                })
            sections.append(AlignedSection(f"section_{index + 1}", section_type, versions))
        return sections

    def _key_differences(self, iterations: List[Iteration]) -> List[KeyDifference]:
        differences: List[KeyDifference] = []
        for prev, curr in zip(iterations, iterations[1:]):
            length_diff = len(curr.output) - len(prev.output)
            if abs(length_diff) > len(prev.output) * 0.2:
                differences.append(KeyDifference(
                    type="addition" if length_diff > 0 else "removal",
                    description=f"Content {'expanded' if length_diff > 0 else 'condensed'} by {abs(length_diff)} characters",
                    location="overall",
                    impact="neutral",
                    significance=min(safe_ratio(abs(length_diff), len(prev.output)) or 1.0, 1.0),
                ))

            prev_vocab = set(normalized_words(prev.output))
            curr_vocab = set(normalized_words(curr.output))
            added = curr_vocab - prev_vocab
            removed = prev_vocab - curr_vocab
            if len(added) > 5:
                differences.append(KeyDifference(
                    type="addition",
                    description=f"Added {len(added)} new terms",
                    location="vocabulary",
                    impact="positive",
                    significance=min(len(added) / 20.0, 1.0),
                ))
            if len(removed) > 5:
                differences.append(KeyDifference(
                    type="removal",
                    description=f"Removed {len(removed)} terms",
                    location="vocabulary",
                    impact="neutral",
                    significance=min(len(removed) / 20.0, 1.0),
                ))
        return differences

    def _improvement_highlights(self, iterations: List[Iteration]) -> List[ImprovementHighlight]:
        highlights: List[ImprovementHighlight] = []
        min_length = int(self.comparison_heur.get("keyword_min_length", 4))
        for prev, curr in zip(iterations, iterations[1:]):
            fb = prev.feedback
            if fb is not None and fb.type is not FeedbackType.ACCEPT:
                body = curr.output.lower()
                addressed = [k for k in refinement_keywords(fb, min_length) if k in body]
                if addressed:
                    highlights.append(ImprovementHighlight(
                        area="feedback_incorporation",
                        before="User requested changes not addressed",
                        after=f"Incorporated user feedback: {', '.join(addressed)}",
                        improvement_type="user_feedback_addressing",
                        user_likely_to_approve=True,
                    ))

            prev_paras = len(paragraphs(prev.output))
            curr_paras = len(paragraphs(curr.output))
            if prev_paras == 1 and curr_paras > 1:
                highlights.append(ImprovementHighlight(
                    area="structure",
                    before="Single paragraph format",
                    after=f"Improved structure with {curr_paras} paragraphs",
                    improvement_type="structure_enhancement",
                    user_likely_to_approve=True,
                ))
        return highlights

    @staticmethod
    def _visual_diff(iterations: List[Iteration]) -> List[VisualDiff]:
        if len(iterations) < 2:
            return []
        return sentence_visual_diff(iterations[-2].output, iterations[-1].output)
