"""
Fixed-weight quality scoring on top of the content analyzer.

aggregate = readability/100 * w_r + sentiment_fit * w_s + structure * w_st + feedback * w_f

The five dimension scores reuse the same analysis through simpler formulas and
are diagnostic only; the aggregate is the number other components rank by.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.content_analyzer import ContentAnalysis, ContentAnalyzer, StructuralSummary
from core.feedback import feedback_score
from domain import Iteration
from utils import clamp


@dataclass
class QualityDimensions:
    clarity: float
    engagement: float
    relevance: float
    completeness: float
    style: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "clarity": round(self.clarity, 4),
            "engagement": round(self.engagement, 4),
            "relevance": round(self.relevance, 4),
            "completeness": round(self.completeness, 4),
            "style": round(self.style, 4),
        }


@dataclass
class QualityMetric:
    iteration_id: str
    attempt_number: int
    overall_score: float
    dimensions: QualityDimensions
    user_feedback_score: float
    improvement_from_previous: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iterationId": self.iteration_id,
            "attemptNumber": self.attempt_number,
            "overallScore": round(self.overall_score, 4),
            "dimensions": self.dimensions.to_dict(),
            "userFeedbackScore": round(self.user_feedback_score, 4),
            "improvementFromPrevious": round(self.improvement_from_previous, 4),
        }


class QualityScorer:
    def __init__(self, analyzer: ContentAnalyzer, heuristics: Optional[Dict[str, Any]] = None) -> None:
        self.analyzer = analyzer
        self.heur = dict(heuristics or {})

    def structural_score(self, structure: StructuralSummary) -> float:
        h = self.heur
        step = float(h.get("structure_step", 0.1))
        element_step = float(h.get("structure_element_step", 0.05))
        para_min = float(h.get("paragraph_length_min", 2))
        para_max = float(h.get("paragraph_length_max", 8))

        score = float(h.get("structure_base", 0.5))
        if structure.has_introduction:
            score += step
        if structure.has_conclusion:
            score += step
        if structure.paragraph_count > 1:
            score += step
        if para_min < structure.average_paragraph_length < para_max:
            score += step
        if structure.list_elements > 0:
            score += element_step
        if structure.heading_elements > 0:
            score += element_step
        return min(score, 1.0)

    def sentiment_fit(self, sentiment: float) -> float:
        if abs(sentiment) < float(self.heur.get("sentiment_extreme", 0.8)):
            return 1.0
        return float(self.heur.get("sentiment_extreme_score", 0.5))

    def feedback_score(self, iteration: Iteration) -> float:
        return feedback_score(iteration.feedback, self.heur)

    def quality_score(self, iteration: Iteration) -> float:
        analysis = self.analyzer.analyze(iteration)
        h = self.heur
        score = 0.0
        score += (analysis.readability_score / 100.0) * float(h.get("readability_weight", 0.4))
        score += self.sentiment_fit(analysis.sentiment_score) * float(h.get("sentiment_weight", 0.2))
        score += self.structural_score(analysis.structure) * float(h.get("structure_weight", 0.2))
        score += self.feedback_score(iteration) * float(h.get("feedback_weight", 0.2))
        return clamp(score)

    def dimensions(self, analysis: ContentAnalysis) -> QualityDimensions:
        return QualityDimensions(
            clarity=clamp(analysis.readability_score / 100.0),
            engagement=self._engagement(analysis),
            relevance=0.7 if analysis.key_topics else 0.3,
            completeness=self._completeness(analysis),
            style=self._style(analysis),
        )

    def metric(self, iteration: Iteration, previous: Optional[QualityMetric] = None) -> QualityMetric:
        analysis = self.analyzer.analyze(iteration)
        overall = self.quality_score(iteration)
        return QualityMetric(
            iteration_id=iteration.id,
            attempt_number=iteration.attempt_number,
            overall_score=overall,
            dimensions=self.dimensions(analysis),
            user_feedback_score=self.feedback_score(iteration),
            improvement_from_previous=overall - previous.overall_score if previous else 0.0,
        )

    def _engagement(self, analysis: ContentAnalysis) -> float:
        topic_richness = min(len(analysis.key_topics) / 5.0, 1.0)
        return clamp((min(abs(analysis.sentiment_score), 1.0) + topic_richness) / 2.0)

    def _completeness(self, analysis: ContentAnalysis) -> float:
        length_score = min(analysis.structure.sentence_count / 10.0, 1.0)
        return clamp((self.structural_score(analysis.structure) + length_score) / 2.0)

    def _style(self, analysis: ContentAnalysis) -> float:
        style = analysis.style
        score = 0.5
        if style.tone != 'mixed':
            score += 0.1
        if style.voice == 'active':
            score += 0.1
        if style.complexity == 'moderate':
            score += 0.1
        if 10 < style.average_sentence_length < 25:
            score += 0.1
        if style.vocabulary_level in ('intermediate', 'advanced'):
            score += 0.1
        return min(score, 1.0)
