"""
Lexical and structural analysis of an iteration body.

Every signal here is a cheap approximation (Flesch-style readability, lexicon
sentiment, paragraph-count structure). Results are cached by iteration id;
iteration output is write-once so entries never need invalidation, only bulk
eviction when a session is cleared.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from nltk.probability import FreqDist

from domain import Iteration
from logger import get_logger
from utils import (
    clamp,
    count_headings,
    count_list_items,
    count_syllables,
    normalized_words,
    paragraphs,
    safe_ratio,
    sentence_terminators,
    sentences,
    words,
)

logger = get_logger(__name__)

POSITIVE_WORDS = frozenset({'good', 'great', 'excellent', 'amazing', 'wonderful', 'fantastic'})
NEGATIVE_WORDS = frozenset({'bad', 'terrible', 'awful', 'horrible', 'disappointing', 'poor'})
FORMAL_WORDS = frozenset({'therefore', 'furthermore', 'consequently', 'nevertheless'})
CASUAL_WORDS = frozenset({'yeah', 'gonna', 'wanna', 'stuff', 'things'})
FRIENDLY_WORDS = frozenset({'thanks', 'glad', 'happy', 'hope', 'excited', 'cheers'})
PASSIVE_AUXILIARIES = frozenset({'was', 'were', 'been', 'being'})
ADVANCED_WORDS = frozenset({'consequently', 'nevertheless', 'furthermore', 'comprehensive'})


@dataclass
class StyleSummary:
    tone: str           # formal | casual | professional | friendly | mixed
    complexity: str     # simple | moderate | complex
    voice: str          # active | passive | mixed
    average_sentence_length: float
    vocabulary_level: str  # basic | intermediate | advanced


@dataclass
class StructuralSummary:
    paragraph_count: int
    sentence_count: int
    average_paragraph_length: float  # sentences per paragraph
    has_introduction: bool
    has_conclusion: bool
    list_elements: int
    heading_elements: int


@dataclass
class ContentAnalysis:
    readability_score: float  # 0..100
    sentiment_score: float    # roughly -1..1
    key_topics: List[str] = field(default_factory=list)
    style: Optional[StyleSummary] = None
    structure: Optional[StructuralSummary] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "readabilityScore": round(self.readability_score, 3),
            "sentimentScore": round(self.sentiment_score, 4),
            "keyTopics": list(self.key_topics),
            "style": {
                "tone": self.style.tone,
                "complexity": self.style.complexity,
                "voice": self.style.voice,
                "averageSentenceLength": round(self.style.average_sentence_length, 2),
                "vocabularyLevel": self.style.vocabulary_level,
            },
            "structure": {
                "paragraphCount": self.structure.paragraph_count,
                "sentenceCount": self.structure.sentence_count,
                "averageParagraphLength": round(self.structure.average_paragraph_length, 2),
                "hasIntroduction": self.structure.has_introduction,
                "hasConclusion": self.structure.has_conclusion,
                "listElements": self.structure.list_elements,
                "headingElements": self.structure.heading_elements,
            },
        }


def readability_score(text: str) -> float:
    """Flesch reading ease over terminator-delimited sentences, clamped to 0..100."""
    sentence_n = sentence_terminators(text)
    tokens = words(text)
    if sentence_n == 0 or not tokens:
        return 0.0
    syllables = sum(count_syllables(w) for w in tokens)
    avg_sentence_length = len(tokens) / sentence_n
    avg_syllables = syllables / len(tokens)
    score = 206.835 - (1.015 * avg_sentence_length) - (84.6 * avg_syllables)
    return clamp(score, 0.0, 100.0)


def sentiment_score(text: str) -> float:
    tokens = normalized_words(text)
    if not tokens:
        return 0.0
    positive = sum(1 for w in tokens if w in POSITIVE_WORDS)
    negative = sum(1 for w in tokens if w in NEGATIVE_WORDS)
    if positive + negative == 0:
        return 0.0
    return (positive - negative) / len(tokens)


def key_topics(text: str, count: int = 5, min_length: int = 5) -> List[str]:
    dist = FreqDist(w for w in normalized_words(text) if len(w) >= min_length)
    return [w for w, _ in dist.most_common(count)]


def detect_tone(text: str) -> str:
    vocab = set(normalized_words(text))
    hits = {
        'formal': len(vocab & FORMAL_WORDS),
        'casual': len(vocab & CASUAL_WORDS),
        'friendly': len(vocab & FRIENDLY_WORDS),
    }
    top = max(hits.values())
    if top == 0:
        return 'professional'
    leaders = [tone for tone, n in hits.items() if n == top]
    return leaders[0] if len(leaders) == 1 else 'mixed'


class ContentAnalyzer:
    """Computes and caches `ContentAnalysis` per iteration id."""

    def __init__(self, heuristics: Optional[Dict[str, Any]] = None) -> None:
        self.heur = dict(heuristics or {})
        self._cache: Dict[str, ContentAnalysis] = {}

    def analyze(self, iteration: Iteration) -> ContentAnalysis:
        cached = self._cache.get(iteration.id)
        if cached is not None:
            return cached
        analysis = self.analyze_text(iteration.output)
        self._cache[iteration.id] = analysis
        return analysis

    def analyze_text(self, text: str) -> ContentAnalysis:
        return ContentAnalysis(
            readability_score=readability_score(text),
            sentiment_score=sentiment_score(text),
            key_topics=key_topics(
                text,
                count=int(self.heur.get('key_topic_count', 5)),
                min_length=int(self.heur.get('key_topic_min_length', 5)),
            ),
            style=self.analyze_style(text),
            structure=self.analyze_structure(text),
        )

    def analyze_style(self, text: str) -> StyleSummary:
        tokens = words(text)
        sents = sentences(text)
        return StyleSummary(
            tone=detect_tone(text),
            complexity=self._complexity(text),
            voice=self._voice(sents),
            average_sentence_length=safe_ratio(len(tokens), len(sents)),
            vocabulary_level=self._vocabulary_level(text),
        )

    def analyze_structure(self, text: str) -> StructuralSummary:
        paras = paragraphs(text)
        sents = sentences(text)
        return StructuralSummary(
            paragraph_count=len(paras),
            sentence_count=len(sents),
            average_paragraph_length=safe_ratio(len(sents), len(paras)),
            # Any paragraph opens; a second one closes.
            has_introduction=len(paras) > 0,
            has_conclusion=len(paras) > 1,
            list_elements=count_list_items(text),
            heading_elements=count_headings(text),
        )

    def evict(self, iteration_ids: Iterable[str]) -> int:
        removed = 0
        for iid in iteration_ids:
            if self._cache.pop(iid, None) is not None:
                removed += 1
        return removed

    def cached_ids(self) -> List[str]:
        return list(self._cache.keys())

    def _complexity(self, text: str) -> str:
        tokens = normalized_words(text)
        avg_len = safe_ratio(sum(len(w) for w in tokens), len(tokens))
        if avg_len > float(self.heur.get('complex_word_length', 6.0)):
            return 'complex'
        if avg_len < float(self.heur.get('simple_word_length', 4.0)):
            return 'simple'
        return 'moderate'

    def _voice(self, sents: List[str]) -> str:
        if not sents:
            return 'active'
        passive = sum(1 for s in sents if PASSIVE_AUXILIARIES & set(normalized_words(s)))
        ratio = passive / len(sents)
        if ratio > float(self.heur.get('passive_ratio_high', 0.3)):
            return 'passive'
        if ratio < float(self.heur.get('passive_ratio_low', 0.1)):
            return 'active'
        return 'mixed'

    def _vocabulary_level(self, text: str) -> str:
        tokens = normalized_words(text)
        long_len = int(self.heur.get('long_word_length', 9))
        advanced = sum(1 for w in tokens if w in ADVANCED_WORDS or len(w) >= long_len)
        ratio = safe_ratio(advanced, len(tokens))
        if ratio > float(self.heur.get('advanced_ratio_high', 0.1)):
            return 'advanced'
        if ratio < float(self.heur.get('advanced_ratio_low', 0.03)):
            return 'basic'
        return 'intermediate'
