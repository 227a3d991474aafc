"""
Diff utilities for comparing iteration bodies and generating structured diffs.

The default strategy is a word-window heuristic: linear in the text length,
good enough to drive highlighting and change classification, and deliberately
not an optimal edit-distance alignment. Anything that consumes regions only
relies on the `DiffStrategy` contract (ordered regions with a type, position
counter, fragments and confidence).
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence
from dataclasses import dataclass
from enum import Enum

from utils import words, sentences

class DiffType(Enum):
    ADDITION = "addition"
    DELETION = "deletion"
    MODIFICATION = "modification"

class VisualDiffType(Enum):
    UNCHANGED = "unchanged"
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"

@dataclass
class DiffRegion:
    type: DiffType
    position: int
    old_text: Optional[str] = None
    new_text: Optional[str] = None
    confidence: float = 1.0

@dataclass
class DiffStatistics:
    total_regions: int
    additions: int
    deletions: int
    modifications: int
    words_added: int
    words_removed: int

@dataclass
class VisualDiff:
    type: VisualDiffType
    content: str
    start_position: int
    end_position: int
    confidence: float


class DiffStrategy(Protocol):
    def diff(self, previous: str, current: str) -> List[DiffRegion]: ...


class WordWindowDiff:
    """Two-cursor walk over whitespace tokens with a short lookahead window."""

    def __init__(self, window: int = 3, lookahead_confidence: float = 0.8,
                 modification_confidence: float = 0.7, tail_confidence: float = 0.9) -> None:
        if window < 1:
            raise ValueError(f"window must be >= 1, got {window}")
        self.window = window
        self.lookahead_confidence = lookahead_confidence
        self.modification_confidence = modification_confidence
        self.tail_confidence = tail_confidence

    @classmethod
    def from_heuristics(cls, heur: Dict[str, Any]) -> "WordWindowDiff":
        return cls(
            window=int(heur.get("window", 3)),
            lookahead_confidence=float(heur.get("lookahead_confidence", 0.8)),
            modification_confidence=float(heur.get("modification_confidence", 0.7)),
            tail_confidence=float(heur.get("tail_confidence", 0.9)),
        )

    def diff(self, previous: str, current: str) -> List[DiffRegion]:
        old_words = words(previous)
        new_words = words(current)
        return self.diff_tokens(old_words, new_words)

    def diff_tokens(self, old_words: Sequence[str], new_words: Sequence[str]) -> List[DiffRegion]:
        regions: List[DiffRegion] = []
        i = j = 0
        position = 0

        while i < len(old_words) or j < len(new_words):
            if i >= len(old_words):
                regions.append(DiffRegion(
                    type=DiffType.ADDITION,
                    position=position,
                    new_text=' '.join(new_words[j:]),
                    confidence=self.tail_confidence,
                ))
                break
            if j >= len(new_words):
                regions.append(DiffRegion(
                    type=DiffType.DELETION,
                    position=position,
                    old_text=' '.join(old_words[i:]),
                    confidence=self.tail_confidence,
                ))
                break

            if old_words[i] == new_words[j]:
                i += 1
                j += 1
                position += 1
                continue

            matched = False
            for k in range(1, self.window + 1):
                # old word shows up again a little later: the new side inserted tokens
                if j + k < len(new_words) and old_words[i] == new_words[j + k]:
                    regions.append(DiffRegion(
                        type=DiffType.ADDITION,
                        position=position,
                        new_text=' '.join(new_words[j:j + k]),
                        confidence=self.lookahead_confidence,
                    ))
                    j += k
                    matched = True
                    break
                # new word shows up later on the old side: tokens were dropped
                if i + k < len(old_words) and new_words[j] == old_words[i + k]:
                    regions.append(DiffRegion(
                        type=DiffType.DELETION,
                        position=position,
                        old_text=' '.join(old_words[i:i + k]),
                        confidence=self.lookahead_confidence,
                    ))
                    i += k
                    matched = True
                    break

            if not matched:
                regions.append(DiffRegion(
                    type=DiffType.MODIFICATION,
                    position=position,
                    old_text=old_words[i],
                    new_text=new_words[j],
                    confidence=self.modification_confidence,
                ))
                i += 1
                j += 1

            position += 1

        return regions


def count_by_type(regions: Sequence[DiffRegion]) -> Dict[DiffType, int]:
    counts = {t: 0 for t in DiffType}
    for r in regions:
        counts[r.type] += 1
    return counts


def calculate_statistics(regions: Sequence[DiffRegion]) -> DiffStatistics:
    counts = count_by_type(regions)
    return DiffStatistics(
        total_regions=len(regions),
        additions=counts[DiffType.ADDITION],
        deletions=counts[DiffType.DELETION],
        modifications=counts[DiffType.MODIFICATION],
        words_added=sum(len(words(r.new_text or "")) for r in regions),
        words_removed=sum(len(words(r.old_text or "")) for r in regions),
    )


def sentence_visual_diff(previous: str, current: str) -> List[VisualDiff]:
    """Index-aligned sentence comparison for renderers that want per-sentence spans."""
    prev_sents = [s.strip() for s in sentences(previous)]
    curr_sents = [s.strip() for s in sentences(current)]

    out: List[VisualDiff] = []
    position = 0
    for idx in range(max(len(prev_sents), len(curr_sents))):
        prev_s = prev_sents[idx] if idx < len(prev_sents) else None
        curr_s = curr_sents[idx] if idx < len(curr_sents) else None

        if prev_s == curr_s:
            kind, content, confidence = VisualDiffType.UNCHANGED, curr_s, 1.0
        elif prev_s is None:
            kind, content, confidence = VisualDiffType.ADDED, curr_s, 0.9
        elif curr_s is None:
            kind, content, confidence = VisualDiffType.REMOVED, prev_s, 0.9
        else:
            kind, content, confidence = VisualDiffType.MODIFIED, curr_s, 0.8

        out.append(VisualDiff(
            type=kind,
            content=content,
            start_position=position,
            end_position=position + len(content),
            confidence=confidence,
        ))
        position += len(content) + 1

    return out


def format_region_for_api(region: DiffRegion) -> Dict[str, Any]:
    """Convert DiffRegion to API response format."""
    return {
        "type": region.type.value,
        "position": region.position,
        "oldText": region.old_text,
        "newText": region.new_text,
        "confidence": region.confidence,
    }


def format_statistics_for_api(stats: DiffStatistics) -> Dict[str, Any]:
    """Convert DiffStatistics to API response format."""
    return {
        "totalRegions": stats.total_regions,
        "additions": stats.additions,
        "deletions": stats.deletions,
        "modifications": stats.modifications,
        "wordsAdded": stats.words_added,
        "wordsRemoved": stats.words_removed,
    }


def format_visual_diff_for_api(item: VisualDiff) -> Dict[str, Any]:
    return {
        "type": item.type.value,
        "content": item.content,
        "startPosition": item.start_position,
        "endPosition": item.end_position,
        "confidence": item.confidence,
    }
