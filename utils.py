# utils.py - heuristics loading and the small text primitives shared by the
# diff engine, the content analyzer and the comparator.
#
# Tokenization goes through nltk's regexp tokenizers only; none of them need
# downloaded corpora, so the analysis stays usable offline.

from __future__ import annotations

import os
import re
from typing import Any, Dict, List, Mapping

import yaml
from nltk.tokenize import BlanklineTokenizer, RegexpTokenizer, WhitespaceTokenizer

from logger import get_logger

logger = get_logger(__name__)

_WHITESPACE = WhitespaceTokenizer()
_PARAGRAPHS = BlanklineTokenizer()
_SENTENCE_GAPS = RegexpTokenizer(r"[.!?]+", gaps=True)
_SENTENCE_ENDS = RegexpTokenizer(r"[.!?]+")
_WORD_CHARS = re.compile(r"[^\w\s]")
_LIST_ITEM = re.compile(r"^\s*[-*•]\s", re.MULTILINE)
_HEADING = re.compile(r"^#+\s", re.MULTILINE)

# ----------------
# Heuristics YAML
# ----------------

def load_heuristics(path: str = None) -> dict:
    """Load heuristics YAML. Resolves relative to config/ if not found in CWD.

    Search order:
      1) Given absolute path (as-is)
      2) Relative path from current working directory
      3) Relative path from the repository config/ directory
    """
    if path is None:
        path = "heuristics.yaml"

    candidates = []
    if os.path.isabs(path):
        candidates.append(path)
    else:
        candidates.append(os.path.abspath(path))
        root_dir = os.path.dirname(os.path.abspath(__file__))
        candidates.append(os.path.join(root_dir, 'config', path))

    for p in candidates:
        if os.path.exists(p):
            with open(p, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
    raise FileNotFoundError(f"Heuristics YAML not found. Tried: {candidates}")


def merge_heuristics(defaults: Mapping[str, Any], overrides: Mapping[str, Any] | None) -> Dict[str, Any]:
    """Overlay `overrides` onto `defaults` one section deep.

    Unknown sections are kept so experiments can ship extra knobs without
    code changes.
    """
    merged: Dict[str, Any] = {k: dict(v) if isinstance(v, Mapping) else v for k, v in defaults.items()}
    for section, values in (overrides or {}).items():
        if isinstance(values, Mapping) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged

# -------------
# Text helpers
# -------------

def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def safe_ratio(numerator: float, denominator: float) -> float:
    """Division that yields 0.0 instead of ZeroDivisionError/NaN."""
    if not denominator:
        return 0.0
    return numerator / denominator


def words(text: str) -> List[str]:
    """Whitespace tokens, exactly as the diff engine sees them."""
    return _WHITESPACE.tokenize(text or "")


def normalized_words(text: str) -> List[str]:
    """Lowercase whitespace tokens with punctuation stripped; empties dropped."""
    out = []
    for token in words(_WORD_CHARS.sub("", (text or "").lower())):
        if token:
            out.append(token)
    return out


def sentences(text: str) -> List[str]:
    """Non-blank segments between runs of sentence terminators."""
    return [s for s in _SENTENCE_GAPS.tokenize(text or "") if s.strip()]


def sentence_terminators(text: str) -> int:
    """Number of terminator runs ('...' counts once)."""
    return len(_SENTENCE_ENDS.tokenize(text or ""))


def paragraphs(text: str) -> List[str]:
    """Blank-line separated blocks; an empty body has no paragraphs."""
    return [p for p in _PARAGRAPHS.tokenize(text or "") if p.strip()]


def count_list_items(text: str) -> int:
    return len(_LIST_ITEM.findall(text or ""))


def count_headings(text: str) -> int:
    return len(_HEADING.findall(text or ""))


def count_syllables(word: str) -> int:
    w = re.sub(r"[^a-z]", "", word.lower())
    if not w:
        return 0
    w = re.sub(r"e$", "", w)
    groups = re.findall(r"[aeiouy]+", w)
    return max(1, len(groups))


def estimate_tokens(text: str) -> int:
    # heuristic ~4 chars/token
    return (len(text or "") + 3) // 4
