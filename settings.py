from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict

from dotenv import load_dotenv

from logger import get_logger
from utils import load_heuristics, merge_heuristics

logger = get_logger(__name__)


# Every tunable number the analysis uses. config/heuristics.yaml overrides these
# section by section; components read their own section with .get(key, default).
DEFAULT_HEURISTICS: Dict[str, Dict[str, Any]] = {
    "diff": {
        "window": 3,
        "lookahead_confidence": 0.8,
        "modification_confidence": 0.7,
        "tail_confidence": 0.9,
    },
    "analyzer": {
        "key_topic_count": 5,
        "key_topic_min_length": 5,
        "complex_word_length": 6.0,
        "simple_word_length": 4.0,
        "passive_ratio_high": 0.3,
        "passive_ratio_low": 0.1,
        "advanced_ratio_high": 0.1,
        "advanced_ratio_low": 0.03,
        "long_word_length": 9,
    },
    "quality": {
        "readability_weight": 0.4,
        "sentiment_weight": 0.2,
        "structure_weight": 0.2,
        "feedback_weight": 0.2,
        "sentiment_extreme": 0.8,
        "sentiment_extreme_score": 0.5,
        "feedback_neutral": 0.5,
        "feedback_accept": 0.9,
        "feedback_reject": 0.1,
        "feedback_refine": 0.4,
        "feedback_rating_step": 0.1,
        "feedback_as_is": 1.0,
        "feedback_inspiration": 0.3,
        "structure_base": 0.5,
        "structure_step": 0.1,
        "structure_element_step": 0.05,
        "paragraph_length_min": 2,
        "paragraph_length_max": 8,
    },
    "satisfaction": {
        "neutral": 0.5,
        "accept": 0.8,
        "as_is": 1.0,
        "inspiration": 0.6,
        "reject": 0.2,
        "refine": 0.4,
        "rating_step": 0.1,
        "trend_threshold": 0.1,
        "milestone_threshold": 0.3,
        "confidence_per_feedback": 0.2,
    },
    "comparison": {
        "baseline": 0.5,
        "reject_bonus": 0.2,
        "negative_rating_bonus": 0.1,
        "length_change_ratio": 0.5,
        "length_change_bonus": 0.1,
        "latency_ratio": 0.8,
        "latency_bonus": 0.1,
        "length_change_tag_ratio": 0.2,
        "dominance_factor": 2.0,
        "keyword_min_length": 4,
        "expansion_ratio": 1.2,
        "conciseness_ratio": 0.8,
        "tone_keywords": ["tone", "formal", "casual"],
    },
    "best_iteration": {
        "accept_bonus": 0.2,
        "positive_rating_bonus": 0.1,
        "reject_penalty": 0.2,
        "negative_rating_penalty": 0.1,
        "position_bonus": 0.01,
    },
    "insights": {
        "quality_delta": 0.1,
        "acceptance_rate": 0.6,
        "consistency_min_iterations": 3,
        "tone_variety": 3,
    },
    "recommendations": {
        "high_quality": 0.7,
        "low_structure": 0.5,
        "fresh_start_after": 5,
        "fresh_start_window": 3,
        "max_actions": 3,
    },
}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw.strip() else default
    except ValueError:
        logger.warning(f"Ignoring malformed {name}={raw!r}; using {default}")
        return default


@dataclass
class Settings:
    heuristics: Dict[str, Dict[str, Any]] = field(default_factory=lambda: merge_heuristics(DEFAULT_HEURISTICS, None))
    diff_window: int = 3
    max_analysis_iterations: int = 0  # 0 = analyze the whole history

    def section(self, name: str) -> Dict[str, Any]:
        return dict(self.heuristics.get(name) or {})

    @staticmethod
    def load() -> "Settings":
        # Load .env from the repository root (where this file is located)
        root_dir = os.path.dirname(os.path.abspath(__file__))
        load_dotenv(dotenv_path=os.path.join(root_dir, '.env'))

        heuristics_path = os.getenv("HEURISTICS_PATH", "heuristics.yaml")
        try:
            overrides = load_heuristics(heuristics_path)
        except FileNotFoundError as e:
            logger.warning(f"{e}; falling back to built-in heuristics")
            overrides = None
        heuristics = merge_heuristics(DEFAULT_HEURISTICS, overrides)

        window = _env_int("DIFF_WINDOW", int(heuristics["diff"].get("window", 3)))
        if window < 1:
            logger.warning(f"DIFF_WINDOW must be >= 1, got {window}; using 3")
            window = 3
        heuristics["diff"]["window"] = window

        return Settings(
            heuristics=heuristics,
            diff_window=window,
            max_analysis_iterations=max(0, _env_int("MAX_ANALYSIS_ITERATIONS", 0)),
        )
