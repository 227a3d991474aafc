from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class FeedbackType(Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    REFINE = "refine"


class AcceptanceLevel(Enum):
    AS_IS = "as_is"
    LIGHT_EDIT = "light_edit"
    HEAVY_EDIT = "heavy_edit"
    INSPIRATION = "inspiration"


@dataclass
class UserFeedback:
    type: FeedbackType
    rating: Optional[int] = None  # +1 | -1
    refinement_request: Optional[str] = None
    quick_feedback: List[str] = field(default_factory=list)
    acceptance_level: Optional[AcceptanceLevel] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = FeedbackType(self.type)
        if isinstance(self.acceptance_level, str):
            self.acceptance_level = AcceptanceLevel(self.acceptance_level)
        if self.rating not in (None, 1, -1):
            raise ValueError(f"rating must be +1 or -1, got {self.rating!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "rating": self.rating,
            "refinementRequest": self.refinement_request,
            "quickFeedback": list(self.quick_feedback),
            "acceptanceLevel": self.acceptance_level.value if self.acceptance_level else None,
        }


@dataclass
class IterationTiming:
    """Epoch seconds. user_response_time is stamped when feedback arrives."""
    request_time: float
    response_time: float
    user_response_time: Optional[float] = None

    @property
    def latency(self) -> float:
        return self.response_time - self.request_time


@dataclass
class IterationContext:
    session_id: str
    content_type: str = "blog"  # blog | email | social
    user_brief: str = ""


# Identity and content are write-once so caches keyed by iteration id never go stale.
_WRITE_ONCE = frozenset({"id", "session_id", "attempt_number", "prompt", "output"})


@dataclass
class Iteration:
    id: str
    session_id: str
    attempt_number: int
    prompt: str
    output: str
    timing: IterationTiming
    content_type: str = "blog"
    feedback: Optional[UserFeedback] = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _WRITE_ONCE and name in self.__dict__:
            raise AttributeError(f"Iteration.{name} cannot change after creation")
        super().__setattr__(name, value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "attemptNumber": self.attempt_number,
            "prompt": self.prompt,
            "output": self.output,
            "contentType": self.content_type,
            "timing": {
                "requestTime": self.timing.request_time,
                "responseTime": self.timing.response_time,
                "userResponseTime": self.timing.user_response_time,
            },
            "feedback": self.feedback.to_dict() if self.feedback else None,
        }


@dataclass
class VersionTree:
    """Main line of attempts plus side branches explored from any iteration."""
    root_iteration: Iteration
    main_path: List[str] = field(default_factory=list)
    alternatives: Dict[str, List[Iteration]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rootIterationId": self.root_iteration.id,
            "mainPath": list(self.main_path),
            "alternatives": {
                base_id: [alt.id for alt in alts]
                for base_id, alts in self.alternatives.items()
            },
        }


@dataclass
class IterationMetrics:
    iteration_id: str
    attempt_number: int
    generation_time: float
    content_length: int
    prompt_tokens: int
    response_tokens: int
    user_response_time: Optional[float] = None
    quality_score: Optional[float] = None
    user_satisfaction: Optional[float] = None
