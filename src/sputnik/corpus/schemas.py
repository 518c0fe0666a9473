"""
NeuroSputnik Corpus Schemas
Records accumulated for on-device training and the examples derived
from them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import numpy as np

MIN_WEIGHT = 0.0
MAX_WEIGHT = 2.0


def clamp_weight(weight: float) -> float:
    """Clamp a training weight into [MIN_WEIGHT, MAX_WEIGHT]."""
    return float(np.clip(weight, MIN_WEIGHT, MAX_WEIGHT))


class Topic(str, Enum):
    """Conversation topic. Declaration order is matching order."""
    PROGRAMMING = "programming"
    SCIENCE = "science"
    LEARNING = "learning"
    CREATIVE = "creative"
    TECHNICAL = "technical"
    GENERAL = "general"


class Sentiment(str, Enum):
    """Coarse tone of a user message."""
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


@dataclass(frozen=True)
class ConversationRecord:
    """
    One user/assistant exchange.

    Attributes:
        timestamp: Unix time the exchange was recorded
        user_text: What the user said
        response_text: What the assistant answered
        context_text: Recent history the answer was generated with
        topic: Keyword-derived topic
        sentiment: Keyword-derived tone
        weight: Training importance in [0, 2]
    """
    timestamp: float
    user_text: str
    response_text: str
    context_text: str = ""
    topic: Topic = Topic.GENERAL
    sentiment: Sentiment = Sentiment.NEUTRAL
    weight: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "user_text": self.user_text,
            "response_text": self.response_text,
            "context_text": self.context_text,
            "topic": self.topic.value,
            "sentiment": self.sentiment.value,
            "weight": self.weight,
        }


@dataclass(frozen=True)
class Performance:
    """Raw figures reported by an interactive session."""
    accuracy: float = 0.0
    speed: float = 0.0
    consistency: float = 0.0
    focus_seconds: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Performance":
        """Build from a loose mapping; missing or empty values count as 0."""
        data = data or {}
        return cls(
            accuracy=float(data.get("accuracy") or 0),
            speed=float(data.get("speed") or 0),
            consistency=float(data.get("consistency") or 0),
            focus_seconds=float(data.get("focus_seconds") or data.get("focusTime") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accuracy": self.accuracy,
            "speed": self.speed,
            "consistency": self.consistency,
            "focus_seconds": self.focus_seconds,
        }


@dataclass(frozen=True)
class LearningMetrics:
    """Metrics derived from a session and the sessions before it."""
    accuracy: float = 0.0
    speed: float = 0.0
    consistency: float = 0.0
    improvement_rate: float = 0.0
    attention_span: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accuracy": self.accuracy,
            "speed": self.speed,
            "consistency": self.consistency,
            "improvement_rate": self.improvement_rate,
            "attention_span": self.attention_span,
        }


@dataclass(frozen=True)
class SessionRecord:
    """Outcome of one interactive session (game, quiz, drill)."""
    timestamp: float
    session_kind: str
    performance: Performance = field(default_factory=Performance)
    decisions: Any = None
    outcome: str = ""
    learning_metrics: LearningMetrics = field(default_factory=LearningMetrics)
    weight: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "session_kind": self.session_kind,
            "performance": self.performance.to_dict(),
            "decisions": self.decisions,
            "outcome": self.outcome,
            "learning_metrics": self.learning_metrics.to_dict(),
            "weight": self.weight,
        }


@dataclass(frozen=True)
class TrainingExample:
    """Input/output pair handed to the runtime's training export."""
    input: str
    output: str
    weight: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {"input": self.input, "output": self.output, "weight": self.weight}


@dataclass(frozen=True)
class StorageUsage:
    """Corpus footprint for display."""
    used_bytes: int
    limit_bytes: int
    conversations: int
    sessions: int

    @property
    def percent(self) -> int:
        return round(self.used_bytes / self.limit_bytes * 100) if self.limit_bytes else 0

    @property
    def used_mib(self) -> float:
        return self.used_bytes / (1024 * 1024)
