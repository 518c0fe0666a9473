"""
NeuroSputnik Corpus Recorder
Turns finished conversations and sessions into weighted corpus records.
"""

from typing import Any, Callable, Mapping, Optional, Union
import logging
import time

import numpy as np

from sputnik.corpus.classifiers import classify_sentiment, classify_topic
from sputnik.corpus.schemas import (
    ConversationRecord,
    LearningMetrics,
    Performance,
    Sentiment,
    SessionRecord,
    Topic,
    clamp_weight,
)
from sputnik.corpus.store import CorpusStore

LONG_MESSAGE_CHARS = 50
LONG_MESSAGE_FACTOR = 1.2
TECHNICAL_TOPIC_FACTOR = 1.5
NEGATIVE_SENTIMENT_FACTOR = 0.7
TECHNICAL_TOPICS = frozenset({Topic.PROGRAMMING, Topic.SCIENCE, Topic.TECHNICAL})

IMPROVEMENT_WINDOW = 5


def conversation_weight(user_text: str, topic: Topic, sentiment: Sentiment) -> float:
    """
    1.0, boosted for long messages and technical topics, damped for
    negative tone, clamped to [0, 2].
    """
    weight = 1.0
    if len(user_text) > LONG_MESSAGE_CHARS:
        weight *= LONG_MESSAGE_FACTOR
    if topic in TECHNICAL_TOPICS:
        weight *= TECHNICAL_TOPIC_FACTOR
    if sentiment == Sentiment.NEGATIVE:
        weight *= NEGATIVE_SENTIMENT_FACTOR
    return clamp_weight(weight)


def attention_span(focus_seconds: float) -> float:
    return min(100.0, focus_seconds / 60 * 100)


class CorpusRecorder:
    """
    Front door of the corpus.

    Classifies, scores and appends records to a ``CorpusStore``; the store
    runs its capacity check on every append.
    """

    def __init__(self, store: CorpusStore, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    def record_conversation(self, user_text: str, response_text: str,
                            context_text: str = "") -> ConversationRecord:
        """Tag and store one exchange."""
        topic = classify_topic(user_text)
        sentiment = classify_sentiment(user_text)

        record = ConversationRecord(
            timestamp=self.clock(),
            user_text=user_text,
            response_text=response_text,
            context_text=context_text or "",
            topic=topic,
            sentiment=sentiment,
            weight=conversation_weight(user_text, topic, sentiment),
        )
        record = self.store.add_conversation(record)
        self.logger.debug(f"💬 Recorded conversation ({topic.value}, {sentiment.value}, w={record.weight:.2f})")
        return record

    def record_session(self, session_kind: str,
                       performance: Union[Performance, Mapping[str, Any], None],
                       decisions: Any = None, outcome: str = "") -> SessionRecord:
        """Derive learning metrics for a finished session and store it."""
        if not isinstance(performance, Performance):
            performance = Performance.from_dict(performance)

        metrics = LearningMetrics(
            accuracy=performance.accuracy,
            speed=performance.speed,
            consistency=performance.consistency,
            improvement_rate=self.improvement_rate(),
            attention_span=attention_span(performance.focus_seconds),
        )
        record = SessionRecord(
            timestamp=self.clock(),
            session_kind=session_kind,
            performance=performance,
            decisions=decisions,
            outcome=outcome,
            learning_metrics=metrics,
            weight=clamp_weight(metrics.accuracy),
        )
        record = self.store.add_session(record)
        self.logger.debug(f"🎮 Recorded session: {session_kind}")
        return record

    def improvement_rate(self, window: Optional[int] = None) -> float:
        """
        Accuracy slope across the most recent stored sessions: (last - first)
        divided by the number of steps between them, 0 with fewer than two.
        """
        recent = self.store.sessions[-(window or IMPROVEMENT_WINDOW):]
        if len(recent) < 2:
            return 0.0
        accuracies = np.array([record.learning_metrics.accuracy for record in recent], dtype=float)
        return float((accuracies[-1] - accuracies[0]) / (len(accuracies) - 1))
