"""
NeuroSputnik Corpus Module
Bounded training corpus built from conversations and interactive sessions.
"""

from sputnik.corpus.schemas import (
    ConversationRecord,
    LearningMetrics,
    Performance,
    Sentiment,
    SessionRecord,
    StorageUsage,
    Topic,
    TrainingExample,
)
from sputnik.corpus.classifiers import classify_sentiment, classify_topic
from sputnik.corpus.snapshot import SnapshotDocument, SnapshotMetadata
from sputnik.corpus.store import CorpusStore
from sputnik.corpus.recorder import CorpusRecorder, conversation_weight

__all__ = [
    "ConversationRecord",
    "LearningMetrics",
    "Performance",
    "Sentiment",
    "SessionRecord",
    "StorageUsage",
    "Topic",
    "TrainingExample",
    "classify_sentiment",
    "classify_topic",
    "SnapshotDocument",
    "SnapshotMetadata",
    "CorpusStore",
    "CorpusRecorder",
    "conversation_weight",
]
