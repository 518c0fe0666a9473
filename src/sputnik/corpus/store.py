"""
NeuroSputnik Corpus Store
Bounded accumulation of conversation and session records.

The serialized size of all records is kept under a ceiling (50 MiB by
default). Every insert is followed by a capacity check that drops the
oldest fraction of each collection until the corpus fits again.
"""

from dataclasses import replace
from typing import Any, Dict, List, Optional
import json
import logging

from pydantic_core import to_jsonable_python

from sputnik.config import CorpusConfig
from sputnik.corpus.schemas import (
    ConversationRecord,
    SessionRecord,
    StorageUsage,
    TrainingExample,
    clamp_weight,
)
from sputnik.corpus.snapshot import SnapshotDocument
from sputnik.storage.persistence import PersistenceBackend


def _fmt(value: float) -> str:
    return f"{value:g}"


class CorpusStore:
    """
    Insertion-ordered record collections plus user preferences.

    Records are appended in arrival order, so "oldest" always means
    "lowest index".
    """

    def __init__(self, config: Optional[CorpusConfig] = None):
        self.config = config or CorpusConfig()
        self.logger = logging.getLogger(self.__class__.__name__)

        self.conversations: List[ConversationRecord] = []
        self.sessions: List[SessionRecord] = []
        self.user_preferences: Dict[str, Any] = {}

    def __len__(self) -> int:
        return len(self.conversations) + len(self.sessions)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    # -------------------------------------------------------------------------
    # Accumulation
    # -------------------------------------------------------------------------

    def add_conversation(self, record: ConversationRecord) -> ConversationRecord:
        """Append and return the record as stored."""
        record = self._normalize_conversation(record)
        self.conversations.append(record)
        self.check_capacity()
        return record

    def add_session(self, record: SessionRecord) -> SessionRecord:
        record = self._normalize_session(record)
        self.sessions.append(record)
        self.check_capacity()
        return record

    @staticmethod
    def _normalize_conversation(record: ConversationRecord) -> ConversationRecord:
        return replace(record, weight=clamp_weight(record.weight))

    @staticmethod
    def _normalize_session(record: SessionRecord) -> SessionRecord:
        """Clamp the weight and reduce ``decisions`` to JSON-safe data."""
        return replace(
            record,
            weight=clamp_weight(record.weight),
            decisions=to_jsonable_python(record.decisions, fallback=str),
        )

    def update_preferences(self, **preferences: Any) -> None:
        self.user_preferences.update(to_jsonable_python(preferences, fallback=str))

    def clear(self) -> None:
        self.conversations = []
        self.sessions = []
        self.user_preferences = {}

    # -------------------------------------------------------------------------
    # Capacity
    # -------------------------------------------------------------------------

    def estimated_size(self) -> int:
        """UTF-8 byte length of all records serialized as JSON."""
        data = json.dumps(
            {
                "conversations": [record.to_dict() for record in self.conversations],
                "sessions": [record.to_dict() for record in self.sessions],
            },
            ensure_ascii=False,
            default=str,
        )
        return len(data.encode("utf-8"))

    def check_capacity(self) -> int:
        """
        Evict until the corpus fits under ``max_storage_bytes``.

        Each pass drops the oldest ``eviction_fraction`` of both collections
        with the keep-count rounded down, and at least one record of each
        non-empty collection.

        Returns:
            Number of records evicted
        """
        limit = self.config.max_storage_bytes
        evicted = 0
        while self.estimated_size() > limit and not self.is_empty:
            evicted += self._evict_oldest()

        if evicted:
            self.logger.info(f"🧹 Evicted {evicted} old records to stay under {limit} bytes")
        return evicted

    def _keep_count(self, size: int) -> int:
        # Every pass drops at least one record from a non-empty collection.
        keep = int(size * (1.0 - self.config.eviction_fraction) + 1e-9)
        return max(0, min(keep, size - 1))

    def _evict_oldest(self) -> int:
        before = len(self)
        keep_conversations = self._keep_count(len(self.conversations))
        keep_sessions = self._keep_count(len(self.sessions))

        self.conversations = self.conversations[len(self.conversations) - keep_conversations:]
        self.sessions = self.sessions[len(self.sessions) - keep_sessions:]
        return before - len(self)

    def usage(self) -> StorageUsage:
        return StorageUsage(
            used_bytes=self.estimated_size(),
            limit_bytes=self.config.max_storage_bytes,
            conversations=len(self.conversations),
            sessions=len(self.sessions),
        )

    # -------------------------------------------------------------------------
    # Training batch
    # -------------------------------------------------------------------------

    def prepare_training_batch(self) -> List[TrainingExample]:
        """
        Conversations first, then sessions, each in insertion order.

        An empty store gives an empty list; callers must not train on it.
        """
        examples = [
            TrainingExample(input=record.user_text, output=record.response_text, weight=record.weight)
            for record in self.conversations
        ]
        examples.extend(
            TrainingExample(
                input=self.session_summary(record),
                output=self.session_narrative(record),
                weight=record.weight,
            )
            for record in self.sessions
        )
        return examples

    @staticmethod
    def session_summary(record: SessionRecord) -> str:
        return f"Игра: {record.session_kind}. Результат: {record.outcome}"

    @staticmethod
    def session_narrative(record: SessionRecord) -> str:
        metrics = record.learning_metrics
        return (
            f'На основе игры "{record.session_kind}" я улучшил: '
            f"точность {_fmt(metrics.accuracy)}%, "
            f"скорость {_fmt(metrics.speed)}%, "
            f"концентрация {_fmt(metrics.attention_span)}%"
        )

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def export_snapshot(self) -> bytes:
        """Serialize records, preferences and metadata as JSON bytes."""
        document = SnapshotDocument.build(
            self.conversations,
            self.sessions,
            self.user_preferences,
            version=self.config.snapshot_version,
        )
        return document.encode()

    def import_snapshot(self, blob: bytes) -> bool:
        """
        Replace all collections with the snapshot's contents.

        Raises:
            MalformedSnapshotError: the store is left unchanged
        """
        document = SnapshotDocument.decode(blob)

        self.conversations = [self._normalize_conversation(record) for record in document.conversations]
        self.sessions = [self._normalize_session(record) for record in document.sessions]
        self.user_preferences = dict(document.user_preferences)

        self.logger.info(
            f"📥 Imported snapshot: {len(self.conversations)} conversations, "
            f"{len(self.sessions)} sessions"
        )
        self.check_capacity()
        return True

    async def save(self, persistence: PersistenceBackend) -> bool:
        return await persistence.put(self.config.snapshot_key, self.export_snapshot())

    async def load(self, persistence: PersistenceBackend) -> bool:
        """Restore from persistence; False when nothing was saved yet."""
        blob = await persistence.get(self.config.snapshot_key)
        if blob is None:
            return False
        return self.import_snapshot(blob)
