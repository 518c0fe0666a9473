"""
NeuroSputnik Corpus Snapshot
Validated wire shape of an exported corpus.

    {
      "conversations": [...],
      "sessions": [...],
      "userPreferences": {...},
      "metadata": {"totalExamples": N, "exportDate": "...", "version": "1.0"}
    }
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sputnik.corpus.schemas import ConversationRecord, SessionRecord
from sputnik.exceptions import MalformedSnapshotError


class SnapshotMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_examples: int = Field(0, alias="totalExamples")
    export_date: str = Field("", alias="exportDate")
    version: str = "1.0"


class SnapshotDocument(BaseModel):
    """A full corpus export. Absent collections decode as empty."""
    model_config = ConfigDict(populate_by_name=True)

    conversations: List[ConversationRecord] = Field(default_factory=list)
    sessions: List[SessionRecord] = Field(default_factory=list)
    user_preferences: Dict[str, Any] = Field(default_factory=dict, alias="userPreferences")
    metadata: SnapshotMetadata = Field(default_factory=SnapshotMetadata)

    @classmethod
    def build(cls, conversations: List[ConversationRecord], sessions: List[SessionRecord],
              user_preferences: Dict[str, Any], version: str) -> "SnapshotDocument":
        return cls(
            conversations=list(conversations),
            sessions=list(sessions),
            user_preferences=dict(user_preferences),
            metadata=SnapshotMetadata(
                total_examples=len(conversations) + len(sessions),
                export_date=datetime.now(timezone.utc).isoformat(),
                version=version,
            ),
        )

    def encode(self) -> bytes:
        return self.model_dump_json(by_alias=True, indent=2).encode("utf-8")

    @classmethod
    def decode(cls, blob: bytes) -> "SnapshotDocument":
        """
        Parse and validate a snapshot.

        Raises:
            MalformedSnapshotError: not JSON, or not the snapshot shape
        """
        try:
            return cls.model_validate_json(blob)
        except (ValidationError, UnicodeDecodeError) as e:
            raise MalformedSnapshotError(original_error=e) from e
