"""
NeuroSputnik Assistant
Application layer between a UI driver and the core.

Feeds user text and session outcomes into the corpus, asks the engine for
answers, and degrades to canned responses whenever the engine cannot
help. Nothing raised by the engine reaches the end user from here.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union
import json
import logging

from sputnik.config import Config
from sputnik.corpus.recorder import CorpusRecorder
from sputnik.corpus.schemas import Performance, SessionRecord
from sputnik.corpus.store import CorpusStore
from sputnik.engine.inference import InferenceEngine
from sputnik.engine.schemas import GenerationOptions, MemoryUsage
from sputnik.exceptions import (
    CollaboratorError,
    EngineError,
    ForeignRuntimeError,
    InitializationError,
    MalformedSnapshotError,
    SputnikError,
)
from sputnik.responses import build_prompt, smart_response
from sputnik.storage.persistence import MemoryStore, PersistenceBackend
from sputnik.storage.suppliers import ModelBlobSupplier


@dataclass
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatReply:
    """Answer shown to the user, and whether the model produced it."""
    text: str
    from_model: bool
    error: Optional[str] = None


@dataclass
class TrainingReport:
    success: bool
    examples: int = 0
    epochs: int = 0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


class NeuroAssistant:
    """
    Owns one engine and one corpus; nothing here is process-global, so
    several assistants can coexist (e.g. in tests).
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        engine: Optional[InferenceEngine] = None,
        store: Optional[CorpusStore] = None,
        persistence: Optional[PersistenceBackend] = None,
        supplier: Optional[ModelBlobSupplier] = None,
    ):
        self.config = config or Config()
        self.logger = logging.getLogger(self.__class__.__name__)

        self.persistence = persistence or MemoryStore()
        self.supplier = supplier
        self.engine = engine or InferenceEngine(self.config.engine, persistence=self.persistence)
        self.store = store or CorpusStore(self.config.corpus)
        self.recorder = CorpusRecorder(self.store)

        self.history: List[ChatMessage] = []
        self.offline_mode = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> Dict[str, Any]:
        """
        Bring the assistant up. Every step may fail independently; the
        assistant always ends up usable, at worst on canned responses.
        """
        self.logger.info("🚀 Starting NeuroSputnik...")

        try:
            await self.engine.initialize()
        except InitializationError as e:
            self.offline_mode = True
            self.logger.warning(f"⚠️ AI engine unavailable, using basic responses: {e}")

        await self._restore_history()
        await self._restore_corpus()

        if self.engine.is_initialized:
            await self.load_base_model()

        self.logger.info("✅ NeuroSputnik ready")
        return self.status()

    async def load_base_model(self, name: Optional[str] = None) -> bool:
        """Fetch and load the base model; False leaves the assistant in fallback mode."""
        name = name or self.config.engine.base_model
        if self.supplier is None:
            self.logger.warning("⚠️ No model supplier configured, working in basic mode")
            return False

        try:
            blob = await self.supplier.fetch_model_blob(name)
            await self.engine.load_model(name, blob)
        except (CollaboratorError, EngineError) as e:
            self.logger.warning(f"⚠️ Could not load model {name}, working in basic mode: {e}")
            return False

        self.logger.info(f"✅ Base model {name} loaded")
        return True

    async def shutdown(self) -> None:
        """Persist corpus and history, then release the engine."""
        try:
            await self.store.save(self.persistence)
            await self._save_history()
        except CollaboratorError as e:
            self.logger.error(f"❌ Could not persist assistant state: {e}")
        await self.engine.close()

    # -------------------------------------------------------------------------
    # Conversation
    # -------------------------------------------------------------------------

    def conversation_context(self) -> str:
        recent = self.history[-self.config.corpus.context_messages:] if self.config.corpus.context_messages else []
        return "\n".join(f"{msg.role}: {msg.content}" for msg in recent)

    async def send_message(self, message: str) -> Optional[ChatReply]:
        """
        Answer one user message and record the exchange.

        Returns None for blank input.
        """
        message = message.strip()
        if not message:
            return None

        context = self.conversation_context()
        reply = await self.generate_reply(message, context)

        self.history.append(ChatMessage("user", message))
        self.history.append(ChatMessage("assistant", reply.text))
        if len(self.history) > self.config.corpus.history_limit:
            self.history = self.history[-self.config.corpus.history_limit:]
        await self._persist_history()

        self.recorder.record_conversation(message, reply.text, context)
        return reply

    async def generate_reply(self, message: str, context: str) -> ChatReply:
        if not self.engine.is_model_loaded:
            return ChatReply(text=smart_response(message), from_model=False)

        options = GenerationOptions(
            max_tokens=self.config.engine.max_tokens,
            temperature=self.config.engine.temperature,
            top_p=self.config.engine.top_p,
        )
        try:
            text = await self.engine.generate(build_prompt(message, context), options)
        except (EngineError, ForeignRuntimeError) as e:
            self.logger.warning(f"Model did not answer, using fallback: {e}")
            return ChatReply(text=smart_response(message), from_model=False, error=str(e))

        return ChatReply(text=text, from_model=True)

    # -------------------------------------------------------------------------
    # Sessions and training
    # -------------------------------------------------------------------------

    def record_session(self, session_kind: str,
                       performance: Union[Performance, Mapping[str, Any], None],
                       decisions: Any = None, outcome: str = "") -> SessionRecord:
        return self.recorder.record_session(session_kind, performance, decisions, outcome)

    async def start_training(self, epochs: Optional[int] = None) -> TrainingReport:
        """
        Train the loaded model on the whole corpus.

        An empty corpus or a missing model is reported, not raised, and
        ``train`` is never called in those cases.
        """
        if epochs is None:
            epochs = self.config.engine.training_epochs
        batch = self.store.prepare_training_batch()

        if not batch:
            return TrainingReport(False, message="Not enough data to train yet")
        if not self.engine.is_model_loaded:
            return TrainingReport(False, examples=len(batch), message="No model loaded")

        try:
            await self.engine.train(batch, epochs)
        except (EngineError, ForeignRuntimeError) as e:
            self.logger.error(f"❌ Training failed: {e}")
            return TrainingReport(False, examples=len(batch), epochs=epochs,
                                  message="Training failed", details=e.details)

        return TrainingReport(True, examples=len(batch), epochs=epochs, message="Training completed")

    async def save_model(self, name: Optional[str] = None) -> bool:
        name = name or (self.engine.current_model.name if self.engine.current_model else None)
        if name is None:
            return False
        try:
            return await self.engine.save_model(name)
        except SputnikError as e:
            self.logger.error(f"❌ Could not save model {name}: {e}")
            return False

    # -------------------------------------------------------------------------
    # Dataset exchange
    # -------------------------------------------------------------------------

    def export_dataset(self) -> bytes:
        return self.store.export_snapshot()

    def import_dataset(self, blob: bytes) -> bool:
        """Replace the corpus; False (corpus untouched) on a malformed snapshot."""
        try:
            return self.store.import_snapshot(blob)
        except MalformedSnapshotError as e:
            self.logger.error(f"❌ Dataset import failed: {e}")
            return False

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    async def memory_usage(self) -> MemoryUsage:
        try:
            return await self.engine.get_memory_usage()
        except ForeignRuntimeError as e:
            self.logger.warning(f"Could not query runtime memory: {e}")
            return MemoryUsage()

    def status(self) -> Dict[str, Any]:
        usage = self.store.usage()
        return {
            "engine": self.engine.status(),
            "offline_mode": self.offline_mode,
            "storage": {
                "used_bytes": usage.used_bytes,
                "limit_bytes": usage.limit_bytes,
                "percent": usage.percent,
            },
            "dataset": {
                "conversations": usage.conversations,
                "sessions": usage.sessions,
                "examples": len(self.store),
            },
            "history": len(self.history),
        }

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def _persist_history(self) -> None:
        try:
            await self._save_history()
        except CollaboratorError as e:
            self.logger.warning(f"Could not save conversation history: {e}")

    async def _save_history(self) -> None:
        data = json.dumps([msg.to_dict() for msg in self.history], ensure_ascii=False)
        await self.persistence.put(self.config.corpus.history_key, data.encode("utf-8"))

    async def _restore_history(self) -> None:
        try:
            blob = await self.persistence.get(self.config.corpus.history_key)
        except CollaboratorError as e:
            self.logger.warning(f"Could not load conversation history: {e}")
            return
        if blob is None:
            return

        try:
            entries = json.loads(blob.decode("utf-8"))
            self.history = [ChatMessage(entry["role"], entry["content"]) for entry in entries]
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Discarding unreadable conversation history: {e}")
            self.history = []

    async def _restore_corpus(self) -> None:
        try:
            if await self.store.load(self.persistence):
                self.logger.info(f"📚 Restored corpus with {len(self.store)} records")
        except (CollaboratorError, MalformedSnapshotError) as e:
            self.logger.warning(f"Could not restore corpus: {e}")
