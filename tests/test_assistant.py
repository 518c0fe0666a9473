"""
Tests for the assistant layer and its fallbacks.
"""

import json

import pytest

from sputnik.assistant import NeuroAssistant
from sputnik.config import Config
from sputnik.engine import InferenceEngine
from sputnik.exceptions import InitializationError, NotFoundError, TransportError
from sputnik.storage import MemoryStore
from sputnik.storage.suppliers import ModelBlobSupplier

from conftest import FakeModelRuntime


class StaticSupplier(ModelBlobSupplier):
    def __init__(self, blobs):
        super().__init__()
        self.blobs = blobs

    async def fetch_model_blob(self, name: str) -> bytes:
        if name not in self.blobs:
            raise NotFoundError(name, source="static")
        return self.blobs[name]


def make_assistant(runtime=None, blobs=None, persistence=None, config=None):
    config = config or Config()
    runtime = runtime or FakeModelRuntime()
    persistence = persistence or MemoryStore()
    engine = InferenceEngine(config.engine, runtime_factory=lambda: runtime, persistence=persistence)
    supplier = StaticSupplier(blobs) if blobs is not None else None
    return NeuroAssistant(config, engine=engine, persistence=persistence, supplier=supplier), runtime


class TestStartup:
    """Startup always ends in a usable assistant."""

    @pytest.mark.asyncio
    async def test_start_with_model(self):
        assistant, runtime = make_assistant(blobs={"tiny-llama": b"weights"})

        status = await assistant.start()

        assert status["engine"]["state"] == "model_loaded"
        assert status["offline_mode"] is False
        assert runtime.model == b"weights"
        await assistant.shutdown()

    @pytest.mark.asyncio
    async def test_missing_model_keeps_engine_ready(self):
        assistant, _ = make_assistant(blobs={})

        status = await assistant.start()

        assert status["engine"]["state"] == "ready"
        await assistant.shutdown()

    @pytest.mark.asyncio
    async def test_runtime_failure_enters_offline_mode(self):
        def factory():
            raise InitializationError(reason="no module")

        engine = InferenceEngine(runtime_factory=factory)
        assistant = NeuroAssistant(engine=engine)

        status = await assistant.start()

        assert status["offline_mode"] is True
        assert status["engine"]["state"] == "uninitialized"
        reply = await assistant.send_message("Привет")
        assert reply.from_model is False
        await assistant.shutdown()


class TestMessaging:
    """Replies, fallbacks and history."""

    @pytest.mark.asyncio
    async def test_greeting_without_model_uses_canned_reply(self):
        assistant, runtime = make_assistant()
        await assistant.start()

        reply = await assistant.send_message("Привет")

        assert reply.from_model is False
        assert reply.text.startswith("Привет! 🎉 Я NeuroSputnik")
        assert "оффлайн AI помощник" in reply.text
        assert not runtime.called("generate_response")
        await assistant.shutdown()

    @pytest.mark.asyncio
    async def test_unknown_message_default_reply(self):
        assistant, _ = make_assistant()
        await assistant.start()

        reply = await assistant.send_message("Какая сегодня погода")

        assert '"Какая сегодня погода"' in reply.text
        await assistant.shutdown()

    @pytest.mark.asyncio
    async def test_blank_message_ignored(self):
        assistant, _ = make_assistant()
        assert await assistant.send_message("   ") is None
        assert assistant.history == []

    @pytest.mark.asyncio
    async def test_model_reply_is_recorded(self):
        assistant, runtime = make_assistant(blobs={"tiny-llama": b"weights"})
        await assistant.start()

        reply = await assistant.send_message("Напиши код")

        assert reply.from_model is True
        assert reply.text == "Ответ модели"
        assert "Текущий вопрос пользователя: Напиши код" in runtime.last_prompt
        assert assistant.store.conversations[0].response_text == "Ответ модели"
        assert len(assistant.history) == 2
        await assistant.shutdown()

    @pytest.mark.asyncio
    async def test_context_uses_recent_messages(self):
        assistant, runtime = make_assistant(blobs={"tiny-llama": b"weights"})
        await assistant.start()

        await assistant.send_message("первый")
        await assistant.send_message("второй")
        await assistant.send_message("третий")

        assert "user: первый" not in runtime.last_prompt
        assert "assistant: Ответ модели\nuser: второй\nassistant: Ответ модели" in runtime.last_prompt
        assert assistant.store.conversations[-1].context_text.count("\n") == 2
        await assistant.shutdown()

    @pytest.mark.asyncio
    async def test_generation_failure_falls_back(self):
        assistant, runtime = make_assistant(blobs={"tiny-llama": b"weights"})
        await assistant.start()
        runtime.fail_generation = True

        reply = await assistant.send_message("Привет")

        assert reply.from_model is False
        assert "оффлайн AI помощник" in reply.text
        assert reply.error
        assert runtime.allocations == {}
        await assistant.shutdown()

    @pytest.mark.asyncio
    async def test_history_is_capped(self):
        assistant, _ = make_assistant()
        await assistant.start()

        for i in range(15):
            await assistant.send_message(f"сообщение {i}")

        assert len(assistant.history) == 20
        assert assistant.history[-2].content == "сообщение 14"
        assert len(assistant.store.conversations) == 15
        await assistant.shutdown()


class TestTraining:
    """Training requests."""

    @pytest.mark.asyncio
    async def test_empty_corpus_does_not_train(self):
        assistant, runtime = make_assistant(blobs={"tiny-llama": b"weights"})
        await assistant.start()

        report = await assistant.start_training()

        assert report.success is False
        assert not runtime.called("train_model")
        await assistant.shutdown()

    @pytest.mark.asyncio
    async def test_no_model_does_not_train(self):
        assistant, runtime = make_assistant()
        await assistant.start()
        await assistant.send_message("Привет")

        report = await assistant.start_training()

        assert report.success is False
        assert report.examples == 1
        assert not runtime.called("train_model")
        await assistant.shutdown()

    @pytest.mark.asyncio
    async def test_training_on_corpus(self):
        assistant, runtime = make_assistant(blobs={"tiny-llama": b"weights"})
        await assistant.start()
        await assistant.send_message("Напиши код")
        assistant.record_session("memory", {"accuracy": 0.9, "speed": 50, "focusTime": 60}, outcome="win")

        report = await assistant.start_training()

        assert report.success is True
        assert report.examples == 2
        payload, epochs = runtime.trained[0]
        assert epochs == 3
        assert payload[0]["input"] == "Напиши код"
        assert payload[1]["input"] == "Игра: memory. Результат: win"
        await assistant.shutdown()

    @pytest.mark.asyncio
    async def test_training_failure_is_reported(self):
        assistant, runtime = make_assistant(blobs={"tiny-llama": b"weights"})
        await assistant.start()
        await assistant.send_message("Напиши код")
        runtime.train_status = 7

        report = await assistant.start_training(epochs=1)

        assert report.success is False
        assert report.details["code"] == 7
        await assistant.shutdown()


class TestPersistence:
    """State survives a restart through the same persistence backend."""

    @pytest.mark.asyncio
    async def test_restart_restores_corpus_and_history(self):
        persistence = MemoryStore()
        first, _ = make_assistant(persistence=persistence)
        await first.start()
        await first.send_message("Привет")
        await first.shutdown()

        second, _ = make_assistant(persistence=persistence)
        status = await second.start()

        assert status["dataset"]["conversations"] == 1
        assert [msg.content for msg in second.history][0] == "Привет"
        await second.shutdown()

    @pytest.mark.asyncio
    async def test_save_model(self):
        persistence = MemoryStore()
        assistant, _ = make_assistant(blobs={"tiny-llama": b"weights"}, persistence=persistence)
        await assistant.start()

        assert await assistant.save_model() is True
        assert await persistence.get("model:tiny-llama") == b"weights"
        await assistant.shutdown()

    @pytest.mark.asyncio
    async def test_dataset_export_import(self):
        assistant, _ = make_assistant()
        await assistant.start()
        await assistant.send_message("Привет")
        blob = assistant.export_dataset()

        other, _ = make_assistant()
        assert other.import_dataset(blob) is True
        assert len(other.store) == 1
        assert other.import_dataset(b"garbage") is False
        assert len(other.store) == 1
        await assistant.shutdown()


class FailingHistoryStore(MemoryStore):
    async def put(self, key: str, data: bytes) -> bool:
        if key == "conversation_history":
            raise TransportError("disk full", key=key)
        return await super().put(key, data)


class TestDurability:
    """History is written as the conversation goes."""

    @pytest.mark.asyncio
    async def test_history_saved_after_each_message(self):
        persistence = MemoryStore()
        assistant, _ = make_assistant(persistence=persistence)
        await assistant.start()

        await assistant.send_message("Привет")

        saved = json.loads((await persistence.get("conversation_history")).decode("utf-8"))
        assert [entry["role"] for entry in saved] == ["user", "assistant"]
        assert saved[0]["content"] == "Привет"

    @pytest.mark.asyncio
    async def test_history_write_failure_does_not_break_chat(self):
        assistant, _ = make_assistant(persistence=FailingHistoryStore())
        await assistant.start()

        reply = await assistant.send_message("Привет")

        assert reply is not None
        assert len(assistant.history) == 2
        await assistant.shutdown()

    @pytest.mark.asyncio
    async def test_reply_after_shutdown_falls_back(self):
        assistant, runtime = make_assistant(blobs={"tiny-llama": b"weights"})
        await assistant.start()
        await assistant.shutdown()

        reply = await assistant.send_message("Привет")

        assert reply.from_model is False
        assert "оффлайн AI помощник" in reply.text
        assert not runtime.called("generate_response")


class TestEpochs:
    @pytest.mark.asyncio
    async def test_explicit_zero_epochs_is_passed_through(self):
        assistant, runtime = make_assistant(blobs={"tiny-llama": b"weights"})
        await assistant.start()
        await assistant.send_message("Напиши код")

        report = await assistant.start_training(epochs=0)

        assert report.epochs == 0
        assert runtime.trained[0][1] == 0
        await assistant.shutdown()
