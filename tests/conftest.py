"""
Shared fixtures: an in-process model runtime speaking the same export ABI
as the WebAssembly module.
"""

import json
import threading
from typing import Any, Dict, List, Optional, Tuple

import pytest

from sputnik.config import EngineConfig
from sputnik.engine import InferenceEngine
from sputnik.runtime.base import BaseRuntime
from sputnik.storage import MemoryStore

ALL_EXPORTS = (
    "allocate_memory",
    "free_memory",
    "load_model",
    "generate_response",
    "train_model",
    "get_used_memory",
    "get_total_memory",
    "get_model_size",
    "export_model",
)


class FakeModelRuntime(BaseRuntime):
    """
    Bump-allocating fake runtime.

    ``allocations`` holds live offsets, so tests can assert that nothing
    leaked after a call.
    """

    def __init__(self, memory_size: int = 64 * 1024, reply: str = "Ответ модели",
                 load_status: int = 0, train_status: int = 0,
                 missing_exports: Tuple[str, ...] = ()):
        self.memory = bytearray(memory_size)
        self._next = 16
        self.allocations: Dict[int, int] = {}
        self.freed: List[int] = []
        self.calls: List[Tuple[str, tuple]] = []

        self.reply = reply
        self.load_status = load_status
        self.train_status = train_status
        self.fail_generation = False
        self.used_bytes: Optional[int] = None

        self.model = b""
        self.memory_limit: Optional[int] = None
        self.last_prompt: Optional[str] = None
        self.last_options: Optional[tuple] = None
        self.trained: List[Tuple[Any, int]] = []

        # Lets a test hold a generate call in flight
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()
        self.closed = False

        self._exports = {
            name: getattr(self, f"_{name}") for name in ALL_EXPORTS if name not in missing_exports
        }

    # BaseRuntime -------------------------------------------------------------

    def has_export(self, name: str) -> bool:
        return name in self._exports

    def invoke(self, name: str, *args: Any) -> Any:
        self.calls.append((name, args))
        return self._exports[name](*args)

    @property
    def memory_size(self) -> int:
        return len(self.memory)

    def read(self, offset: int, length: int) -> bytes:
        return bytes(self.memory[offset:offset + length])

    def write(self, offset: int, data: bytes) -> None:
        self.memory[offset:offset + len(data)] = data

    def close(self) -> None:
        self.closed = True

    def called(self, name: str) -> bool:
        return any(call[0] == name for call in self.calls)

    # Exports -----------------------------------------------------------------

    def _allocate_memory(self, size: int) -> int:
        if self._next + size > len(self.memory):
            return 0
        ptr = self._next
        self._next += size
        self.allocations[ptr] = size
        return ptr

    def _free_memory(self, ptr: int) -> None:
        self.allocations.pop(ptr)
        self.freed.append(ptr)

    def _load_model(self, ptr: int, length: int, memory_limit: int) -> int:
        self.memory_limit = memory_limit
        if self.load_status == 0:
            self.model = self.read(ptr, length)
        return self.load_status

    def _generate_response(self, ptr: int, length: int, max_tokens: int,
                           temperature: float, top_p: float) -> int:
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)

        self.last_prompt = self.read(ptr, length).decode("utf-8")
        self.last_options = (max_tokens, temperature, top_p)
        if self.fail_generation:
            return 0

        data = self.reply.encode("utf-8") + b"\x00"
        out = self._allocate_memory(len(data))
        self.write(out, data)
        return out

    def _train_model(self, ptr: int, length: int, epochs: int) -> int:
        self.trained.append((json.loads(self.read(ptr, length).decode("utf-8")), epochs))
        return self.train_status

    def _get_used_memory(self) -> int:
        return self.used_bytes if self.used_bytes is not None else self._next

    def _get_total_memory(self) -> int:
        return len(self.memory)

    def _get_model_size(self) -> int:
        return len(self.model)

    def _export_model(self) -> int:
        if not self.model:
            return 0
        out = self._allocate_memory(len(self.model))
        self.write(out, self.model)
        return out


@pytest.fixture
def runtime():
    return FakeModelRuntime()


@pytest.fixture
def persistence():
    return MemoryStore()


@pytest.fixture
def engine(runtime, persistence):
    return InferenceEngine(EngineConfig(), runtime_factory=lambda: runtime, persistence=persistence)
