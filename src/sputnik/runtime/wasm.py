"""
NeuroSputnik WebAssembly Runtime
Instantiates the model runtime module with wasmtime.

The module imports ``env.memory`` and ``env.abort`` and exports the
allocator and model entry points used by the engine.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging

import wasmtime

from sputnik.exceptions import InitializationError, RuntimeTrapError
from sputnik.runtime.base import BaseRuntime

WASM_PAGE_SIZE = 64 * 1024


class WasmRuntime(BaseRuntime):
    """
    wasmtime-backed runtime instance.

    If the module exports its own ``memory`` that one is used; otherwise the
    imported ``env.memory`` is.
    """

    def __init__(self, module_bytes: Union[bytes, bytearray], initial_pages: int = 256):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._aborted = False

        try:
            self._engine = wasmtime.Engine()
            self._store = wasmtime.Store(self._engine)
            module = wasmtime.Module(self._engine, bytes(module_bytes))

            memory = wasmtime.Memory(
                self._store,
                wasmtime.MemoryType(wasmtime.Limits(initial_pages, None)),
            )

            linker = wasmtime.Linker(self._engine)
            linker.define(self._store, "env", "memory", memory)
            linker.define_func("env", "abort", wasmtime.FuncType([], []), self._on_abort)

            self._instance = linker.instantiate(self._store, module)
        except (wasmtime.WasmtimeError, wasmtime.Trap) as e:
            raise InitializationError("Could not instantiate WebAssembly module", reason=str(e)) from e

        instance_exports = self._instance.exports(self._store)
        self._exports: Dict[str, Any] = {
            export.name: instance_exports[export.name] for export in module.exports
        }

        exported_memory = self._exports.get("memory")
        self._memory = exported_memory if isinstance(exported_memory, wasmtime.Memory) else memory

        self.logger.info(
            f"WebAssembly runtime ready ({len(self._exports)} exports, "
            f"{self.memory_size // WASM_PAGE_SIZE} pages)"
        )

    @classmethod
    def from_file(cls, path: str, initial_pages: int = 256) -> "WasmRuntime":
        """Instantiate from a ``.wasm`` file on disk."""
        wasm_path = Path(path)
        try:
            module_bytes = wasm_path.read_bytes()
        except OSError as e:
            raise InitializationError("Could not read WebAssembly module", reason=str(e)) from e
        return cls(module_bytes, initial_pages=initial_pages)

    def _on_abort(self) -> None:
        self._aborted = True
        self.logger.error("WASM abort")

    def has_export(self, name: str) -> bool:
        return isinstance(self._exports.get(name), wasmtime.Func)

    def invoke(self, name: str, *args: Any) -> Any:
        func: Optional[wasmtime.Func] = self._exports.get(name)
        try:
            return func(self._store, *args)
        except (wasmtime.Trap, wasmtime.WasmtimeError) as e:
            raise RuntimeTrapError(name, original_error=e) from e

    @property
    def memory_size(self) -> int:
        return self._memory.data_len(self._store)

    def read(self, offset: int, length: int) -> bytes:
        return bytes(self._memory.read(self._store, offset, offset + length))

    def write(self, offset: int, data: bytes) -> None:
        self._memory.write(self._store, data, offset)

    def close(self) -> None:
        self._exports.clear()
        self._instance = None
