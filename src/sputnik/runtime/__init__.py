"""NeuroSputnik Runtime Module - foreign model runtime and memory boundary."""

from sputnik.runtime.base import BaseRuntime
from sputnik.runtime.handle import ForeignRuntimeHandle, RuntimeScope
from sputnik.runtime.wasm import WasmRuntime

__all__ = [
    "BaseRuntime",
    "ForeignRuntimeHandle",
    "RuntimeScope",
    "WasmRuntime",
]
