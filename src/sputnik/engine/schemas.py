"""
NeuroSputnik Engine Schemas
State and value types exchanged with the inference engine.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict


class EngineState(Enum):
    """Lifecycle of the inference engine. Only ever advances."""
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    MODEL_LOADED = "model_loaded"


@dataclass(frozen=True)
class ModelDescriptor:
    """A model blob accepted by the runtime."""
    name: str
    size_bytes: int
    loaded: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GenerationOptions:
    """Sampling parameters passed to ``generate_response``."""
    max_tokens: int = 500
    temperature: float = 0.7
    top_p: float = 0.9


@dataclass(frozen=True)
class MemoryUsage:
    """Runtime memory summary in MiB."""
    used_mib: int = 0
    total_mib: int = 0
    percent: int = 0

    @classmethod
    def from_bytes(cls, used: int, total: int) -> "MemoryUsage":
        mib = 1024 * 1024
        return cls(
            used_mib=round(used / mib),
            total_mib=round(total / mib),
            percent=round(used / total * 100) if total else 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
