"""NeuroSputnik Engine Module - embedded inference over the foreign runtime."""

from sputnik.engine.schemas import EngineState, GenerationOptions, MemoryUsage, ModelDescriptor
from sputnik.engine.inference import InferenceEngine

__all__ = [
    "EngineState",
    "GenerationOptions",
    "MemoryUsage",
    "ModelDescriptor",
    "InferenceEngine",
]
