"""
NeuroSputnik - offline conversational assistant with on-device training.

Core:
- InferenceEngine: state machine over an embedded model runtime
- CorpusRecorder / CorpusStore: bounded, weighted training corpus
- NeuroAssistant: application layer with graceful fallbacks
"""

from sputnik.assistant import NeuroAssistant
from sputnik.config import Config, load_config
from sputnik.corpus import CorpusRecorder, CorpusStore
from sputnik.engine import EngineState, InferenceEngine

__all__ = [
    "NeuroAssistant",
    "Config",
    "load_config",
    "CorpusRecorder",
    "CorpusStore",
    "EngineState",
    "InferenceEngine",
]

__version__ = "1.0.0"
