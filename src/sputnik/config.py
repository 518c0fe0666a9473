"""
NeuroSputnik Configuration Module
Defines engine, corpus and storage settings for on-device operation.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, List
import json
import logging
import os

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
MIB = 1024 * 1024


class BusyPolicy(Enum):
    """What the engine does when a second foreign call arrives mid-flight."""
    QUEUE = "queue"            # Wait for the in-flight call
    FAIL_FAST = "fail_fast"    # Raise EngineBusyError


@dataclass
class EngineConfig:
    """
    Inference engine settings.
    Memory figures target mobile devices.
    """
    wasm_path: str = "resources/ollama/ollama.wasm"
    initial_memory_pages: int = 256
    memory_limit_bytes: int = 512 * MIB
    base_model: str = "tiny-llama"
    busy_policy: BusyPolicy = BusyPolicy.QUEUE

    # Generation defaults
    max_tokens: int = 500
    temperature: float = 0.7
    top_p: float = 0.9

    # Training defaults
    training_epochs: int = 3


@dataclass
class CorpusConfig:
    """Training corpus and conversation history settings."""
    max_storage_bytes: int = 50 * MIB
    eviction_fraction: float = 0.2
    snapshot_key: str = "corpus_snapshot"
    snapshot_version: str = "1.0"

    # Conversation history kept by the assistant
    history_limit: int = 20
    context_messages: int = 3
    history_key: str = "conversation_history"

    def __post_init__(self):
        if not 0.0 < self.eviction_fraction < 1.0:
            raise ValueError(f"eviction_fraction must be between 0 and 1, got {self.eviction_fraction}")
        if self.max_storage_bytes <= 0:
            raise ValueError(f"max_storage_bytes must be positive, got {self.max_storage_bytes}")


@dataclass
class StorageConfig:
    """Persistence and model source locations."""
    data_dir: str = field(default_factory=lambda: os.path.expanduser("~/.neurosputnik"))
    models_dir: str = "resources/models"
    model_suffix: str = ".bin"
    model_source_url: Optional[str] = None
    request_timeout: float = 60.0


@dataclass
class Config:
    """
    Master configuration for NeuroSputnik.
    """
    engine: EngineConfig = field(default_factory=EngineConfig)
    corpus: CorpusConfig = field(default_factory=CorpusConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    # Global settings
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_file(cls, path: str) -> "Config":
        """Load configuration from a YAML or JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            if str(path).endswith(".json"):
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Recursively construct Config from dictionary."""
        engine_data = dict(data.get("engine", {}))
        if "busy_policy" in engine_data:
            engine_data["busy_policy"] = BusyPolicy(engine_data["busy_policy"])

        engine = EngineConfig(**engine_data)
        corpus = CorpusConfig(**data.get("corpus", {})) if "corpus" in data else CorpusConfig()
        storage = StorageConfig(**data.get("storage", {})) if "storage" in data else StorageConfig()

        return cls(
            engine=engine,
            corpus=corpus,
            storage=storage,
            log_level=data.get("log_level", "INFO"),
            log_file=data.get("log_file"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize configuration to dictionary."""
        def convert_enums(d):
            if isinstance(d, dict):
                return {k: convert_enums(v) for k, v in d.items()}
            elif isinstance(d, list):
                return [convert_enums(item) for item in d]
            elif isinstance(d, Enum):
                return d.value
            return d

        return convert_enums(asdict(self))

    def save(self, path: str) -> None:
        """Save configuration as YAML, or JSON when the path ends in .json."""
        data = self.to_dict()
        with open(path, "w", encoding="utf-8") as f:
            if str(path).endswith(".json"):
                json.dump(data, f, indent=2)
            else:
                yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)

    def validate(self) -> List[str]:
        """Validate configuration and return list of warnings/errors."""
        issues = []

        if not 0.0 < self.corpus.eviction_fraction < 1.0:
            issues.append("ERROR: corpus.eviction_fraction must be between 0 and 1")

        if self.corpus.max_storage_bytes <= 0:
            issues.append("ERROR: corpus.max_storage_bytes must be positive")

        if self.engine.memory_limit_bytes > 2 ** 31 - 1:
            issues.append("WARNING: memory_limit_bytes does not fit a 32-bit runtime argument")

        if self.corpus.context_messages > self.corpus.history_limit:
            issues.append("WARNING: context_messages exceeds history_limit")

        return issues


def load_config(path: Optional[str] = None) -> Config:
    """
    Resolve configuration: .env -> config file -> environment overrides.

    A missing file yields defaults. An unreadable one is logged and also
    yields defaults.
    """
    load_dotenv()
    config_path = path or os.getenv("SPUTNIK_CONFIG", DEFAULT_CONFIG_PATH)

    config = Config()
    if Path(config_path).exists():
        try:
            config = Config.from_file(config_path)
        except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
            logger.warning(f"⚠️ Could not load {config_path}: {e}")

    if os.getenv("SPUTNIK_LOG_LEVEL"):
        config.log_level = os.environ["SPUTNIK_LOG_LEVEL"]
    if os.getenv("SPUTNIK_DATA_DIR"):
        config.storage.data_dir = os.environ["SPUTNIK_DATA_DIR"]

    for issue in config.validate():
        logger.warning(issue)

    return config
