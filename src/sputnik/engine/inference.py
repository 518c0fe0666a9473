"""
NeuroSputnik Inference Engine
State machine over one foreign model runtime.

States advance UNINITIALIZED -> READY -> MODEL_LOADED and never regress.
``load_model``, ``generate``, ``train`` and ``save_model`` share the
runtime arena and are serialized by an asyncio lock; every foreign call
runs on a single dedicated worker thread.
"""

from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union
import asyncio
import functools
import json
import logging

from sputnik.config import BusyPolicy, EngineConfig
from sputnik.corpus.schemas import TrainingExample
from sputnik.engine.schemas import EngineState, GenerationOptions, MemoryUsage, ModelDescriptor
from sputnik.exceptions import (
    EngineBusyError,
    EngineNotReadyError,
    ForeignRuntimeError,
    GenerationError,
    InitializationError,
    ModelLoadError,
    ModelSaveError,
    NotFoundError,
    TrainingError,
)
from sputnik.runtime.base import BaseRuntime
from sputnik.runtime.handle import ForeignRuntimeHandle
from sputnik.runtime.wasm import WasmRuntime
from sputnik.storage.persistence import PersistenceBackend, model_key

# Runtime exports
EXPORT_LOAD_MODEL = "load_model"
EXPORT_GENERATE = "generate_response"
EXPORT_TRAIN = "train_model"
EXPORT_USED_MEMORY = "get_used_memory"
EXPORT_TOTAL_MEMORY = "get_total_memory"
EXPORT_MODEL_SIZE = "get_model_size"
EXPORT_EXPORT_MODEL = "export_model"

RuntimeFactory = Callable[[], BaseRuntime]
ExampleLike = Union[TrainingExample, Mapping[str, Any]]


class InferenceEngine:
    """
    Embedded inference engine.

    The runtime is created lazily by ``initialize()`` through
    ``runtime_factory``; by default it instantiates the configured
    WebAssembly module.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        runtime_factory: Optional[RuntimeFactory] = None,
        persistence: Optional[PersistenceBackend] = None,
    ):
        self.config = config or EngineConfig()
        self.logger = logging.getLogger(self.__class__.__name__)
        self.persistence = persistence
        self._runtime_factory = runtime_factory or self._default_runtime_factory

        self.state = EngineState.UNINITIALIZED
        self.models: Dict[str, ModelDescriptor] = {}
        self.current_model: Optional[ModelDescriptor] = None

        self._handle: Optional[ForeignRuntimeHandle] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._closed = False
        self._lock = asyncio.Lock()

    def _default_runtime_factory(self) -> BaseRuntime:
        return WasmRuntime.from_file(self.config.wasm_path, initial_pages=self.config.initial_memory_pages)

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self.state != EngineState.UNINITIALIZED

    @property
    def is_model_loaded(self) -> bool:
        return self.state == EngineState.MODEL_LOADED and not self._closed

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run ``fn`` on the runtime thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    @asynccontextmanager
    async def _exclusive(self, operation: str):
        if self.config.busy_policy == BusyPolicy.FAIL_FAST and self._lock.locked():
            raise EngineBusyError(operation)
        async with self._lock:
            yield

    def _require(self, operation: str, *states: EngineState) -> None:
        if self._closed or self.state not in states:
            raise EngineNotReadyError(operation, self.state)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> bool:
        """
        Instantiate the runtime: UNINITIALIZED -> READY.

        Returns:
            True once the engine is READY (or already past it)

        Raises:
            InitializationError: runtime could not be created; state unchanged
        """
        async with self._exclusive("initialize"):
            if self._closed:
                raise EngineNotReadyError("initialize", self.state)
            if self.is_initialized:
                return True

            self.logger.info("🔄 Initializing model runtime...")
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sputnik-runtime")
            try:
                runtime = await self._run(self._runtime_factory)
            except InitializationError as e:
                self.logger.error(f"❌ Runtime initialization failed: {e}")
                self._shutdown_executor()
                raise

            self._handle = ForeignRuntimeHandle(runtime)
            self.state = EngineState.READY
            self.logger.info("✅ Model runtime initialized")
            return True

    async def close(self) -> None:
        """
        Release the runtime and its worker thread.

        The state is kept for inspection; every later runtime operation
        raises EngineNotReadyError.
        """
        async with self._lock:
            self._closed = True
            if self._handle is not None:
                await self._run(self._handle.runtime.close)
                self._handle = None
            self._shutdown_executor()

    def _shutdown_executor(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # -------------------------------------------------------------------------
    # Models
    # -------------------------------------------------------------------------

    async def load_model(self, name: str, blob: bytes) -> bool:
        """
        Hand a model blob to the runtime: READY|MODEL_LOADED -> MODEL_LOADED.

        Reloading replaces the current descriptor; descriptors returned
        earlier are left as they were.

        Raises:
            EngineNotReadyError: engine not initialized
            ModelLoadError: nonzero runtime status or failed transfer
        """
        async with self._exclusive("load_model"):
            self._require("load_model", EngineState.READY, EngineState.MODEL_LOADED)
            self.logger.info(f"📦 Loading model: {name} ({len(blob)} bytes)")

            try:
                status = await self._run(self._load_model_sync, bytes(blob))
            except ForeignRuntimeError as e:
                self.logger.error(f"❌ Could not transfer model {name}: {e}")
                raise ModelLoadError(name) from e

            if status != 0:
                self.logger.error(f"❌ Model {name} rejected with code {status}")
                raise ModelLoadError(name, code=status)

            descriptor = ModelDescriptor(name=name, size_bytes=len(blob), loaded=True)
            self.models[name] = descriptor
            self.current_model = descriptor
            self.state = EngineState.MODEL_LOADED
            self.logger.info(f"✅ Model {name} loaded")
            return True

    def _load_model_sync(self, blob: bytes) -> int:
        with self._handle.scope() as scope:
            ptr = scope.put(blob)
            return scope.call(EXPORT_LOAD_MODEL, ptr, len(blob), self.config.memory_limit_bytes)

    async def save_model(self, name: str) -> bool:
        """
        Export the runtime's current weights and persist them under ``name``.

        Raises:
            EngineNotReadyError: no model loaded
            ModelSaveError: runtime returned no weight blob
        """
        async with self._exclusive("save_model"):
            self._require("save_model", EngineState.MODEL_LOADED)
            if self.persistence is None:
                raise ModelSaveError(name, "no persistence backend configured")

            self.logger.info(f"💾 Saving model: {name}")
            blob = await self._run(self._export_model_sync, name)
            await self.persistence.put(model_key(name), blob)
            self.logger.info(f"✅ Model {name} saved ({len(blob)} bytes)")
            return True

    def _export_model_sync(self, name: str) -> bytes:
        with self._handle.scope() as scope:
            size = scope.call(EXPORT_MODEL_SIZE)
            ptr = scope.adopt(scope.call(EXPORT_EXPORT_MODEL))
            if not ptr or size <= 0:
                raise ModelSaveError(name, "runtime returned an empty export")
            return scope.read_bytes(ptr, size)

    async def load_saved_model(self, name: str) -> bool:
        """Load a model previously stored with ``save_model``."""
        if self.persistence is None:
            raise NotFoundError(model_key(name), source="no persistence backend")
        blob = await self.persistence.get(model_key(name))
        if blob is None:
            raise NotFoundError(model_key(name), source=self.persistence.__class__.__name__)
        return await self.load_model(name, blob)

    # -------------------------------------------------------------------------
    # Inference and training
    # -------------------------------------------------------------------------

    async def generate(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        """
        Generate a completion for ``prompt``.

        Raises:
            EngineNotReadyError: no model loaded
            GenerationError: runtime returned a null pointer
            ForeignRuntimeError: transfer or runtime failure
        """
        options = options or GenerationOptions(
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            top_p=self.config.top_p,
        )
        async with self._exclusive("generate"):
            self._require("generate", EngineState.MODEL_LOADED)
            self.logger.debug("🤖 Generating response...")
            return await self._run(self._generate_sync, prompt.encode("utf-8"), options)

    def _generate_sync(self, prompt: bytes, options: GenerationOptions) -> str:
        with self._handle.scope() as scope:
            ptr = scope.put(prompt)
            result = scope.call(
                EXPORT_GENERATE,
                ptr,
                len(prompt),
                options.max_tokens,
                options.temperature,
                options.top_p,
            )
            if not result:
                raise GenerationError(prompt_bytes=len(prompt))
            scope.adopt(result)
            return scope.read_cstring(result)

    async def train(self, batch: Sequence[ExampleLike], epochs: int = 1) -> bool:
        """
        Train the loaded model on ``batch``.

        Callers must not pass an empty batch. Training is not transactional:
        after a TrainingError the weights are in whatever state the runtime
        left them.

        Raises:
            ValueError: empty batch
            EngineNotReadyError: no model loaded
            TrainingError: nonzero runtime status
        """
        if not batch:
            raise ValueError("training batch is empty")

        payload = json.dumps(
            [self._example_payload(example) for example in batch],
            ensure_ascii=False,
        ).encode("utf-8")

        async with self._exclusive("train"):
            self._require("train", EngineState.MODEL_LOADED)
            self.logger.info(f"🎯 Training on {len(batch)} examples for {epochs} epoch(s)")
            status = await self._run(self._train_sync, payload, epochs)

        if status != 0:
            self.logger.error(f"❌ Training failed with code {status}")
            raise TrainingError(status, examples=len(batch))

        self.logger.info("✅ Training completed")
        return True

    @staticmethod
    def _example_payload(example: ExampleLike) -> Dict[str, Any]:
        if isinstance(example, TrainingExample):
            return example.to_dict()
        return {
            "input": example["input"],
            "output": example["output"],
            "weight": example.get("weight", 1.0),
        }

    def _train_sync(self, payload: bytes, epochs: int) -> int:
        with self._handle.scope() as scope:
            ptr = scope.put(payload)
            return scope.call(EXPORT_TRAIN, ptr, len(payload), epochs)

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    async def get_memory_usage(self) -> MemoryUsage:
        """Runtime memory usage; zeros before initialization."""
        if not self.is_initialized or self._handle is None:
            return MemoryUsage()
        used, total = await self._run(self._memory_sync)
        return MemoryUsage.from_bytes(used, total)

    def _memory_sync(self):
        return (
            self._handle.call(EXPORT_USED_MEMORY),
            self._handle.call(EXPORT_TOTAL_MEMORY),
        )

    def status(self) -> Dict[str, Any]:
        """Snapshot of engine state for display."""
        return {
            "state": self.state.value,
            "current_model": self.current_model.name if self.current_model else None,
            "models": {name: descriptor.to_dict() for name, descriptor in self.models.items()},
            "busy": self.is_busy,
            "closed": self._closed,
        }

    def list_models(self) -> List[ModelDescriptor]:
        return list(self.models.values())
