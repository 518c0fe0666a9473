"""
NeuroSputnik Exceptions

Error taxonomy for the inference engine, the foreign runtime boundary,
the training corpus and the external collaborators.

Exception Hierarchy:
    SputnikError (base)
    ├── EngineError
    │   ├── InitializationError
    │   ├── ModelLoadError
    │   ├── EngineNotReadyError
    │   ├── EngineBusyError
    │   ├── GenerationError
    │   ├── TrainingError
    │   └── ModelSaveError
    ├── ForeignRuntimeError
    │   ├── OutOfMemoryError
    │   ├── UnsupportedOperationError
    │   ├── MemoryAccessError
    │   ├── RuntimeTrapError
    │   └── HandleBusyError
    ├── CorpusError
    │   └── MalformedSnapshotError
    └── CollaboratorError
        ├── NotFoundError
        └── TransportError

The engine surfaces these to its immediate caller unchanged. Only the
assistant layer turns them into fallback behaviour.
"""

from typing import Optional, Any


class SputnikError(Exception):
    """
    Base exception for all NeuroSputnik errors.

    Carries a short message plus a ``details`` dict that is rendered
    into ``str()`` for log lines.
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ', '.join(f'{k}={v!r}' for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# =============================================================================
# ENGINE ERRORS
# =============================================================================

class EngineError(SputnikError):
    """Base class for inference engine errors."""
    pass


class InitializationError(EngineError):
    """
    Raised when the foreign runtime cannot be instantiated.

    The engine stays UNINITIALIZED. Typical causes are a missing or
    invalid WebAssembly module, or a host that cannot satisfy the
    module's imports.
    """

    def __init__(self, message: str = "Runtime initialization failed", reason: Optional[str] = None):
        details = {}
        if reason:
            details['reason'] = reason
        super().__init__(message, details)
        self.reason = reason


class ModelLoadError(EngineError):
    """
    Raised when the runtime rejects a model blob.

    ``code`` is the nonzero status reported by ``load_model``, or None when
    the blob never reached the runtime (e.g. it did not fit in the arena).
    """

    def __init__(self, model_name: str, code: Optional[int] = None):
        details = {'model': model_name}
        if code is not None:
            details['code'] = code
        super().__init__("Model load failed", details)
        self.model_name = model_name
        self.code = code


class EngineNotReadyError(EngineError):
    """Raised when an operation is invoked in a state that does not allow it."""

    def __init__(self, operation: str, state: Any):
        super().__init__(
            "Engine not ready",
            details={
                'operation': operation,
                'state': getattr(state, 'value', state),
            }
        )
        self.operation = operation
        self.state = state


class EngineBusyError(EngineError):
    """
    Raised under the fail-fast busy policy when another foreign call is
    already in flight.
    """

    def __init__(self, operation: str):
        super().__init__("Engine busy", details={'operation': operation})
        self.operation = operation


class GenerationError(EngineError):
    """Raised when the runtime returns a null result pointer."""

    def __init__(self, message: str = "Generation failed", prompt_bytes: Optional[int] = None):
        details = {}
        if prompt_bytes is not None:
            details['prompt_bytes'] = prompt_bytes
        super().__init__(message, details)
        self.prompt_bytes = prompt_bytes


class TrainingError(EngineError):
    """
    Raised when ``train_model`` reports a nonzero status.

    Training is not transactional: after this error the model weights are
    whatever the runtime left behind.
    """

    def __init__(self, code: int, examples: Optional[int] = None):
        details = {'code': code}
        if examples is not None:
            details['examples'] = examples
        super().__init__("Training failed", details)
        self.code = code
        self.examples = examples


class ModelSaveError(EngineError):
    """Raised when the runtime cannot export its current weights."""

    def __init__(self, model_name: str, reason: str):
        super().__init__("Model save failed", details={'model': model_name, 'reason': reason})
        self.model_name = model_name
        self.reason = reason


# =============================================================================
# FOREIGN RUNTIME ERRORS
# =============================================================================

class ForeignRuntimeError(SputnikError):
    """Base class for errors at the foreign memory boundary."""
    pass


class OutOfMemoryError(ForeignRuntimeError):
    """
    Raised when an allocation fails or a write would exceed the capacity
    of its allocation or of the arena.
    """

    def __init__(self, requested: int, available: int, offset: Optional[int] = None):
        details = {
            'bytes_requested': requested,
            'bytes_available': available,
        }
        if offset is not None:
            details['offset'] = offset
        super().__init__("Out of runtime memory", details)
        self.requested = requested
        self.available = available
        self.offset = offset


class UnsupportedOperationError(ForeignRuntimeError):
    """Raised when the runtime does not provide the requested export."""

    def __init__(self, export_name: str):
        super().__init__("Unsupported runtime operation", details={'export': export_name})
        self.export_name = export_name


class MemoryAccessError(ForeignRuntimeError):
    """Raised when a read falls outside the runtime's linear memory."""

    def __init__(self, offset: int, length: Optional[int] = None, memory_size: Optional[int] = None):
        details = {'offset': offset}
        if length is not None:
            details['length'] = length
        if memory_size is not None:
            details['memory_size'] = memory_size
        super().__init__("Runtime memory access out of bounds", details)
        self.offset = offset
        self.length = length


class RuntimeTrapError(ForeignRuntimeError):
    """Raised when the runtime traps while executing an export."""

    def __init__(self, export_name: str, original_error: Optional[Exception] = None):
        details = {'export': export_name}
        if original_error:
            details['original_error'] = str(original_error)
        super().__init__("Runtime trapped", details)
        self.export_name = export_name
        self.original_error = original_error


class HandleBusyError(ForeignRuntimeError):
    """Raised when a scope is opened while another is still active."""

    def __init__(self, live_allocations: int):
        super().__init__(
            "Runtime handle already has an open scope",
            details={'live_allocations': live_allocations}
        )
        self.live_allocations = live_allocations


# =============================================================================
# CORPUS ERRORS
# =============================================================================

class CorpusError(SputnikError):
    """Base class for training corpus errors."""
    pass


class MalformedSnapshotError(CorpusError):
    """
    Raised when a corpus snapshot cannot be parsed or validated.

    The store is left untouched.
    """

    def __init__(self, message: str = "Malformed corpus snapshot", original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details['original_error'] = str(original_error)
        super().__init__(message, details)
        self.original_error = original_error


# =============================================================================
# COLLABORATOR ERRORS
# =============================================================================

class CollaboratorError(SputnikError):
    """Base class for errors raised by persistence and model suppliers."""
    pass


class NotFoundError(CollaboratorError):
    """Raised when a model blob or stored key does not exist."""

    def __init__(self, key: str, source: Optional[str] = None):
        details = {'key': key}
        if source:
            details['source'] = source
        super().__init__("Not found", details)
        self.key = key
        self.source = source


class TransportError(CollaboratorError):
    """Raised when a collaborator cannot be reached or fails mid-transfer."""

    def __init__(self, message: str = "Transport failure", key: Optional[str] = None,
                 original_error: Optional[Exception] = None):
        details = {}
        if key:
            details['key'] = key
        if original_error:
            details['original_error'] = str(original_error)
        super().__init__(message, details)
        self.key = key
        self.original_error = original_error
