"""
NeuroSputnik Runtime Base
Abstract interface of the opaque model runtime behind the engine.
"""

from abc import ABC, abstractmethod
from typing import Any


class BaseRuntime(ABC):
    """
    A model runtime exposing named exports and one linear memory.

    Offsets are byte positions inside that memory. Implementations do no
    bookkeeping of their own; allocation discipline lives in
    ``ForeignRuntimeHandle``.
    """

    @abstractmethod
    def has_export(self, name: str) -> bool:
        """Return True if the runtime provides a callable export ``name``."""
        pass

    @abstractmethod
    def invoke(self, name: str, *args: Any) -> Any:
        """Call export ``name`` with ``args`` and return its result."""
        pass

    @property
    @abstractmethod
    def memory_size(self) -> int:
        """Current size of the linear memory in bytes."""
        pass

    @abstractmethod
    def read(self, offset: int, length: int) -> bytes:
        """Copy ``length`` bytes out of linear memory."""
        pass

    @abstractmethod
    def write(self, offset: int, data: bytes) -> None:
        """Copy ``data`` into linear memory at ``offset``."""
        pass

    def close(self) -> None:
        """Release the runtime instance."""
        pass
