"""
NeuroSputnik Foreign Runtime Handle
Owns one runtime instance and mediates every transfer across its memory.

Callers do not allocate by hand. They open a scope:

    with handle.scope() as scope:
        ptr = scope.put(payload)
        result = scope.call("generate_response", ptr, len(payload), ...)
        scope.adopt(result)
        text = scope.read_cstring(result)

Everything the scope allocated or adopted is freed when the block exits,
whether it returns or raises.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional
import logging

from sputnik.exceptions import (
    ForeignRuntimeError,
    HandleBusyError,
    MemoryAccessError,
    OutOfMemoryError,
    UnsupportedOperationError,
)
from sputnik.runtime.base import BaseRuntime

EXPORT_ALLOCATE = "allocate_memory"
EXPORT_FREE = "free_memory"

CSTRING_CHUNK = 256


class ForeignRuntimeHandle:
    """
    Narrow call surface over a ``BaseRuntime``.

    Tracks live allocations so writes are bounds-checked against the
    allocation they target rather than only against the arena.
    """

    def __init__(self, runtime: BaseRuntime):
        self.runtime = runtime
        self.logger = logging.getLogger(self.__class__.__name__)
        self._live: Dict[int, int] = {}  # offset -> size
        self._scope: Optional["RuntimeScope"] = None

    @property
    def live_allocations(self) -> int:
        """Number of allocations not yet freed."""
        return len(self._live)

    @property
    def in_use(self) -> bool:
        return self._scope is not None

    # -------------------------------------------------------------------------
    # Raw protocol
    # -------------------------------------------------------------------------

    def allocate(self, size: int) -> int:
        """Reserve ``size`` bytes in the runtime and return the offset."""
        if size < 0:
            raise ValueError(f"allocation size must be non-negative, got {size}")
        size = max(size, 1)

        offset = self.call(EXPORT_ALLOCATE, size)
        arena = self.runtime.memory_size
        if not offset or offset + size > arena:
            if offset:
                self.call(EXPORT_FREE, offset)
            raise OutOfMemoryError(requested=size, available=max(arena - (offset or 0), 0))

        self._live[offset] = size
        return offset

    def write_bytes(self, offset: int, data: bytes) -> None:
        """Copy ``data`` into a live allocation."""
        capacity = self._live.get(offset)
        if capacity is None:
            capacity = max(self.runtime.memory_size - offset, 0)
        if len(data) > capacity:
            raise OutOfMemoryError(requested=len(data), available=capacity, offset=offset)
        self.runtime.write(offset, data)

    def call(self, export_name: str, *args: Any) -> Any:
        """Invoke a runtime export."""
        if not self.runtime.has_export(export_name):
            raise UnsupportedOperationError(export_name)
        return self.runtime.invoke(export_name, *args)

    def read_bytes(self, offset: int, length: int) -> bytes:
        """Copy ``length`` bytes out of runtime memory."""
        memory_size = self.runtime.memory_size
        if offset < 0 or length < 0 or offset + length > memory_size:
            raise MemoryAccessError(offset, length=length, memory_size=memory_size)
        return self.runtime.read(offset, length)

    def read_cstring(self, offset: int) -> str:
        """Read a NUL-terminated UTF-8 string starting at ``offset``."""
        memory_size = self.runtime.memory_size
        if offset <= 0 or offset >= memory_size:
            raise MemoryAccessError(offset, memory_size=memory_size)

        buffer = bytearray()
        position = offset
        while position < memory_size:
            chunk = self.runtime.read(position, min(CSTRING_CHUNK, memory_size - position))
            terminator = chunk.find(b"\x00")
            if terminator >= 0:
                buffer.extend(chunk[:terminator])
                return buffer.decode("utf-8", errors="replace")
            buffer.extend(chunk)
            position += len(chunk)

        raise MemoryAccessError(offset, length=len(buffer), memory_size=memory_size)

    def free(self, offset: int) -> None:
        """Release an allocation, including pointers the runtime handed out."""
        self._live.pop(offset, None)
        self.call(EXPORT_FREE, offset)

    # -------------------------------------------------------------------------
    # Scoped acquisition
    # -------------------------------------------------------------------------

    @contextmanager
    def scope(self) -> Iterator["RuntimeScope"]:
        """Open the handle for one logical call; release everything on exit."""
        if self._scope is not None:
            raise HandleBusyError(self.live_allocations)

        scope = RuntimeScope(self)
        self._scope = scope
        try:
            yield scope
        except BaseException:
            scope.release(raise_errors=False)
            raise
        else:
            scope.release(raise_errors=True)
        finally:
            self._scope = None


class RuntimeScope:
    """Allocation owner for a single ``ForeignRuntimeHandle.scope()`` block."""

    def __init__(self, handle: ForeignRuntimeHandle):
        self.handle = handle
        self._owned: List[int] = []

    def allocate(self, size: int) -> int:
        offset = self.handle.allocate(size)
        self._owned.append(offset)
        return offset

    def put(self, data: bytes) -> int:
        """Allocate room for ``data``, copy it in and return the offset."""
        offset = self.allocate(len(data))
        self.handle.write_bytes(offset, data)
        return offset

    def adopt(self, offset: int) -> int:
        """Take ownership of a pointer returned by the runtime."""
        if offset and offset not in self._owned:
            self._owned.append(offset)
        return offset

    def call(self, export_name: str, *args: Any) -> Any:
        return self.handle.call(export_name, *args)

    def write_bytes(self, offset: int, data: bytes) -> None:
        self.handle.write_bytes(offset, data)

    def read_bytes(self, offset: int, length: int) -> bytes:
        return self.handle.read_bytes(offset, length)

    def read_cstring(self, offset: int) -> str:
        return self.handle.read_cstring(offset)

    def release(self, raise_errors: bool = True) -> None:
        """Free owned offsets, newest first."""
        first_error: Optional[ForeignRuntimeError] = None
        while self._owned:
            offset = self._owned.pop()
            try:
                self.handle.free(offset)
            except ForeignRuntimeError as e:
                self.handle.logger.error(f"Failed to free runtime offset {offset}: {e}")
                if first_error is None:
                    first_error = e

        if first_error is not None and raise_errors:
            raise first_error
