"""
Tests for the scoped foreign runtime handle.
"""

import pytest

from sputnik.exceptions import (
    HandleBusyError,
    MemoryAccessError,
    OutOfMemoryError,
    UnsupportedOperationError,
)
from sputnik.runtime import ForeignRuntimeHandle

from conftest import FakeModelRuntime


@pytest.fixture
def handle(runtime):
    return ForeignRuntimeHandle(runtime)


class TestRawProtocol:
    """Allocation, transfer and export calls without a scope."""

    def test_allocate_write_read(self, handle, runtime):
        ptr = handle.allocate(5)
        handle.write_bytes(ptr, b"hello")

        assert handle.read_bytes(ptr, 5) == b"hello"
        assert runtime.allocations == {ptr: 5}
        assert handle.live_allocations == 1

    def test_free_releases_allocation(self, handle, runtime):
        ptr = handle.allocate(8)
        handle.free(ptr)

        assert runtime.allocations == {}
        assert handle.live_allocations == 0

    def test_zero_size_allocation_reserves_one_byte(self, handle, runtime):
        ptr = handle.allocate(0)
        assert runtime.allocations[ptr] == 1

    def test_allocation_beyond_arena_is_out_of_memory(self, handle):
        with pytest.raises(OutOfMemoryError) as exc_info:
            handle.allocate(10 * 1024 * 1024)
        assert exc_info.value.requested == 10 * 1024 * 1024

    def test_write_larger_than_allocation_is_rejected(self, handle, runtime):
        ptr = handle.allocate(4)
        neighbour = handle.allocate(4)
        handle.write_bytes(neighbour, b"keep")

        with pytest.raises(OutOfMemoryError):
            handle.write_bytes(ptr, b"too long")

        assert handle.read_bytes(neighbour, 4) == b"keep"

    def test_missing_export_is_unsupported(self):
        handle = ForeignRuntimeHandle(FakeModelRuntime(missing_exports=("train_model",)))

        with pytest.raises(UnsupportedOperationError) as exc_info:
            handle.call("train_model", 0, 0, 1)
        assert exc_info.value.export_name == "train_model"

    def test_read_outside_memory(self, handle, runtime):
        with pytest.raises(MemoryAccessError):
            handle.read_bytes(runtime.memory_size - 2, 10)

    def test_read_cstring(self, handle):
        ptr = handle.allocate(32)
        handle.write_bytes(ptr, "Привет, мир\x00".encode("utf-8"))

        assert handle.read_cstring(ptr) == "Привет, мир"

    def test_read_cstring_spanning_chunks(self, handle):
        text = "x" * 700
        ptr = handle.allocate(len(text) + 1)
        handle.write_bytes(ptr, text.encode("utf-8") + b"\x00")

        assert handle.read_cstring(ptr) == text

    def test_read_cstring_null_pointer(self, handle):
        with pytest.raises(MemoryAccessError):
            handle.read_cstring(0)

    def test_read_cstring_without_terminator(self):
        runtime = FakeModelRuntime(memory_size=128)
        handle = ForeignRuntimeHandle(runtime)
        runtime.memory[16:] = b"a" * 112

        with pytest.raises(MemoryAccessError):
            handle.read_cstring(16)


class TestScope:
    """Scoped acquisition releases everything on every exit path."""

    def test_scope_frees_on_success(self, handle, runtime):
        with handle.scope() as scope:
            first = scope.put(b"abc")
            second = scope.put(b"def")
            assert runtime.allocations.keys() == {first, second}

        assert runtime.allocations == {}
        assert runtime.freed == [second, first]
        assert not handle.in_use

    def test_scope_frees_on_failure(self, handle, runtime):
        with pytest.raises(RuntimeError):
            with handle.scope() as scope:
                scope.put(b"payload")
                raise RuntimeError("boom")

        assert runtime.allocations == {}
        assert not handle.in_use

    def test_scope_frees_adopted_pointer(self, handle, runtime):
        runtime.model = b"weights"

        with handle.scope() as scope:
            ptr = scope.adopt(scope.call("export_model"))
            assert scope.read_bytes(ptr, 7) == b"weights"

        assert runtime.allocations == {}

    def test_adopting_null_is_ignored(self, handle, runtime):
        with handle.scope() as scope:
            assert scope.adopt(0) == 0

        assert runtime.freed == []

    def test_failed_write_inside_scope_still_frees(self):
        runtime = FakeModelRuntime(memory_size=64)
        handle = ForeignRuntimeHandle(runtime)

        with pytest.raises(OutOfMemoryError):
            with handle.scope() as scope:
                scope.put(b"ok")
                scope.put(b"z" * 100)

        assert runtime.allocations == {}

    def test_nested_scope_is_busy(self, handle, runtime):
        with handle.scope() as scope:
            scope.put(b"x")
            with pytest.raises(HandleBusyError) as exc_info:
                with handle.scope():
                    pass
            assert exc_info.value.live_allocations == 1

        assert runtime.allocations == {}

    def test_scope_can_be_reopened(self, handle):
        with handle.scope() as scope:
            scope.put(b"a")
        with handle.scope() as scope:
            scope.put(b"b")

        assert handle.live_allocations == 0
