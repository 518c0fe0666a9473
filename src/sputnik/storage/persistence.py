"""
NeuroSputnik Persistence
Key/value byte stores used for saved models, corpus snapshots and
conversation history.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
import asyncio
import logging
import os
import re
import tempfile

from sputnik.exceptions import TransportError

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def model_key(name: str) -> str:
    """Storage key under which a saved model is kept."""
    return f"model:{name}"


class PersistenceBackend(ABC):
    """
    Byte store contract: ``put`` overwrites, ``get`` returns None for a
    missing key. Failures surface as ``TransportError``.
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    async def put(self, key: str, data: bytes) -> bool:
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        pass

    @abstractmethod
    async def keys(self) -> List[str]:
        pass


class MemoryStore(PersistenceBackend):
    """In-process store; contents vanish with the process."""

    def __init__(self):
        super().__init__()
        self._data: Dict[str, bytes] = {}

    async def put(self, key: str, data: bytes) -> bool:
        self._data[key] = bytes(data)
        return True

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def keys(self) -> List[str]:
        return list(self._data)


class FileStore(PersistenceBackend):
    """
    Directory-backed store, one file per key.

    Writes go to a temporary file in the same directory and are moved into
    place, so a crash mid-write never leaves a truncated value behind.
    """

    SUFFIX = ".dat"

    def __init__(self, root: str):
        super().__init__()
        self.root = Path(root).expanduser()

    def _path_for(self, key: str) -> Path:
        return self.root / f"{_UNSAFE_KEY_CHARS.sub('_', key)}{self.SUFFIX}"

    def _write(self, key: str, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        target = self._path_for(key)
        fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, target)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _read(self, key: str) -> Optional[bytes]:
        path = self._path_for(key)
        if not path.exists():
            return None
        with open(path, "rb") as f:
            return f.read()

    async def put(self, key: str, data: bytes) -> bool:
        try:
            await asyncio.to_thread(self._write, key, bytes(data))
        except OSError as e:
            raise TransportError("Could not write to file store", key=key, original_error=e) from e
        self.logger.debug(f"Stored {len(data)} bytes under {key}")
        return True

    async def get(self, key: str) -> Optional[bytes]:
        try:
            return await asyncio.to_thread(self._read, key)
        except OSError as e:
            raise TransportError("Could not read from file store", key=key, original_error=e) from e

    async def keys(self) -> List[str]:
        # Sanitized names are not reversible; report the on-disk stems.
        if not self.root.exists():
            return []
        return sorted(p.name[:-len(self.SUFFIX)] for p in self.root.glob(f"*{self.SUFFIX}"))
