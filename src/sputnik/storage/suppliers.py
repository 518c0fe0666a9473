"""
NeuroSputnik Model Suppliers
Sources of model blobs for the engine: a local directory or an HTTP server.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
import asyncio
import logging

import requests

from sputnik.exceptions import NotFoundError, TransportError


class ModelBlobSupplier(ABC):
    """Resolve a model name to its raw bytes."""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    async def fetch_model_blob(self, name: str) -> bytes:
        """Return the blob for ``name``; raise NotFoundError or TransportError."""
        pass


class DirectoryBlobSupplier(ModelBlobSupplier):
    """Reads ``<root>/<name><suffix>``."""

    def __init__(self, root: str, suffix: str = ".bin"):
        super().__init__()
        self.root = Path(root).expanduser()
        self.suffix = suffix

    async def fetch_model_blob(self, name: str) -> bytes:
        path = self.root / f"{name}{self.suffix}"
        if not path.is_file():
            raise NotFoundError(name, source=str(self.root))
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise TransportError("Could not read model file", key=name, original_error=e) from e


class HttpBlobSupplier(ModelBlobSupplier):
    """Downloads ``<base_url>/<name><suffix>``."""

    def __init__(self, base_url: str, suffix: str = ".bin", timeout: float = 60.0,
                 session: Optional[requests.Session] = None):
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.suffix = suffix
        self.timeout = timeout
        self.session = session or requests.Session()

    def _download(self, name: str) -> bytes:
        url = f"{self.base_url}/{name}{self.suffix}"
        response = self.session.get(url, timeout=self.timeout)
        if response.status_code == 404:
            raise NotFoundError(name, source=url)
        response.raise_for_status()
        return response.content

    async def fetch_model_blob(self, name: str) -> bytes:
        self.logger.info(f"📥 Downloading model {name} from {self.base_url}")
        try:
            return await asyncio.to_thread(self._download, name)
        except requests.RequestException as e:
            raise TransportError("Model download failed", key=name, original_error=e) from e
