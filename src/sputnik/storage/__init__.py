"""NeuroSputnik Storage Module - persistence and model blob suppliers."""

from sputnik.storage.persistence import FileStore, MemoryStore, PersistenceBackend, model_key
from sputnik.storage.suppliers import DirectoryBlobSupplier, HttpBlobSupplier, ModelBlobSupplier

__all__ = [
    "PersistenceBackend",
    "FileStore",
    "MemoryStore",
    "model_key",
    "ModelBlobSupplier",
    "DirectoryBlobSupplier",
    "HttpBlobSupplier",
]
