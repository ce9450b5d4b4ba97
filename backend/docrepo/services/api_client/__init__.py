"""
Document API adapters.
Supports REST (httpx) and in-memory backends behind one contract.
"""
from .base import DocumentApi, UploadFile
from .memory_adapter import InMemoryDocumentApi
from .rest_adapter import RestDocumentApi
from .factory import DocumentApiFactory

__all__ = [
    "DocumentApi",
    "UploadFile",
    "InMemoryDocumentApi",
    "RestDocumentApi",
    "DocumentApiFactory",
]
