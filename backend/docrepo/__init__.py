"""
docrepo - client-side document repository management.

Metadata editing (single and spreadsheet), trash workflow, uploads and
notifications over a pluggable document API.
"""
from .core.config import RepositoryConfig
from .services.document_list import DocumentListOrchestrator

__version__ = "1.0.0"

__all__ = [
    "RepositoryConfig",
    "DocumentListOrchestrator",
]
