"""
Abstract base class for document API adapters.
All API implementations must inherit from this class.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

from ...domain.entities import Document, DocumentPage, MetadataField
from ...domain.value_objects import MetadataValue, StatusFilter


@dataclass(frozen=True)
class UploadFile:
    """A file picked or dropped by the user."""
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


class DocumentApi(ABC):
    """
    Contract between the document list services and the content platform.
    The services depend on this interface only, never on a transport.
    Every method raises ApiError on failure.
    """

    @abstractmethod
    async def list_documents(
        self,
        page: int,
        page_size: int,
        status_filter: StatusFilter = StatusFilter.ALL
    ) -> DocumentPage:
        """Get one page of documents for the given view."""
        pass

    @abstractmethod
    async def get_metadata_field_definitions(self) -> List[MetadataField]:
        """Get the configured metadata fields ordered by position."""
        pass

    @abstractmethod
    async def patch_document_metadata(
        self,
        document_id: int,
        values: Dict[str, MetadataValue]
    ) -> Document:
        """Partially update metadata; only supplied keys change."""
        pass

    @abstractmethod
    async def update_document_core(
        self,
        document_id: int,
        excerpt: Optional[str] = None
    ) -> Document:
        """Update core post attributes (currently the excerpt)."""
        pass

    @abstractmethod
    async def trash_document(self, document_id: int) -> None:
        """Move a document to the trash."""
        pass

    @abstractmethod
    async def restore_document(self, document_id: int) -> None:
        """Restore a trashed document."""
        pass

    @abstractmethod
    async def permanently_delete_document(self, document_id: int) -> None:
        """Delete a trashed document for good."""
        pass

    @abstractmethod
    async def upload_document(
        self,
        file: UploadFile,
        initial_metadata: Optional[Dict[str, MetadataValue]] = None
    ) -> Document:
        """Create a document from an uploaded file."""
        pass

    @abstractmethod
    async def get_status_counts(self) -> Dict[str, int]:
        """Count documents per post status."""
        pass

    async def close(self):
        """Release transport resources (no-op by default)."""
        pass
