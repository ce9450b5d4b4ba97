"""
Domain entities - Core business objects.
These represent the business concepts, not wire payloads.
"""
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

from .value_objects import (
    DocumentId,
    DocumentStatus,
    FieldType,
    MetadataValue,
    FILE_NAME_KEY,
    FILE_SIZE_KEY,
    FILE_TYPE_KEY,
    FILE_URL_KEY,
)


@dataclass(frozen=True)
class TaxonomyOption:
    """A selectable term of a taxonomy field."""
    name: str
    term_id: Optional[int] = None


@dataclass(frozen=True)
class MetadataField:
    """
    MetadataField entity - a configured metadata column.
    The id is immutable once the field has been created.
    """
    id: str
    label: str
    type: FieldType = FieldType.TEXT
    order: int = 0
    options: Tuple[TaxonomyOption, ...] = ()

    def is_taxonomy(self) -> bool:
        """Check if values come from a closed vocabulary."""
        return self.type == FieldType.TAXONOMY

    def option_names(self) -> List[str]:
        """Names of the configured terms, in order."""
        return [option.name for option in self.options]


@dataclass(frozen=True)
class Document:
    """
    Document entity - represents a document in the domain.
    Records are never changed in place; use with_changes() to derive a new one.
    """
    id: DocumentId
    title: str
    status: DocumentStatus = DocumentStatus.PUBLISH
    excerpt: Optional[str] = None
    metadata: Dict[str, MetadataValue] = field(default_factory=dict)
    date: Optional[str] = None
    author: Optional[str] = None

    @property
    def file_url(self) -> Optional[str]:
        return self._file_attr(FILE_URL_KEY)

    @property
    def file_name(self) -> Optional[str]:
        return self._file_attr(FILE_NAME_KEY)

    @property
    def mime_type(self) -> Optional[str]:
        return self._file_attr(FILE_TYPE_KEY)

    @property
    def file_size(self) -> Optional[int]:
        value = self.metadata.get(FILE_SIZE_KEY)
        if value in (None, ""):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    def _file_attr(self, key: str) -> Optional[str]:
        value = self.metadata.get(key)
        return str(value) if value not in (None, "") else None

    def is_trashed(self) -> bool:
        """Check if document is in the trash."""
        return self.status == DocumentStatus.TRASH

    def with_changes(
        self,
        metadata: Optional[Dict[str, MetadataValue]] = None,
        **changes
    ) -> "Document":
        """
        Return a copy with the given metadata keys merged and attributes replaced.

        Args:
            metadata: Metadata keys to overwrite (other keys are kept)
            **changes: Attributes to replace (title, excerpt, status, ...)
        """
        merged = dict(self.metadata)
        if metadata:
            merged.update(metadata)
        return replace(self, metadata=merged, **changes)


@dataclass(frozen=True)
class DocumentPage:
    """One page of the document list."""
    documents: List[Document]
    total_count: int
    total_pages: int
    current_page: int
