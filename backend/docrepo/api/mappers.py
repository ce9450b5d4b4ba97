"""
Mappers between DTOs and domain entities.
Separates domain layer from API layer.
"""
from typing import Any, Dict, List

from ..domain.entities import Document, DocumentPage, MetadataField, TaxonomyOption
from ..domain.value_objects import DocumentId, DocumentStatus, FieldType, MetadataValue
from ..core.logging_config import get_logger
from .dto import DocumentDTO, DocumentListDTO, MetadataFieldDTO, TaxonomyOptionDTO

logger = get_logger(__name__)


def _metadata_value(value: Any) -> MetadataValue:
    """Normalise a raw metadata value to str or list of str."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return str(value)


class DocumentMapper:
    """Maps between DocumentDTO and Document entity."""

    @staticmethod
    def to_entity(dto: DocumentDTO) -> Document:
        """Convert DTO to domain entity."""
        try:
            status = DocumentStatus(dto.status)
        except ValueError:
            logger.warning(f"Unknown status {dto.status!r} on document {dto.id}, treating as draft")
            status = DocumentStatus.DRAFT
        return Document(
            id=DocumentId(dto.id),
            title=dto.title or "",
            status=status,
            excerpt=dto.excerpt,
            metadata={key: _metadata_value(value) for key, value in dto.metadata.items()},
            date=dto.date,
            author=dto.author,
        )

    @staticmethod
    def from_payload(payload: Dict[str, Any]) -> Document:
        """Validate a raw JSON payload and convert it."""
        return DocumentMapper.to_entity(DocumentDTO.model_validate(payload))

    @staticmethod
    def to_payload(document: Document) -> Dict[str, Any]:
        """Convert domain entity to a JSON-ready dict."""
        return DocumentDTO(
            id=document.id,
            title=document.title,
            excerpt=document.excerpt,
            status=document.status.value,
            date=document.date,
            author=document.author,
            metadata=dict(document.metadata),
        ).model_dump()

    @staticmethod
    def page_from_payload(payload: Dict[str, Any]) -> DocumentPage:
        """Convert the list endpoint response."""
        dto = DocumentListDTO.model_validate(payload)
        return DocumentPage(
            documents=[DocumentMapper.to_entity(doc) for doc in dto.documents],
            total_count=dto.total,
            total_pages=dto.total_pages,
            current_page=dto.current_page,
        )


class MetadataFieldMapper:
    """Maps between MetadataFieldDTO and MetadataField entity."""

    @staticmethod
    def _option(option) -> TaxonomyOption:
        if isinstance(option, TaxonomyOptionDTO):
            return TaxonomyOption(name=option.name or option.label or "", term_id=option.id)
        return TaxonomyOption(name=str(option))

    @staticmethod
    def to_entity(dto: MetadataFieldDTO) -> MetadataField:
        """Convert DTO to domain entity."""
        options = tuple(
            option for option in (MetadataFieldMapper._option(o) for o in dto.options)
            if option.name
        )
        return MetadataField(
            id=dto.id,
            label=dto.label,
            type=FieldType(dto.type),
            order=dto.order,
            options=options,
        )

    @staticmethod
    def list_from_payload(payload: List[Dict[str, Any]]) -> List[MetadataField]:
        """Validate and convert a list of field definitions, ordered by position."""
        fields = [MetadataFieldMapper.to_entity(MetadataFieldDTO.model_validate(item)) for item in payload]
        return sorted(fields, key=lambda f: f.order)

    @staticmethod
    def to_payload(field: MetadataField) -> Dict[str, Any]:
        """Convert domain entity to a JSON-ready dict."""
        return MetadataFieldDTO(
            id=field.id,
            label=field.label,
            type=field.type.value,
            order=field.order,
            options=[
                TaxonomyOptionDTO(id=o.term_id, name=o.name, label=o.name, value=o.term_id)
                for o in field.options
            ],
        ).model_dump()
