"""
Data Transfer Objects (DTOs) for the REST API.
Separates wire contracts from domain entities.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional, Union


class TaxonomyOptionDTO(BaseModel):
    """Taxonomy term as returned by the metadata-fields endpoint."""
    id: Optional[int] = None
    name: Optional[str] = None
    label: Optional[str] = None
    value: Optional[Union[int, str]] = None


class MetadataFieldDTO(BaseModel):
    """Metadata field definition."""
    id: str
    label: str
    type: str = "text"
    order: int = 0
    # Older payloads list plain term names instead of term objects
    options: List[Union[TaxonomyOptionDTO, str]] = Field(default_factory=list)

    class Config:
        extra = "ignore"


class DocumentDTO(BaseModel):
    """Document as returned by the document endpoints."""
    id: int
    title: str = ""
    excerpt: Optional[str] = None
    status: str = "publish"
    date: Optional[str] = None
    author: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "ignore"

    @field_validator("title", "excerpt", mode="before")
    @classmethod
    def unwrap_rendered(cls, value):
        """Core post endpoints wrap text as {"raw": ..., "rendered": ...}."""
        if isinstance(value, dict):
            return value.get("raw", value.get("rendered"))
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def empty_metadata(cls, value):
        # PHP serialises an empty associative array as []
        if value in (None, []):
            return {}
        return value


class DocumentListDTO(BaseModel):
    """Response of the paginated document list endpoint."""
    documents: List[DocumentDTO] = Field(default_factory=list)
    total: int = 0
    total_pages: int = 0
    current_page: int = 1


class ErrorResponseDTO(BaseModel):
    """WordPress style error body: {code, message, data: {status, errors}}."""
    code: Optional[str] = None
    message: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    def field_errors(self) -> Dict[str, str]:
        errors = (self.data or {}).get("errors") or {}
        if not isinstance(errors, dict):
            return {}
        flattened = {}
        for field_id, messages in errors.items():
            if isinstance(messages, list):
                flattened[str(field_id)] = "; ".join(str(m) for m in messages)
            else:
                flattened[str(field_id)] = str(messages)
        return flattened
