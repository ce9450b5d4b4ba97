"""
Domain layer - Contains document entities and value objects.
This layer is independent of transports and frameworks.
"""
from .entities import Document, DocumentPage, MetadataField, TaxonomyOption
from .value_objects import DocumentStatus, FieldType, MetadataValue, StatusFilter

__all__ = [
    "Document",
    "DocumentPage",
    "MetadataField",
    "TaxonomyOption",
    "DocumentStatus",
    "FieldType",
    "MetadataValue",
    "StatusFilter"
]
