"""
Value Objects - Immutable objects that represent domain concepts.
These have no identity and are compared by value.
"""
from enum import Enum
from typing import List, NewType, Union

# Value objects for type safety and domain clarity
DocumentId = NewType("DocumentId", int)
FieldId = NewType("FieldId", str)

# Metadata values are plain strings, or lists of term names for multi-term taxonomy fields
MetadataValue = Union[str, List[str]]

# Key used for the excerpt inside edit buffers
EXCERPT_KEY = "excerpt"

# Metadata keys filled from the attached file, never configurable as fields
FILE_ID_KEY = "document_file_id"
FILE_URL_KEY = "document_file_url"
FILE_NAME_KEY = "document_file_name"
FILE_TYPE_KEY = "document_file_type"
FILE_SIZE_KEY = "document_file_size"

RESERVED_METADATA_KEYS = frozenset({
    EXCERPT_KEY,
    FILE_ID_KEY,
    FILE_URL_KEY,
    FILE_NAME_KEY,
    FILE_TYPE_KEY,
    FILE_SIZE_KEY,
})


class DocumentStatus(str, Enum):
    """Post statuses a document can have."""
    PUBLISH = "publish"
    DRAFT = "draft"
    PENDING = "pending"
    PRIVATE = "private"
    FUTURE = "future"
    INHERIT = "inherit"
    TRASH = "trash"


class FieldType(str, Enum):
    """Supported metadata field types."""
    TEXT = "text"
    DATE = "date"
    TAXONOMY = "taxonomy"


class StatusFilter(str, Enum):
    """List views: everything that is not trashed, or the trash."""
    ALL = "all"
    TRASH = "trash"


# Statuses shown in the "all" view
VISIBLE_STATUSES = (
    DocumentStatus.PUBLISH,
    DocumentStatus.DRAFT,
    DocumentStatus.PENDING,
    DocumentStatus.PRIVATE,
)


def is_trash_view(status: Union[str, StatusFilter, None]) -> bool:
    """Return True if the status filter is the trash view."""
    return status is not None and str(getattr(status, "value", status)) == StatusFilter.TRASH.value


def is_all_view(status: Union[str, StatusFilter, None]) -> bool:
    """Return True if the status filter is the "all" view."""
    return status is not None and str(getattr(status, "value", status)) == StatusFilter.ALL.value
