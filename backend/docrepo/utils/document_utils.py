"""
Document utility functions - Pure functions shared by the edit engine and
the document list.
"""
from typing import Any, Dict, Iterable, Optional, Tuple

from ..domain.entities import Document, MetadataField
from ..domain.value_objects import EXCERPT_KEY, MetadataValue

EMPTY_DISPLAY = "—"


def as_text(value: Any) -> str:
    """
    Coerce a metadata value for comparison.
    None becomes "", lists join with "," so multi-term values compare stably.
    """
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)
    return str(value)


def values_differ(original: Any, edited: Any) -> bool:
    return as_text(original) != as_text(edited)


def edit_buffer_for(document: Document, fields: Iterable[MetadataField]) -> Dict[str, MetadataValue]:
    """Seed values for editing one document: every configured field plus the excerpt."""
    values: Dict[str, MetadataValue] = {}
    for field in fields:
        value = document.metadata.get(field.id)
        values[field.id] = value if value is not None else ""
    values[EXCERPT_KEY] = document.excerpt if document.excerpt is not None else ""
    return values


def row_snapshot(document: Document) -> Dict[str, MetadataValue]:
    """Spreadsheet baseline for one row: all current metadata plus the excerpt."""
    snapshot = {
        key: list(value) if isinstance(value, list) else value
        for key, value in document.metadata.items()
    }
    snapshot[EXCERPT_KEY] = document.excerpt or ""
    return snapshot


def diff_document(
    document: Document,
    edited: Dict[str, MetadataValue],
    fields: Iterable[MetadataField]
) -> Tuple[Dict[str, MetadataValue], Optional[str]]:
    """
    Split pending edits into the two kinds of update.

    Returns:
        (changed metadata fields, new excerpt or None when unchanged)
    """
    metadata_changes: Dict[str, MetadataValue] = {}
    for field in fields:
        if field.id not in edited:
            continue
        new_value = edited.get(field.id)
        if values_differ(document.metadata.get(field.id), new_value):
            metadata_changes[field.id] = new_value if new_value is not None else ""

    new_excerpt = None
    if EXCERPT_KEY in edited and values_differ(document.excerpt, edited.get(EXCERPT_KEY)):
        new_excerpt = as_text(edited.get(EXCERPT_KEY))

    return metadata_changes, new_excerpt


def has_row_changes(document: Document, edited: Dict[str, MetadataValue], fields: Iterable[MetadataField]) -> bool:
    metadata_changes, new_excerpt = diff_document(document, edited, fields)
    return bool(metadata_changes) or new_excerpt is not None


def format_file_size(size: Optional[int]) -> str:
    """Human readable size, e.g. 1536 -> "1.5 KB"."""
    if size is None:
        return EMPTY_DISPLAY
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    index = 0
    scaled = float(size)
    while scaled >= 1024 and index < len(units) - 1:
        scaled /= 1024
        index += 1
    return f"{round(scaled, 2):g} {units[index]}"


def display_value(field: MetadataField, value: Any) -> str:
    """Read-only cell text: taxonomy terms joined with ", ", empty shown as a dash."""
    if value in (None, "", []):
        return EMPTY_DISPLAY
    if field.is_taxonomy() and isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)
