"""
Metadata edit state and its reducer.

The engine's state only changes by reducing one of the events below; each
event is a small frozen dataclass so every transition is explicit.
"""
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Union

from ..domain.entities import Document
from ..domain.value_objects import MetadataValue

# field id (or "excerpt") -> pending value
EditBuffer = Dict[str, MetadataValue]


@dataclass(frozen=True)
class MetadataState:
    # Single document editing
    editing_document: Optional[Document] = None
    edited_values: EditBuffer = field(default_factory=dict)
    field_errors: Dict[str, str] = field(default_factory=dict)
    is_saving_single: bool = False

    # Spreadsheet mode
    is_spreadsheet_mode: bool = False
    bulk_edited_metadata: Dict[int, EditBuffer] = field(default_factory=dict)
    has_metadata_changes: bool = False
    is_saving_bulk: bool = False


@dataclass(frozen=True)
class SetEditingDocument:
    document: Document
    initial_values: EditBuffer


@dataclass(frozen=True)
class ClearEditingDocument:
    pass


@dataclass(frozen=True)
class UpdateEditedValues:
    values: EditBuffer


@dataclass(frozen=True)
class SetFieldErrors:
    errors: Dict[str, str]


@dataclass(frozen=True)
class SetSavingSingle:
    saving: bool


@dataclass(frozen=True)
class EnterSpreadsheetMode:
    initial_bulk_values: Dict[int, EditBuffer]


@dataclass(frozen=True)
class ExitSpreadsheetMode:
    pass


@dataclass(frozen=True)
class UpdateBulkMetadata:
    document_id: int
    field_id: str
    value: MetadataValue
    has_changes: bool


@dataclass(frozen=True)
class RecomputeBulkChanges:
    has_changes: bool


@dataclass(frozen=True)
class ReconcileBulkRows:
    """Overwrite saved cells of buffered rows with the values the server stored."""
    rows: Dict[int, EditBuffer]


@dataclass(frozen=True)
class SetSavingBulk:
    saving: bool


@dataclass(frozen=True)
class ClearBulkChanges:
    pass


MetadataEvent = Union[
    SetEditingDocument,
    ClearEditingDocument,
    UpdateEditedValues,
    SetFieldErrors,
    SetSavingSingle,
    EnterSpreadsheetMode,
    ExitSpreadsheetMode,
    UpdateBulkMetadata,
    RecomputeBulkChanges,
    ReconcileBulkRows,
    SetSavingBulk,
    ClearBulkChanges,
]


def reduce(state: MetadataState, event: MetadataEvent) -> MetadataState:
    """Return the state that follows ``event``; ``state`` is left untouched."""
    if isinstance(event, SetEditingDocument):
        return replace(
            state,
            editing_document=event.document,
            edited_values=dict(event.initial_values),
            field_errors={},
        )
    elif isinstance(event, ClearEditingDocument):
        return replace(state, editing_document=None, edited_values={}, field_errors={})
    elif isinstance(event, UpdateEditedValues):
        return replace(state, edited_values={**state.edited_values, **event.values})
    elif isinstance(event, SetFieldErrors):
        return replace(state, field_errors=dict(event.errors))
    elif isinstance(event, SetSavingSingle):
        return replace(state, is_saving_single=event.saving)
    elif isinstance(event, EnterSpreadsheetMode):
        return replace(
            state,
            is_spreadsheet_mode=True,
            bulk_edited_metadata={doc_id: dict(values) for doc_id, values in event.initial_bulk_values.items()},
            has_metadata_changes=False,
        )
    elif isinstance(event, ExitSpreadsheetMode):
        return replace(state, is_spreadsheet_mode=False, bulk_edited_metadata={}, has_metadata_changes=False)
    elif isinstance(event, UpdateBulkMetadata):
        row = {**state.bulk_edited_metadata.get(event.document_id, {}), event.field_id: event.value}
        return replace(
            state,
            bulk_edited_metadata={**state.bulk_edited_metadata, event.document_id: row},
            has_metadata_changes=event.has_changes,
        )
    elif isinstance(event, ReconcileBulkRows):
        bulk = dict(state.bulk_edited_metadata)
        for document_id, values in event.rows.items():
            if document_id in bulk:
                bulk[document_id] = {**bulk[document_id], **values}
        return replace(state, bulk_edited_metadata=bulk)
    elif isinstance(event, RecomputeBulkChanges):
        return replace(state, has_metadata_changes=event.has_changes)
    elif isinstance(event, SetSavingBulk):
        return replace(state, is_saving_bulk=event.saving)
    elif isinstance(event, ClearBulkChanges):
        return replace(state, bulk_edited_metadata={}, has_metadata_changes=False)
    else:
        raise TypeError(f"Unknown metadata event: {event!r}")
