"""
Metadata Edit Engine

Owns the two metadata editing surfaces of the document list:

- single-document editing (a modal with one document's fields and excerpt)
- spreadsheet mode (every row of the current page editable at once)

The engine keeps a shadow copy of the documents it was given, diffs edit
buffers against it, sends only what changed, and writes server-confirmed
records back into the shadow one whole record at a time. Failures never
escape the engine; they are routed to the ErrorHandlingService.
"""
import asyncio
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .api_client.base import DocumentApi
from .error_handling_service import ErrorHandlingService
from .metadata_state import (
    ClearBulkChanges,
    ClearEditingDocument,
    EditBuffer,
    EnterSpreadsheetMode,
    ExitSpreadsheetMode,
    MetadataEvent,
    MetadataState,
    RecomputeBulkChanges,
    ReconcileBulkRows,
    SetEditingDocument,
    SetFieldErrors,
    SetSavingBulk,
    SetSavingSingle,
    UpdateBulkMetadata,
    UpdateEditedValues,
    reduce,
)
from .notification_service import NotificationService
from ..api.exceptions import ApiError, PartialBatchFailure, UserCancelled
from ..domain.entities import Document, MetadataField
from ..domain.value_objects import EXCERPT_KEY, MetadataValue
from ..utils.document_utils import (
    diff_document,
    edit_buffer_for,
    has_row_changes,
    row_snapshot,
    values_differ,
)
from ..core.logging_config import get_logger

logger = get_logger(__name__)

METADATA_OPERATION = "metadata"
BULK_METADATA_OPERATION = "bulk-metadata"

_METADATA_CALL = "metadata"
_EXCERPT_CALL = "excerpt"


@dataclass
class BulkSaveResult:
    """Outcome of one batch of row saves."""
    attempted: Set[int] = field(default_factory=set)
    updated: Set[int] = field(default_factory=set)
    failed: Set[int] = field(default_factory=set)
    failed_calls: int = 0
    # per document id: the cells sent, and the stored values of those confirmed
    sent: Dict[int, EditBuffer] = field(default_factory=dict)
    reconciled: Dict[int, EditBuffer] = field(default_factory=dict)


class MetadataEditEngine:
    """
    State machine for metadata editing.

    Single:  Idle -> Editing -> Saving -> Idle | Editing (with errors)
    Bulk:    Idle -> Spreadsheet -> Spreadsheet (dirty) -> SavingBulk
             -> Idle | Spreadsheet (dirty, failures kept for retry)

    The two surfaces are mutually exclusive: spreadsheet mode cannot be
    entered while a document is being edited, and a document cannot be
    opened for editing while spreadsheet mode is on.
    """

    def __init__(
        self,
        api: DocumentApi,
        errors: ErrorHandlingService,
        notifications: NotificationService,
        metadata_fields: Iterable[MetadataField] = (),
        documents: Iterable[Document] = (),
        on_update_documents: Optional[Callable[[List[Document]], None]] = None
    ):
        """
        Args:
            api: Document API adapter
            errors: Failure routing
            notifications: Notice stack
            metadata_fields: Configured fields
            documents: Initial document collection (becomes the shadow copy)
            on_update_documents: Receives the full collection after every successful save
        """
        self._api = api
        self._errors = errors
        self._notifications = notifications
        self._fields: List[MetadataField] = list(metadata_fields)
        self._documents: List[Document] = list(documents)
        self._on_update_documents = on_update_documents
        self._state = MetadataState()
        self._listeners: List[Callable[[MetadataState], None]] = []

    # State plumbing

    @property
    def state(self) -> MetadataState:
        return self._state

    @property
    def documents(self) -> List[Document]:
        """The shadow copy."""
        return list(self._documents)

    @property
    def metadata_fields(self) -> List[MetadataField]:
        return list(self._fields)

    def dispatch(self, event: MetadataEvent) -> MetadataState:
        self._state = reduce(self._state, event)
        for listener in list(self._listeners):
            listener(self._state)
        return self._state

    def subscribe(self, listener: Callable[[MetadataState], None]) -> Callable[[], None]:
        """Call ``listener`` with the new state after every event; returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Callable[[MetadataState], None]):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_documents(self, documents: Iterable[Document]):
        """Replace the shadow copy with a freshly supplied collection."""
        self._documents = list(documents)

    def set_metadata_fields(self, fields: Iterable[MetadataField]):
        self._fields = list(fields)

    def find_document(self, document_id: int) -> Optional[Document]:
        for document in self._documents:
            if document.id == document_id:
                return document
        return None

    def _replace_document(self, document: Document) -> bool:
        for index, existing in enumerate(self._documents):
            if existing.id == document.id:
                self._documents[index] = document
                return True
        return False

    def _propagate(self):
        if self._on_update_documents is not None:
            self._on_update_documents(list(self._documents))

    # Single document editing

    def begin_edit(self, document: Optional[Document]) -> bool:
        """
        Open a document for editing, or cancel editing with None.
        Opening another document replaces the current edit without saving it.
        """
        if document is None:
            self.dispatch(ClearEditingDocument())
            return True

        if self._state.is_spreadsheet_mode:
            logger.warning(f"Cannot edit document {document.id} while spreadsheet mode is active")
            return False

        self.dispatch(SetEditingDocument(document=document, initial_values=edit_buffer_for(document, self._fields)))
        return True

    def cancel_edit(self):
        self.begin_edit(None)

    def update_field(self, field_id: str, value: MetadataValue):
        """Buffer a new value for the document being edited."""
        if self._state.editing_document is None:
            logger.debug(f"Ignoring edit of '{field_id}' with no document open")
            return
        self.dispatch(UpdateEditedValues(values={field_id: value}))

    def has_changed(self) -> bool:
        """True if any buffered field or the excerpt differs from the edited document."""
        document = self._state.editing_document
        if document is None:
            return False
        edited = self._state.edited_values

        for metadata_field in self._fields:
            if values_differ(document.metadata.get(metadata_field.id), edited.get(metadata_field.id)):
                return True
        return values_differ(document.excerpt, edited.get(EXCERPT_KEY))

    async def save_single(self) -> bool:
        """
        Save the open document.

        Sends a metadata patch for changed fields and an excerpt update when
        the excerpt changed, concurrently. Edits are kept if anything fails.

        Returns:
            True when the save succeeded
        """
        document = self._state.editing_document
        if document is None:
            return False
        if self._state.is_saving_single:
            logger.debug(f"Save already in progress for document {document.id}")
            return False

        edited = dict(self._state.edited_values)
        self.dispatch(SetSavingSingle(saving=True))
        try:
            metadata_changes, new_excerpt = diff_document(document, edited, self._fields)

            calls = []
            if metadata_changes:
                calls.append(self._api.patch_document_metadata(document.id, metadata_changes))
            if new_excerpt is not None:
                calls.append(self._api.update_document_core(document.id, excerpt=new_excerpt))
            await asyncio.gather(*calls)

            changes = {} if new_excerpt is None else {"excerpt": new_excerpt}
            updated = document.with_changes(metadata=metadata_changes, **changes)
            if not self._replace_document(updated):
                logger.info(f"Document {document.id} left the list before its save finished")
            self._propagate()

            # A different document may have been opened while this save was in flight
            current = self._state.editing_document
            if current is None or current.id == document.id:
                self.dispatch(ClearEditingDocument())

            self._notifications.success("Document metadata updated successfully")
            logger.info(
                f"Saved document {document.id}: {len(metadata_changes)} field(s), "
                f"excerpt {'changed' if new_excerpt is not None else 'unchanged'}"
            )
            return True

        except UserCancelled:
            logger.info(f"Save of document {document.id} cancelled; discarding edits")
            self.dispatch(ClearEditingDocument())
            return False

        except Exception as e:
            if isinstance(e, ApiError) and e.field_errors:
                self.dispatch(SetFieldErrors(errors=e.field_errors))
            custom_message = e.message if isinstance(e, ApiError) and e.message else "Failed to update metadata"
            self._errors.report(METADATA_OPERATION, document.id, e, custom_message=custom_message)
            return False

        finally:
            self.dispatch(SetSavingSingle(saving=False))

    # Spreadsheet mode

    def enter_spreadsheet_mode(self) -> bool:
        """Start bulk editing with every row seeded from the shadow copy."""
        if self._state.editing_document is not None or self._state.is_saving_single:
            logger.warning("Cannot enter spreadsheet mode while a document is being edited")
            return False
        if self._state.is_spreadsheet_mode:
            return True

        initial = {document.id: row_snapshot(document) for document in self._documents}
        self.dispatch(EnterSpreadsheetMode(initial_bulk_values=initial))
        return True

    def exit_spreadsheet_mode(self):
        """Leave spreadsheet mode, discarding unsaved edits."""
        self.dispatch(ExitSpreadsheetMode())

    def toggle_spreadsheet_mode(self, enabled: bool) -> bool:
        if enabled:
            return self.enter_spreadsheet_mode()
        self.exit_spreadsheet_mode()
        return True

    def update_bulk_field(self, document_id: int, field_id: str, value: MetadataValue) -> bool:
        """Buffer one cell and recompute whether anything differs from the shadow copy."""
        if not self._state.is_spreadsheet_mode:
            logger.debug(f"Ignoring bulk edit of document {document_id} outside spreadsheet mode")
            return False

        row = {**self._state.bulk_edited_metadata.get(document_id, {}), field_id: value}
        bulk = {**self._state.bulk_edited_metadata, document_id: row}
        self.dispatch(UpdateBulkMetadata(
            document_id=document_id,
            field_id=field_id,
            value=value,
            has_changes=self._bulk_has_changes(bulk),
        ))
        return True

    def _bulk_has_changes(self, bulk: Dict[int, EditBuffer]) -> bool:
        for document_id, edited in bulk.items():
            original = self.find_document(document_id)
            if original is not None and has_row_changes(original, edited, self._fields):
                return True
        return False

    async def save_bulk(self) -> bool:
        """
        Save every changed row of the spreadsheet.

        Unchanged rows are skipped. All calls run concurrently and each one
        succeeds or fails on its own; saved rows take the server's record.
        With no failures spreadsheet mode is closed, otherwise it stays open
        with the edits so failed rows can be retried.

        Returns:
            True when every attempted update succeeded
        """
        if self._state.is_saving_bulk:
            logger.debug("Bulk save already in progress")
            return False
        if not self._state.is_spreadsheet_mode:
            return False

        self.dispatch(SetSavingBulk(saving=True))
        try:
            result = await self._save_rows(dict(self._state.bulk_edited_metadata))
            return self._finish_bulk_save(result, close_when_clean=False)
        except Exception as e:
            self._errors.report(BULK_METADATA_OPERATION, None, e, add_to_retry_queue=False)
            return False
        finally:
            self.dispatch(SetSavingBulk(saving=False))

    async def retry_metadata(self, document_id: int) -> bool:
        """
        Retry handler for queued metadata failures.
        Re-saves the document's spreadsheet row, or the open single edit.
        """
        state = self._state
        if state.is_spreadsheet_mode and document_id in state.bulk_edited_metadata:
            if state.is_saving_bulk:
                return False
            self.dispatch(SetSavingBulk(saving=True))
            try:
                result = await self._save_rows({document_id: dict(state.bulk_edited_metadata[document_id])})
                return self._finish_bulk_save(result, close_when_clean=True)
            except Exception as e:
                self._errors.report(METADATA_OPERATION, document_id, e)
                return False
            finally:
                self.dispatch(SetSavingBulk(saving=False))

        editing = state.editing_document
        if editing is not None and editing.id == document_id:
            return await self.save_single()

        logger.info(f"No pending metadata edits for document {document_id}; nothing to retry")
        return False

    async def _save_rows(self, rows: Dict[int, EditBuffer]) -> BulkSaveResult:
        """Send the diff of every changed row and reconcile the responses."""
        result = BulkSaveResult()
        planned: List[Tuple[int, str]] = []
        calls = []
        sent = result.sent

        for document_id, edited in rows.items():
            original = self.find_document(document_id)
            if original is None:
                continue
            metadata_changes, new_excerpt = diff_document(original, edited, self._fields)
            sent[document_id] = dict(metadata_changes)
            if new_excerpt is not None:
                sent[document_id][EXCERPT_KEY] = new_excerpt
            if metadata_changes:
                planned.append((document_id, _METADATA_CALL))
                calls.append(self._api.patch_document_metadata(document_id, metadata_changes))
            if new_excerpt is not None:
                planned.append((document_id, _EXCERPT_CALL))
                calls.append(self._api.update_document_core(document_id, excerpt=new_excerpt))
            if metadata_changes or new_excerpt is not None:
                result.attempted.add(document_id)

        if not calls:
            return result

        logger.info(f"Saving {len(result.attempted)} changed row(s) with {len(calls)} call(s)")
        outcomes = await asyncio.gather(*calls, return_exceptions=True)

        responses: Dict[int, Dict[str, Document]] = {}
        for (document_id, call_kind), outcome in zip(planned, outcomes):
            if isinstance(outcome, BaseException):
                result.failed.add(document_id)
                result.failed_calls += 1
                self._errors.report(METADATA_OPERATION, document_id, outcome, show_notice=False)
            else:
                responses.setdefault(document_id, {})[call_kind] = outcome

        for document_id, by_kind in responses.items():
            saved = self._merge_responses(by_kind)
            self._replace_document(saved)
            result.updated.add(document_id)
            result.reconciled[document_id] = self._confirmed_cells(saved, sent[document_id], by_kind)

        return result

    @staticmethod
    def _merge_responses(by_kind: Dict[str, Document]) -> Document:
        """
        Combine the records returned for one row. The metadata response is
        authoritative for metadata, the excerpt response for the excerpt,
        whichever arrived first.
        """
        metadata_doc = by_kind.get(_METADATA_CALL)
        excerpt_doc = by_kind.get(_EXCERPT_CALL)
        if metadata_doc is None:
            return excerpt_doc
        if excerpt_doc is None:
            return metadata_doc
        return replace(metadata_doc, excerpt=excerpt_doc.excerpt)

    @staticmethod
    def _confirmed_cells(saved: Document, sent: EditBuffer, by_kind: Dict[str, Document]) -> EditBuffer:
        """
        The stored value of every cell whose call succeeded. The server may
        canonicalise what it was sent, so buffered rows take these values
        back; cells of a failed call stay as typed.
        """
        stored = row_snapshot(saved)
        cells: EditBuffer = {}
        for key in sent:
            call_kind = _EXCERPT_CALL if key == EXCERPT_KEY else _METADATA_CALL
            if call_kind in by_kind:
                cells[key] = stored.get(key, "")
        return cells

    def _reconcile_buffer(self, result: BulkSaveResult):
        bulk = self._state.bulk_edited_metadata
        rows: Dict[int, EditBuffer] = {}
        for document_id, cells in result.reconciled.items():
            if document_id not in bulk:
                continue
            # a cell edited again while the save was in flight keeps the newer value
            rows[document_id] = {
                key: value for key, value in cells.items()
                if not values_differ(bulk[document_id].get(key), result.sent[document_id][key])
            }
        if rows:
            self.dispatch(ReconcileBulkRows(rows=rows))

    def _finish_bulk_save(self, result: BulkSaveResult, close_when_clean: bool) -> bool:
        if result.updated:
            self._propagate()
            self._reconcile_buffer(result)

        if result.failed:
            failure = PartialBatchFailure(failed=len(result.failed), attempted=len(result.attempted))
            logger.warning(f"Bulk metadata save: {failure} ({result.failed_calls} failed call(s))")
            self._notifications.warning(
                f"{failure.failed} of {failure.attempted} metadata updates failed. "
                f"You can retry the failed operations.",
                duration_ms=0,
            )
            self.dispatch(RecomputeBulkChanges(has_changes=self._bulk_has_changes(self._state.bulk_edited_metadata)))
            return False

        if close_when_clean:
            still_dirty = self._bulk_has_changes(self._state.bulk_edited_metadata)
            self.dispatch(RecomputeBulkChanges(has_changes=still_dirty))
            if still_dirty:
                return True

        self._notifications.success("All metadata changes saved successfully.")
        self.dispatch(ClearBulkChanges())
        self.dispatch(ExitSpreadsheetMode())
        return True
