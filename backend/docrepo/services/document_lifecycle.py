"""
Document Lifecycle Controller

Trash, permanent delete and restore, single and bulk, behind an explicit
confirmation step. What "delete" means depends on the view: in the trash
view it is permanent, everywhere else it moves the document to the trash.
"""
import asyncio
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from .api_client.base import DocumentApi
from .error_handling_service import UNKNOWN_ERROR_MESSAGE, ErrorHandlingService
from .notification_service import NotificationService
from ..api.exceptions import error_text
from ..domain.entities import Document
from ..domain.value_objects import StatusFilter, is_trash_view
from ..core.logging_config import get_logger

logger = get_logger(__name__)

DELETE_OPERATION = "delete"
RESTORE_OPERATION = "restore"
BULK_DELETE_OPERATION = "bulk-delete"
BULK_RESTORE_OPERATION = "bulk-restore"


@dataclass(frozen=True)
class ConfirmationCopy:
    """Text for the confirmation dialogs of the current view."""
    delete_title: str
    delete_prompt: str
    delete_button: str
    delete_busy_button: str
    bulk_delete_title: str
    bulk_delete_prompt: str
    bulk_delete_button: str
    restore_title: str = "Restore Document"
    restore_prompt: str = "Are you sure you want to restore this document?"
    bulk_restore_title: str = "Restore Selected Documents"
    bulk_restore_prompt: str = "Are you sure you want to restore the selected documents?"


_TRASH_VIEW_COPY = ConfirmationCopy(
    delete_title="Delete Document Permanently",
    delete_prompt="Are you sure you want to delete this document? This action cannot be undone.",
    delete_button="Delete Permanently",
    delete_busy_button="Deleting…",
    bulk_delete_title="Delete Selected Documents Permanently",
    bulk_delete_prompt="Are you sure you want to delete the selected documents? This action cannot be undone.",
    bulk_delete_button="Delete Selected Permanently",
)

_LIST_VIEW_COPY = ConfirmationCopy(
    delete_title="Trash Document",
    delete_prompt="Are you sure you want to trash this document?",
    delete_button="Trash",
    delete_busy_button="Trashing…",
    bulk_delete_title="Trash Selected Documents",
    bulk_delete_prompt="Are you sure you want to trash the selected documents?",
    bulk_delete_button="Trash Selected",
)


class DocumentLifecycleController:
    """
    Confirmation-gated trash / delete / restore.

    Bulk operations are all-or-nothing: every call runs concurrently and
    the first failure fails the batch with a single error notice.
    """

    def __init__(
        self,
        api: DocumentApi,
        errors: ErrorHandlingService,
        notifications: NotificationService,
        status_filter: StatusFilter = StatusFilter.ALL,
        on_select_all: Optional[Callable[[bool], None]] = None,
        on_changed: Optional[Callable[[], object]] = None
    ):
        """
        Args:
            api: Document API adapter
            errors: Failure routing
            notifications: Notice stack
            status_filter: Current view
            on_select_all: Called with False to clear the selection after a bulk action
            on_changed: Called (and awaited if it returns a coroutine) after any successful change
        """
        self._api = api
        self._errors = errors
        self._notifications = notifications
        self.status_filter = StatusFilter(status_filter)
        self._on_select_all = on_select_all
        self._on_changed = on_changed

        self.delete_target: Optional[Document] = None
        self.restore_target: Optional[Document] = None
        self.bulk_delete_confirm_open = False
        self.bulk_restore_confirm_open = False

        self.is_deleting = False
        self.is_restoring = False
        self.is_multi_deleting = False
        self.is_multi_restoring = False

        # document id -> whether the failed delete was permanent
        self._failed_deletes: Dict[int, bool] = {}

    @property
    def in_trash_view(self) -> bool:
        return is_trash_view(self.status_filter)

    def confirmation_copy(self) -> ConfirmationCopy:
        return _TRASH_VIEW_COPY if self.in_trash_view else _LIST_VIEW_COPY

    # Confirmation gating

    def request_delete(self, document: Document):
        self.delete_target = document

    def cancel_delete(self):
        self.delete_target = None

    async def confirm_delete(self) -> bool:
        if self.delete_target is None:
            return False
        return await self.delete_single(self.delete_target.id)

    def request_restore(self, document: Document):
        self.restore_target = document

    def cancel_restore(self):
        self.restore_target = None

    async def confirm_restore(self) -> bool:
        if self.restore_target is None:
            return False
        return await self.restore_single(self.restore_target.id)

    def open_bulk_delete_confirm(self):
        self.bulk_delete_confirm_open = True

    def close_bulk_delete_confirm(self):
        self.bulk_delete_confirm_open = False

    async def confirm_bulk_delete(self, document_ids: Iterable[int]) -> bool:
        if not self.bulk_delete_confirm_open:
            return False
        return await self.delete_bulk(document_ids)

    def open_bulk_restore_confirm(self):
        self.bulk_restore_confirm_open = True

    def close_bulk_restore_confirm(self):
        self.bulk_restore_confirm_open = False

    async def confirm_bulk_restore(self, document_ids: Iterable[int]) -> bool:
        if not self.bulk_restore_confirm_open:
            return False
        return await self.restore_bulk(document_ids)

    # Operations

    async def delete_single(self, document_id: int, permanent: Optional[bool] = None) -> bool:
        """
        Permanently delete (trash view) or trash one document.

        Args:
            document_id: Document to delete
            permanent: Overrides the choice made from the current view
        """
        if self.is_deleting:
            logger.debug(f"Delete already in progress, ignoring document {document_id}")
            return False

        trash_view = self.in_trash_view if permanent is None else permanent
        self.is_deleting = True
        try:
            await self._delete_call(document_id, trash_view)
        except Exception as e:
            self._failed_deletes[document_id] = trash_view
            template = "Error deleting document {}: {}" if trash_view else "Error trashing document {}: {}"
            self._errors.report(
                DELETE_OPERATION,
                document_id,
                e,
                custom_message=template.format(document_id, error_text(e) or UNKNOWN_ERROR_MESSAGE),
            )
            return False
        finally:
            self.is_deleting = False

        self._failed_deletes.pop(document_id, None)
        self.delete_target = None
        self._notifications.success(
            "Document deleted successfully." if trash_view else "Document trashed successfully."
        )
        await self._changed()
        return True

    async def retry_delete(self, document_id: int) -> bool:
        """Retry handler for queued delete failures; repeats the call that failed."""
        return await self.delete_single(document_id, permanent=self._failed_deletes.get(document_id))

    async def delete_bulk(self, document_ids: Iterable[int]) -> bool:
        """Delete or trash every selected document; any failure fails the batch."""
        ids = list(document_ids)
        if not ids:
            return False
        if self.is_multi_deleting:
            logger.debug("Bulk delete already in progress")
            return False

        trash_view = self.in_trash_view
        self.is_multi_deleting = True
        try:
            await asyncio.gather(*(self._delete_call(document_id, trash_view) for document_id in ids))
        except Exception as e:
            self._errors.report(
                BULK_DELETE_OPERATION,
                None,
                e,
                add_to_retry_queue=False,
                custom_message=(
                    "Error deleting one or more documents."
                    if trash_view else "Error trashing one or more documents."
                ),
            )
            return False
        finally:
            self.is_multi_deleting = False
            self.bulk_delete_confirm_open = False

        self._clear_selection()
        self._notifications.success(
            "Selected documents were deleted successfully."
            if trash_view else "Selected documents were trashed successfully."
        )
        await self._changed()
        return True

    async def restore_single(self, document_id: int) -> bool:
        """Restore one trashed document (trash view only)."""
        if not self.in_trash_view:
            logger.warning(f"Restore of document {document_id} requested outside the trash view")
            return False
        if self.is_restoring:
            return False

        self.is_restoring = True
        try:
            await self._api.restore_document(document_id)
        except Exception as e:
            self._errors.report(
                RESTORE_OPERATION,
                document_id,
                e,
                custom_message=f"Error restoring document {document_id}: {error_text(e) or UNKNOWN_ERROR_MESSAGE}",
            )
            return False
        finally:
            self.is_restoring = False

        self.restore_target = None
        self._notifications.success("Document restored successfully.")
        await self._changed()
        return True

    async def restore_bulk(self, document_ids: Iterable[int]) -> bool:
        ids = list(document_ids)
        if not ids or not self.in_trash_view:
            return False
        if self.is_multi_restoring:
            return False

        self.is_multi_restoring = True
        try:
            await asyncio.gather(*(self._api.restore_document(document_id) for document_id in ids))
        except Exception as e:
            self._errors.report(
                BULK_RESTORE_OPERATION,
                None,
                e,
                add_to_retry_queue=False,
                custom_message="Error restoring one or more documents.",
            )
            return False
        finally:
            self.is_multi_restoring = False
            self.bulk_restore_confirm_open = False

        self._clear_selection()
        self._notifications.success("Selected documents were restored successfully.")
        await self._changed()
        return True

    async def _delete_call(self, document_id: int, trash_view: bool):
        if trash_view:
            return await self._api.permanently_delete_document(document_id)
        return await self._api.trash_document(document_id)

    def _clear_selection(self):
        if self._on_select_all is not None:
            self._on_select_all(False)

    async def _changed(self):
        if self._on_changed is None:
            return
        result = self._on_changed()
        if asyncio.iscoroutine(result):
            await result


def selected_titles(documents: Iterable[Document], selected_ids: Iterable[int]) -> List[str]:
    """Titles listed in a bulk confirmation dialog, in list order."""
    wanted = set(selected_ids)
    return [document.title for document in documents if document.id in wanted]
