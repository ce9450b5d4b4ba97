"""
Document List Orchestrator

Top-level composition of the document list: holds the canonical page of
documents, the view (status filter, page, selection) and wires the edit
engine, the lifecycle controller and the upload coordinator to one
notification stack and one error handler.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .api_client.base import DocumentApi, UploadFile
from .document_lifecycle import DELETE_OPERATION, RESTORE_OPERATION, DocumentLifecycleController
from .error_handling_service import ErrorHandlingService
from .metadata_engine import METADATA_OPERATION, MetadataEditEngine
from .notification_service import NotificationService
from .upload_service import UPLOAD_OPERATION, FileUploadCoordinator, UploadItem
from ..core.config import RepositoryConfig
from ..domain.entities import Document, MetadataField
from ..domain.value_objects import EXCERPT_KEY, DocumentStatus, MetadataValue, StatusFilter, is_trash_view
from ..utils.document_utils import EMPTY_DISPLAY, as_text, display_value, format_file_size
from ..core.logging_config import get_logger

logger = get_logger(__name__)

LOAD_OPERATION = "load"

TRASH_VIEW_ACTIONS = ("restore", "delete_permanently")
LIST_VIEW_ACTIONS = ("download", "edit", "trash")


@dataclass(frozen=True)
class DocumentRow:
    """View model for one table row."""
    id: int
    title: str
    excerpt: str
    cells: Dict[str, str]
    file_name: str
    file_size: str
    file_url: Optional[str]
    selected: bool
    editable: bool
    actions: Tuple[str, ...]


@dataclass(frozen=True)
class Pagination:
    current_page: int
    total_pages: int
    has_previous: bool
    has_next: bool


@dataclass(frozen=True)
class DocumentCounts:
    total: int
    trash: int


class DocumentListOrchestrator:
    """
    Owns the list view and composes the services around it.

    Usage:
        orchestrator = DocumentListOrchestrator(api, RepositoryConfig.from_env())
        await orchestrator.load()
        orchestrator.engine.enter_spreadsheet_mode()
    """

    def __init__(
        self,
        api: DocumentApi,
        config: RepositoryConfig,
        notifications: Optional[NotificationService] = None,
        on_documents_update: Optional[Callable[[List[Document]], None]] = None,
        status_filter: StatusFilter = StatusFilter.ALL
    ):
        self.api = api
        self.config = config
        self.notifications = notifications or NotificationService(default_duration_ms=config.notice_duration_ms)
        self.errors = ErrorHandlingService(self.notifications)
        self._on_documents_update = on_documents_update

        self.documents: List[Document] = []
        self.metadata_fields: List[MetadataField] = []
        self.current_page = 1
        self.total_pages = 1
        self.total_count = 0
        self.status_filter = StatusFilter(status_filter)
        self.selected_ids: Set[int] = set()
        self.status_counts: Dict[str, int] = {}
        self.is_loading = False

        self.engine = MetadataEditEngine(
            api,
            self.errors,
            self.notifications,
            on_update_documents=self._handle_engine_update,
        )
        self.lifecycle = DocumentLifecycleController(
            api,
            self.errors,
            self.notifications,
            status_filter=self.status_filter,
            on_select_all=self.select_all,
            on_changed=self.load,
        )
        self.uploader = FileUploadCoordinator(
            api,
            config,
            self.errors,
            self.notifications,
            on_uploaded=self._handle_uploaded,
        )

    @property
    def in_trash_view(self) -> bool:
        return is_trash_view(self.status_filter)

    # Loading and navigation

    async def load(self) -> bool:
        """Fetch field definitions, the current page and the status counts."""
        self.is_loading = True
        try:
            fields = await self.api.get_metadata_field_definitions()
            page = await self.api.list_documents(self.current_page, self.config.per_page, self.status_filter)
            counts = await self.api.get_status_counts()
        except Exception as e:
            self.errors.report(LOAD_OPERATION, None, e, add_to_retry_queue=False)
            return False
        finally:
            self.is_loading = False

        # The last page can disappear after a delete
        if page.total_pages and self.current_page > page.total_pages:
            logger.info(f"Page {self.current_page} no longer exists, moving to page {page.total_pages}")
            self.current_page = page.total_pages
            return await self.load()

        self.metadata_fields = fields
        self.documents = list(page.documents)
        self.total_count = page.total_count
        self.total_pages = max(page.total_pages, 1)
        self.status_counts = dict(counts)

        present = {document.id for document in self.documents}
        self.selected_ids &= present

        self.engine.set_metadata_fields(fields)
        self.engine.set_documents(self.documents)
        logger.debug(
            f"Loaded page {self.current_page}/{self.total_pages} "
            f"({len(self.documents)} of {self.total_count}, view={self.status_filter.value})"
        )
        return True

    async def change_page(self, page: int) -> bool:
        """Move to another page; unsaved spreadsheet edits are discarded."""
        if page < 1 or page > self.total_pages or page == self.current_page:
            return False
        self.current_page = page
        self.selected_ids.clear()
        self.engine.exit_spreadsheet_mode()
        return await self.load()

    async def change_status_filter(self, status_filter) -> bool:
        """Switch between the list and trash views, resetting the view state."""
        status_filter = StatusFilter(status_filter)
        self.status_filter = status_filter
        self.lifecycle.status_filter = status_filter
        self.current_page = 1
        self.selected_ids.clear()
        self.engine.exit_spreadsheet_mode()
        self.engine.begin_edit(None)
        return await self.load()

    # Selection

    def select_document(self, document_id: int, selected: bool = True):
        if selected:
            self.selected_ids.add(document_id)
        else:
            self.selected_ids.discard(document_id)

    def select_all(self, selected: bool = True):
        if selected:
            self.selected_ids = {document.id for document in self.documents}
        else:
            self.selected_ids = set()

    @property
    def selected_documents(self) -> List[int]:
        """Selected ids in list order."""
        return [document.id for document in self.documents if document.id in self.selected_ids]

    # Derived view data

    def document_counts(self) -> DocumentCounts:
        """Non-trash total and trash total from the status counts."""
        total = sum(int(count or 0) for status, count in self.status_counts.items() if status != DocumentStatus.TRASH.value)
        return DocumentCounts(total=total, trash=int(self.status_counts.get(DocumentStatus.TRASH.value, 0) or 0))

    def pagination(self) -> Pagination:
        return Pagination(
            current_page=self.current_page,
            total_pages=self.total_pages,
            has_previous=self.current_page > 1,
            has_next=self.current_page < self.total_pages,
        )

    def rows(self) -> List[DocumentRow]:
        """Table rows with display values, or buffered values in spreadsheet mode."""
        state = self.engine.state
        spreadsheet = state.is_spreadsheet_mode
        actions = TRASH_VIEW_ACTIONS if self.in_trash_view else LIST_VIEW_ACTIONS

        rows = []
        for document in self.documents:
            if spreadsheet:
                buffered = state.bulk_edited_metadata.get(document.id, {})
                cells = {field.id: as_text(buffered.get(field.id)) for field in self.metadata_fields}
                excerpt = as_text(buffered.get(EXCERPT_KEY, document.excerpt))
            else:
                cells = {
                    field.id: display_value(field, document.metadata.get(field.id))
                    for field in self.metadata_fields
                }
                excerpt = document.excerpt or ""

            rows.append(DocumentRow(
                id=document.id,
                title=document.title,
                excerpt=excerpt,
                cells=cells,
                file_name=document.file_name or EMPTY_DISPLAY,
                file_size=format_file_size(document.file_size),
                file_url=document.file_url,
                selected=document.id in self.selected_ids,
                editable=spreadsheet,
                actions=actions,
            ))
        return rows

    # Composition

    async def upload_files(
        self,
        files: Iterable[UploadFile],
        initial_metadata: Optional[Dict[str, MetadataValue]] = None
    ) -> List[UploadItem]:
        return await self.uploader.handle_files(files, initial_metadata)

    async def retry_all(self) -> int:
        """Replay every queued failure through the service that owns it."""
        handlers = {
            METADATA_OPERATION: self.engine.retry_metadata,
            DELETE_OPERATION: self.lifecycle.retry_delete,
            RESTORE_OPERATION: self.lifecycle.restore_single,
            UPLOAD_OPERATION: self.uploader.retry_upload,
        }
        return await self.errors.retry_all(handlers)

    def _handle_engine_update(self, documents: List[Document]):
        self.documents = list(documents)
        if self._on_documents_update is not None:
            self._on_documents_update(list(documents))

    async def _handle_uploaded(self, documents: List[Document]):
        logger.info(f"{len(documents)} document(s) uploaded, reloading")
        await self.load()
