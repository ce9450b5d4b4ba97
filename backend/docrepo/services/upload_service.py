"""
File Upload Coordinator

Uploads a batch of picked or dropped files concurrently, tracking each file
as an UploadItem the feedback panel can render.
"""
import asyncio
import inspect
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from .api_client.base import DocumentApi, UploadFile
from .error_handling_service import ErrorHandlingService
from .notification_service import NotificationService
from ..api.exceptions import ApiError, error_text
from ..core.config import RepositoryConfig
from ..domain.entities import Document
from ..domain.value_objects import MetadataValue
from ..utils.document_utils import format_file_size
from ..core.logging_config import get_logger

logger = get_logger(__name__)

UPLOAD_OPERATION = "upload"


class UploadStatus(Enum):
    """Upload item status."""
    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class UploadItem:
    """One file of an upload batch."""
    item_id: str
    file: UploadFile
    initial_metadata: Optional[Dict[str, MetadataValue]] = None
    status: UploadStatus = UploadStatus.PENDING
    progress: int = 0
    error: Optional[str] = None
    document: Optional[Document] = None
    attempts: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def filename(self) -> str:
        return self.file.filename

    @property
    def size(self) -> int:
        return self.file.size

    def mark_uploading(self):
        """Mark item as in flight."""
        self.status = UploadStatus.UPLOADING
        self.progress = 50
        self.error = None
        self.attempts += 1
        self.started_at = datetime.now()

    def mark_success(self, document: Document):
        """Mark item as uploaded."""
        self.status = UploadStatus.SUCCESS
        self.progress = 100
        self.document = document
        self.completed_at = datetime.now()

    def mark_failed(self, error: str):
        """Mark item as failed."""
        self.status = UploadStatus.ERROR
        self.error = error
        self.completed_at = datetime.now()


class FileUploadCoordinator:
    """
    Concurrent uploads with per-file status.

    Empty and oversized files fail locally without a request. The rest are
    sent with at most ``config.upload_concurrency`` in flight.
    """

    def __init__(
        self,
        api: DocumentApi,
        config: RepositoryConfig,
        errors: ErrorHandlingService,
        notifications: NotificationService,
        on_uploaded: Optional[Callable[[List[Document]], object]] = None
    ):
        self._api = api
        self._config = config
        self._errors = errors
        self._notifications = notifications
        self._on_uploaded = on_uploaded
        self._concurrency = config.upload_concurrency
        # created inside the running loop on first use
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._semaphore_loop: Optional[asyncio.AbstractEventLoop] = None

        self.items: Dict[str, UploadItem] = {}
        self.show_upload_feedback = False

    @property
    def uploading_files(self) -> List[UploadItem]:
        """Items of every batch since the panel was last closed, in pick order."""
        return list(self.items.values())

    def close_upload_feedback(self):
        self.show_upload_feedback = False
        self.items = {
            item_id: item for item_id, item in self.items.items()
            if item.status == UploadStatus.ERROR
        }

    async def handle_files(
        self,
        files: Iterable[UploadFile],
        initial_metadata: Optional[Dict[str, MetadataValue]] = None
    ) -> List[UploadItem]:
        """
        Upload a batch of files.

        Returns:
            The batch's items, in the order the files were given
        """
        batch = [
            UploadItem(item_id=str(uuid.uuid4()), file=upload, initial_metadata=initial_metadata)
            for upload in files
        ]
        if not batch:
            return []

        for item in batch:
            self.items[item.item_id] = item
        self.show_upload_feedback = True
        logger.info(f"Uploading {len(batch)} file(s)")

        to_send = []
        for item in batch:
            problem = self._check_file(item.file)
            if problem is not None:
                item.mark_failed(problem)
                self._errors.report(
                    UPLOAD_OPERATION,
                    item.item_id,
                    ApiError(message=problem, code="upload_rejected"),
                    add_to_retry_queue=False,
                    custom_message=f"{item.filename}: {problem}",
                    show_notice=False,
                )
            else:
                to_send.append(item)

        await asyncio.gather(*(self._upload(item) for item in to_send))
        await self._finish(batch)
        return batch

    async def retry_upload(self, item_id: str) -> bool:
        """Retry handler for queued upload failures."""
        item = self.items.get(item_id)
        if item is None:
            logger.warning(f"Upload {item_id} is no longer tracked; nothing to retry")
            return False
        if item.status == UploadStatus.SUCCESS:
            return True

        self.show_upload_feedback = True
        await self._upload(item)
        await self._finish([item])
        return item.status == UploadStatus.SUCCESS

    def _check_file(self, upload: UploadFile) -> Optional[str]:
        if upload.size == 0:
            return "File is empty"
        if upload.size > self._config.max_upload_bytes:
            return (
                f"File is too large ({format_file_size(upload.size)}); "
                f"the limit is {format_file_size(self._config.max_upload_bytes)}"
            )
        return None

    def _upload_slots(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self._concurrency)
            self._semaphore_loop = loop
        return self._semaphore

    async def _upload(self, item: UploadItem):
        async with self._upload_slots():
            item.mark_uploading()
            try:
                document = await self._api.upload_document(item.file, item.initial_metadata)
            except Exception as e:
                item.mark_failed(error_text(e) or "Upload failed")
                self._errors.report(UPLOAD_OPERATION, item.item_id, e, show_notice=False)
                return
            item.mark_success(document)
            logger.debug(f"Uploaded {item.filename} as document {document.id}")

    async def _finish(self, batch: List[UploadItem]):
        succeeded = [item for item in batch if item.status == UploadStatus.SUCCESS]
        failed = [item for item in batch if item.status == UploadStatus.ERROR]

        if failed:
            self._notifications.warning(
                f"{len(failed)} of {len(batch)} file(s) failed to upload."
            )
        else:
            noun = "file" if len(succeeded) == 1 else "files"
            self._notifications.success(f"Successfully uploaded {len(succeeded)} {noun}.")

        if succeeded and self._on_uploaded is not None:
            result = self._on_uploaded([item.document for item in succeeded])
            if inspect.isawaitable(result):
                await result
