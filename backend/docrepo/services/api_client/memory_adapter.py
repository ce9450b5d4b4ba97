"""
In-memory adapter implementing DocumentApi.
Perfect for demos and testing - stores all documents in Python dicts and
mimics the platform's behaviour (taxonomy canonicalisation, trash rules,
sanitising). Data is lost when the process exits.
"""
import asyncio
import math
import re
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

from .base import DocumentApi, UploadFile
from ..metadata_fields import MetadataFieldRegistry
from ...api.exceptions import ApiError, DocumentNotFoundError
from ...domain.entities import Document, DocumentPage, MetadataField
from ...domain.value_objects import (
    DocumentId,
    DocumentStatus,
    FieldType,
    MetadataValue,
    StatusFilter,
    VISIBLE_STATUSES,
    FILE_ID_KEY,
    FILE_NAME_KEY,
    FILE_SIZE_KEY,
    FILE_TYPE_KEY,
    FILE_URL_KEY,
    is_trash_view,
)
from ...core.logging_config import get_logger

logger = get_logger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def sanitize_text(value: Any) -> str:
    """Strip tags and collapse whitespace, like the platform's text sanitiser."""
    if isinstance(value, (list, tuple)):
        value = ", ".join(str(v) for v in value)
    text = _TAG_RE.sub("", str(value if value is not None else ""))
    return re.sub(r"\s+", " ", text).strip()


class InMemoryDocumentApi(DocumentApi):
    """
    In-memory document API.

    Besides the DocumentApi contract it offers seeding helpers, a call log
    (``calls``) and failure injection (``inject_failure``) so tests can assert
    exactly which operations fired.
    """

    def __init__(self, base_url: str = "http://localhost:8080", latency: float = 0.0):
        """
        Args:
            base_url: Site URL used to build file URLs
            latency: Seconds each call sleeps, to exercise concurrency
        """
        self._documents: Dict[int, Document] = {}
        self._next_id = 1
        self._next_attachment_id = 1000
        self._clock = datetime(2024, 1, 1, 9, 0, 0)
        self._base_url = base_url.rstrip("/")
        self._latency = latency
        self._failures: List[Dict[str, Any]] = []
        self.calls: List[Tuple[str, Any]] = []
        self.registry = MetadataFieldRegistry(on_field_deleted=self._drop_field_values)

    # Seeding / test helpers

    def configure_fields(self, fields: List[Dict[str, Any]]) -> List[MetadataField]:
        """Replace the metadata field configuration."""
        return self.registry.save_fields(fields)

    def add_document(
        self,
        title: str,
        status: DocumentStatus = DocumentStatus.PUBLISH,
        excerpt: Optional[str] = None,
        metadata: Optional[Dict[str, MetadataValue]] = None
    ) -> Document:
        """Create a document directly, bypassing upload."""
        doc_id = self._allocate_id()
        document = Document(
            id=DocumentId(doc_id),
            title=title,
            status=status,
            excerpt=excerpt,
            metadata=self._clean_metadata(doc_id, metadata or {}, {}),
            date=self._tick(),
            author="admin",
        )
        self._documents[doc_id] = document
        return document

    def get(self, document_id: int) -> Optional[Document]:
        """Current server-side record (None if deleted)."""
        return self._documents.get(document_id)

    def inject_failure(
        self,
        operation: str,
        document_id: Optional[int] = None,
        error: Optional[BaseException] = None,
        times: int = 1
    ):
        """
        Make the next ``times`` calls of ``operation`` fail.

        Args:
            operation: Method name, e.g. "patch_document_metadata"
            document_id: Only fail calls for this document (None = any)
            error: Exception to raise (defaults to a 500 ApiError)
        """
        self._failures.append({
            "operation": operation,
            "document_id": document_id,
            "error": error or ApiError("Internal server error", code="internal_server_error", status_code=500),
            "remaining": times,
        })

    def call_count(self, operation: str, document_id: Optional[int] = None) -> int:
        return sum(
            1 for name, args in self.calls
            if name == operation and (document_id is None or args == document_id or
                                      (isinstance(args, tuple) and args and args[0] == document_id))
        )

    # DocumentApi

    async def list_documents(
        self,
        page: int,
        page_size: int,
        status_filter: StatusFilter = StatusFilter.ALL,
        search: str = ""
    ) -> DocumentPage:
        await self._enter("list_documents", (page, page_size, status_filter))
        if is_trash_view(status_filter):
            statuses = (DocumentStatus.TRASH,)
        else:
            statuses = VISIBLE_STATUSES

        matching = [doc for doc in self._documents.values() if doc.status in statuses]
        if search:
            needle = search.lower()
            matching = [doc for doc in matching if needle in doc.title.lower()]
        # Newest first
        matching.sort(key=lambda doc: (doc.date or "", doc.id), reverse=True)

        total = len(matching)
        total_pages = math.ceil(total / page_size) if page_size else 0
        start = (max(page, 1) - 1) * page_size
        return DocumentPage(
            documents=[self._copy(doc) for doc in matching[start:start + page_size]],
            total_count=total,
            total_pages=total_pages,
            current_page=page,
        )

    async def get_metadata_field_definitions(self) -> List[MetadataField]:
        await self._enter("get_metadata_field_definitions", None)
        return self.registry.fields()

    async def patch_document_metadata(self, document_id: int, values: Dict[str, MetadataValue]) -> Document:
        await self._enter("patch_document_metadata", (document_id, dict(values)))
        document = self._require(document_id)

        field_errors = self._validate_values(values)
        if field_errors:
            raise ApiError(
                message="Invalid metadata values",
                code="rest_invalid_param",
                status_code=400,
                field_errors=field_errors,
            )

        metadata = self._clean_metadata(document_id, values, dict(document.metadata))
        updated = replace(document, metadata=metadata)
        self._documents[document_id] = updated
        return self._copy(updated)

    async def update_document_core(self, document_id: int, excerpt: Optional[str] = None) -> Document:
        await self._enter("update_document_core", (document_id, excerpt))
        document = self._require(document_id)
        if excerpt is not None:
            document = document.with_changes(excerpt=excerpt.strip())
            self._documents[document_id] = document
        return self._copy(document)

    async def trash_document(self, document_id: int) -> None:
        await self._enter("trash_document", document_id)
        document = self._require(document_id)
        if document.is_trashed():
            raise ApiError("The post has already been deleted.", code="rest_already_trashed", status_code=410)
        self._documents[document_id] = document.with_changes(status=DocumentStatus.TRASH)

    async def restore_document(self, document_id: int) -> None:
        await self._enter("restore_document", document_id)
        document = self._require(document_id)
        if not document.is_trashed():
            raise ApiError("The post is not in the trash.", code="rest_cannot_restore", status_code=400)
        # Restored documents are always published again
        self._documents[document_id] = document.with_changes(status=DocumentStatus.PUBLISH)

    async def permanently_delete_document(self, document_id: int) -> None:
        await self._enter("permanently_delete_document", document_id)
        document = self._require(document_id)
        if not document.is_trashed():
            raise ApiError(
                "Documents must be trashed before they can be deleted permanently.",
                code="rest_not_trashed",
                status_code=400,
            )
        del self._documents[document_id]

    async def upload_document(
        self,
        file: UploadFile,
        initial_metadata: Optional[Dict[str, MetadataValue]] = None
    ) -> Document:
        await self._enter("upload_document", file.filename)
        if not file.content:
            raise ApiError("No data supplied.", code="rest_upload_no_data", status_code=400)

        attachment_id = self._next_attachment_id
        self._next_attachment_id += 1
        name = PurePosixPath(file.filename).name
        file_metadata = {
            FILE_ID_KEY: str(attachment_id),
            FILE_URL_KEY: f"{self._base_url}/wp-content/uploads/documents/{name}",
            FILE_NAME_KEY: name,
            FILE_TYPE_KEY: file.content_type,
            FILE_SIZE_KEY: str(file.size),
        }

        doc_id = self._allocate_id()
        metadata = self._clean_metadata(doc_id, initial_metadata or {}, file_metadata)
        document = Document(
            id=DocumentId(doc_id),
            title=PurePosixPath(name).stem or name,
            status=DocumentStatus.PUBLISH,
            metadata=metadata,
            date=self._tick(),
            author="admin",
        )
        self._documents[doc_id] = document
        logger.debug(f"Stored upload {name} as document {doc_id}")
        return self._copy(document)

    async def get_status_counts(self) -> Dict[str, int]:
        await self._enter("get_status_counts", None)
        counts = {status.value: 0 for status in DocumentStatus}
        for document in self._documents.values():
            counts[document.status.value] += 1
        return counts

    # Internals

    async def _enter(self, operation: str, args: Any):
        """Log the call, apply latency and raise any injected failure."""
        self.calls.append((operation, args))
        if self._latency:
            await asyncio.sleep(self._latency)
        else:
            await asyncio.sleep(0)

        document_id = args if isinstance(args, int) else (
            args[0] if isinstance(args, tuple) and args and isinstance(args[0], int) else None
        )
        for failure in self._failures:
            if failure["operation"] != operation or failure["remaining"] <= 0:
                continue
            if failure["document_id"] is not None and failure["document_id"] != document_id:
                continue
            failure["remaining"] -= 1
            raise failure["error"]

    def _require(self, document_id: int) -> Document:
        document = self._documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def _allocate_id(self) -> int:
        doc_id = self._next_id
        self._next_id += 1
        return doc_id

    def _tick(self) -> str:
        self._clock += timedelta(minutes=1)
        return self._clock.isoformat()

    def _validate_values(self, values: Dict[str, MetadataValue]) -> Dict[str, str]:
        errors = {}
        for field_id, value in values.items():
            field = self.registry.get_field(field_id)
            if field is None or field.type != FieldType.DATE:
                continue
            text = sanitize_text(value)
            if text and not _DATE_RE.match(text):
                errors[field_id] = "Dates must use the YYYY-MM-DD format"
        return errors

    def _clean_metadata(
        self,
        document_id: int,
        values: Dict[str, MetadataValue],
        metadata: Dict[str, MetadataValue]
    ) -> Dict[str, MetadataValue]:
        """Apply values on top of metadata, skipping unregistered keys."""
        for field_id, value in values.items():
            if field_id in (FILE_ID_KEY, FILE_URL_KEY, FILE_NAME_KEY, FILE_TYPE_KEY, FILE_SIZE_KEY):
                metadata[field_id] = sanitize_text(value)
                continue
            field = self.registry.get_field(field_id)
            if field is None:
                logger.debug(f"Skipping unregistered metadata key '{field_id}' on document {document_id}")
                continue
            if field.type == FieldType.TAXONOMY:
                resolved = self.registry.resolve_terms(field_id, value)
                if resolved in ("", []):
                    metadata.pop(field_id, None)
                else:
                    metadata[field_id] = resolved
            else:
                metadata[field_id] = sanitize_text(value)
        return metadata

    def _drop_field_values(self, field_id: str):
        for doc_id, document in list(self._documents.items()):
            if field_id in document.metadata:
                metadata = {k: v for k, v in document.metadata.items() if k != field_id}
                self._documents[doc_id] = replace(document, metadata=metadata)

    @staticmethod
    def _copy(document: Document) -> Document:
        """Hand out records that share no mutable state with the store."""
        metadata = {k: list(v) if isinstance(v, list) else v for k, v in document.metadata.items()}
        return replace(document, metadata=metadata)
