"""
REST adapter implementing DocumentApi over httpx.

Talks to the document repository routes registered under the configured
REST namespace. WordPress error bodies are turned into ApiError so callers
never see transport details.
"""
import json
from typing import Any, Dict, List, Optional

import httpx

from .base import DocumentApi, UploadFile
from ...api.dto import ErrorResponseDTO
from ...api.exceptions import ApiError
from ...api.mappers import DocumentMapper, MetadataFieldMapper
from ...core.config import RepositoryConfig
from ...domain.entities import Document, DocumentPage, MetadataField
from ...domain.value_objects import MetadataValue, StatusFilter
from ...core.logging_config import get_logger

logger = get_logger(__name__)


class RestDocumentApi(DocumentApi):
    """
    Document API backed by the platform's REST endpoints.

    Routes (relative to ``config.api_root``):
        GET    /documents?page&per_page&status
        GET    /documents/status-counts
        GET    /metadata-fields
        POST   /documents                      (multipart upload)
        POST   /documents/{id}/metadata
        PUT    /documents/{id}
        DELETE /documents/{id}                 (trash)
        DELETE /documents/{id}?force=true      (permanent)
        POST   /documents/{id}/restore
    """

    def __init__(self, config: RepositoryConfig, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the adapter.

        Args:
            config: Repository configuration (base URL, namespace, nonce, timeout)
            client: Optional preconfigured client (tests pass one with a MockTransport)
        """
        self._config = config
        headers = {"Accept": "application/json"}
        if config.api_nonce:
            headers["X-WP-Nonce"] = config.api_nonce
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.request_timeout)
        self._headers = headers

    def _url(self, path: str) -> str:
        return f"{self._config.api_root}/{path.lstrip('/')}"

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Send a request and return the decoded JSON body (None for empty bodies)."""
        url = self._url(path)
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} failed before a response: {type(e).__name__}: {e}")
            raise ApiError(
                message=f"Network error: {e}" if str(e) else "Network error",
                code="network_error",
            ) from e

        if response.status_code >= 400:
            raise self._error_from_response(response)

        if not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise ApiError(
                message="The response is not a valid JSON response.",
                code="invalid_json",
                status_code=response.status_code,
            ) from e

    @staticmethod
    def _error_from_response(response: httpx.Response) -> ApiError:
        try:
            body = ErrorResponseDTO.model_validate(response.json())
        except (json.JSONDecodeError, ValueError):
            return ApiError(
                message=response.reason_phrase or f"HTTP {response.status_code}",
                status_code=response.status_code,
            )
        logger.debug(f"API error {response.status_code}: {body.code} - {body.message}")
        return ApiError(
            message=body.message,
            code=body.code,
            status_code=response.status_code,
            field_errors=body.field_errors(),
        )

    async def list_documents(
        self,
        page: int,
        page_size: int,
        status_filter: StatusFilter = StatusFilter.ALL
    ) -> DocumentPage:
        payload = await self._request(
            "GET",
            "documents",
            params={"page": page, "per_page": page_size, "status": StatusFilter(status_filter).value},
        )
        return DocumentMapper.page_from_payload(payload or {})

    async def get_metadata_field_definitions(self) -> List[MetadataField]:
        payload = await self._request("GET", "metadata-fields")
        return MetadataFieldMapper.list_from_payload(payload or [])

    async def patch_document_metadata(self, document_id: int, values: Dict[str, MetadataValue]) -> Document:
        payload = await self._request("POST", f"documents/{document_id}/metadata", json=values)
        return DocumentMapper.from_payload(payload)

    async def update_document_core(self, document_id: int, excerpt: Optional[str] = None) -> Document:
        data = {}
        if excerpt is not None:
            data["excerpt"] = excerpt
        payload = await self._request("PUT", f"documents/{document_id}", json=data)
        return DocumentMapper.from_payload(payload)

    async def trash_document(self, document_id: int) -> None:
        await self._request("DELETE", f"documents/{document_id}")

    async def restore_document(self, document_id: int) -> None:
        await self._request("POST", f"documents/{document_id}/restore")

    async def permanently_delete_document(self, document_id: int) -> None:
        await self._request("DELETE", f"documents/{document_id}", params={"force": "true"})

    async def upload_document(
        self,
        file: UploadFile,
        initial_metadata: Optional[Dict[str, MetadataValue]] = None
    ) -> Document:
        data = {}
        if initial_metadata:
            data["metadata"] = json.dumps(initial_metadata)
        payload = await self._request(
            "POST",
            "documents",
            files={"file": (file.filename, file.content, file.content_type)},
            data=data,
        )
        return DocumentMapper.from_payload(payload)

    async def get_status_counts(self) -> Dict[str, int]:
        payload = await self._request("GET", "documents/status-counts")
        return {str(status): int(count or 0) for status, count in (payload or {}).items()}

    async def close(self):
        """Close the underlying client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()
