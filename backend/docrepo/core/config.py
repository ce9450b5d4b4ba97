"""
Repository configuration.

All settings live on an explicit ``RepositoryConfig`` object that is passed to
the services at construction time. ``RepositoryConfig.from_env()`` reads the
environment (and a local ``.env`` file outside production).
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment variables (only in development)
# In containers, environment variables are set directly
if os.getenv("ENVIRONMENT") != "production":
    load_dotenv()

DEFAULT_API_NAMESPACE = "wp/v2"
DEFAULT_PER_PAGE = 20
DEFAULT_NOTICE_DURATION_MS = 5000


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class RepositoryConfig:
    """
    Settings shared by the document list and its services.

    Attributes:
        api_base_url: Site root the REST namespace is mounted under
        api_namespace: REST namespace for document routes (e.g. "wp/v2")
        api_nonce: Optional nonce sent as X-WP-Nonce
        per_page: Page size for the document list
        request_timeout: HTTP timeout in seconds
        notice_duration_ms: Default auto-dismiss delay for notices
        max_upload_bytes: Largest file the upload coordinator will send
        upload_concurrency: Maximum number of uploads in flight
        backend: Which API adapter the factory builds ("rest" or "memory")
    """
    api_base_url: str = "http://localhost:8080/wp-json"
    api_namespace: str = DEFAULT_API_NAMESPACE
    api_nonce: Optional[str] = None
    per_page: int = DEFAULT_PER_PAGE
    request_timeout: float = 30.0
    notice_duration_ms: int = DEFAULT_NOTICE_DURATION_MS
    max_upload_bytes: int = 50 * 1024 * 1024
    upload_concurrency: int = 4
    backend: str = "rest"

    def __post_init__(self):
        if self.per_page < 1:
            raise ValueError("per_page must be at least 1")
        if self.upload_concurrency < 1:
            raise ValueError("upload_concurrency must be at least 1")
        if self.notice_duration_ms < 0:
            raise ValueError("notice_duration_ms cannot be negative")

    @property
    def api_root(self) -> str:
        """Base URL joined with the namespace, without a trailing slash."""
        return f"{self.api_base_url.rstrip('/')}/{self.api_namespace.strip('/')}"

    @classmethod
    def from_env(cls) -> "RepositoryConfig":
        """Build a config from DOCREPO_* environment variables."""
        return cls(
            api_base_url=os.getenv("DOCREPO_API_BASE_URL", cls.api_base_url),
            api_namespace=os.getenv("DOCREPO_API_NAMESPACE") or DEFAULT_API_NAMESPACE,
            api_nonce=os.getenv("DOCREPO_API_NONCE") or None,
            per_page=_env_int("DOCREPO_PER_PAGE", DEFAULT_PER_PAGE),
            request_timeout=float(os.getenv("DOCREPO_REQUEST_TIMEOUT", "30")),
            notice_duration_ms=_env_int("DOCREPO_NOTICE_DURATION_MS", DEFAULT_NOTICE_DURATION_MS),
            max_upload_bytes=_env_int("DOCREPO_MAX_UPLOAD_MB", 50) * 1024 * 1024,
            upload_concurrency=_env_int("DOCREPO_UPLOAD_CONCURRENCY", 4),
            backend=os.getenv("DOCREPO_BACKEND", "rest").lower(),
        )
