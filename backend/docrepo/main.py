"""
Composition root: builds a ready-to-use document list from configuration.
"""
from typing import Callable, List, Optional

import httpx

from .core.config import RepositoryConfig
from .core.logging_config import get_logger, setup_logging
from .domain.entities import Document
from .services.api_client import DocumentApiFactory
from .services.document_list import DocumentListOrchestrator

logger = get_logger(__name__)


def create_document_list(
    config: Optional[RepositoryConfig] = None,
    backend: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
    on_documents_update: Optional[Callable[[List[Document]], None]] = None,
    configure_logging: bool = True
) -> DocumentListOrchestrator:
    """
    Wire the API adapter and services for one document list.

    Args:
        config: Settings (defaults to RepositoryConfig.from_env())
        backend: Overrides config.backend ("rest" or "memory")
        client: Optional httpx client for the REST adapter
        on_documents_update: Receives the collection after every metadata save
        configure_logging: Run setup_logging() first
    """
    if configure_logging:
        setup_logging()

    config = config or RepositoryConfig.from_env()
    api = DocumentApiFactory.create(config, backend=backend, client=client)

    logger.info("Document repository client:")
    logger.info(f"  → Backend: {backend or config.backend}")
    logger.info(f"  → API root: {config.api_root}")
    logger.info(f"  → Page size: {config.per_page}")

    return DocumentListOrchestrator(api, config, on_documents_update=on_documents_update)
