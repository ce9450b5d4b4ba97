"""
API Factory for creating document API adapters.
Implements Factory Pattern so the services never pick a transport themselves.
"""
from typing import Optional

import httpx

from .base import DocumentApi
from .memory_adapter import InMemoryDocumentApi
from .rest_adapter import RestDocumentApi
from ...core.config import RepositoryConfig
from ...core.logging_config import get_logger

logger = get_logger(__name__)


class DocumentApiFactory:
    """
    Factory for creating document API adapters.
    Supports REST (httpx) and Memory (in-process) backends.
    """

    @staticmethod
    def create(
        config: RepositoryConfig,
        backend: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ) -> DocumentApi:
        """
        Create a document API adapter.

        Args:
            config: Repository configuration
            backend: 'rest' or 'memory' (defaults to config.backend)
            client: Optional httpx client for the REST adapter

        Returns:
            DocumentApi instance

        Examples:
            api = DocumentApiFactory.create(config)            # REST against config.api_root
            api = DocumentApiFactory.create(config, "memory")  # demos and tests
        """
        backend = (backend or config.backend).lower()

        if backend == "rest":
            logger.info(f"Using REST document API at {config.api_root}")
            return RestDocumentApi(config, client=client)
        elif backend == "memory":
            logger.info("Using in-memory document API (non-persistent)")
            return InMemoryDocumentApi(base_url=config.api_base_url)
        else:
            raise ValueError(
                f"Unsupported document API backend: {backend}. "
                f"Supported backends: 'rest', 'memory'"
            )
