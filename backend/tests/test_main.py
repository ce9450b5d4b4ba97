import logging

import pytest

from docrepo.core.config import RepositoryConfig
from docrepo.core.logging_config import setup_logging
from docrepo.main import create_document_list
from docrepo.services.api_client import InMemoryDocumentApi, UploadFile


@pytest.mark.asyncio
async def test_create_document_list_with_memory_backend():
    orchestrator = create_document_list(RepositoryConfig(backend="memory"), configure_logging=False)
    assert isinstance(orchestrator.api, InMemoryDocumentApi)

    orchestrator.api.configure_fields([{"id": "owner", "label": "Owner", "type": "text"}])
    await orchestrator.upload_files([UploadFile("notes.txt", b"hello", "text/plain")])

    assert [d.title for d in orchestrator.documents] == ["notes"]
    assert orchestrator.document_counts().total == 1


def test_setup_logging_configures_package_logger(tmp_path):
    log_file = tmp_path / "logs" / "docrepo.log"

    setup_logging("DEBUG", log_file=str(log_file), enable_file_logging=True)
    logging.getLogger("docrepo.tests").debug("hello")

    package_logger = logging.getLogger("docrepo")
    assert package_logger.level == logging.DEBUG
    assert len(package_logger.handlers) == 2
    for handler in package_logger.handlers:
        handler.flush()
    assert "hello" in log_file.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING

    setup_logging("INFO")
    assert len(package_logger.handlers) == 1
