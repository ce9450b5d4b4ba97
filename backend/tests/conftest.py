import pytest

from docrepo.core.config import RepositoryConfig
from docrepo.services.api_client import InMemoryDocumentApi
from docrepo.services.error_handling_service import ErrorHandlingService
from docrepo.services.metadata_engine import MetadataEditEngine
from docrepo.services.notification_service import NotificationService

FIELDS = [
    {"id": "category", "label": "Category", "type": "taxonomy", "order": 0, "options": ["Policy", "Guideline"]},
    {"id": "effective_date", "label": "Effective date", "type": "date", "order": 1},
    {"id": "owner", "label": "Owner", "type": "text", "order": 2},
]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def config():
    return RepositoryConfig(api_base_url="http://example.test/wp-json", per_page=2, max_upload_bytes=1024, upload_concurrency=2)


@pytest.fixture
def api():
    api = InMemoryDocumentApi(base_url="http://example.test")
    api.configure_fields(FIELDS)
    return api


@pytest.fixture
def documents(api):
    """Three published documents, oldest first."""
    return [
        api.add_document("Annual report", excerpt="Yearly summary", metadata={"category": "Policy", "owner": "Finance"}),
        api.add_document("Style guide", excerpt="", metadata={"category": "Guideline"}),
        api.add_document("Onboarding", excerpt=None, metadata={"owner": "HR", "effective_date": "2024-03-01"}),
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifications(clock):
    return NotificationService(default_duration_ms=5000, clock=clock)


@pytest.fixture
def errors(notifications):
    return ErrorHandlingService(notifications)


@pytest.fixture
def engine(api, errors, notifications, documents):
    updates = []
    engine = MetadataEditEngine(
        api,
        errors,
        notifications,
        metadata_fields=api.registry.fields(),
        documents=documents,
        on_update_documents=updates.append,
    )
    engine.updates = updates
    return engine
