import pytest

from docrepo.domain.value_objects import StatusFilter
from docrepo.services.api_client import UploadFile
from docrepo.services.document_list import DocumentListOrchestrator, LIST_VIEW_ACTIONS, TRASH_VIEW_ACTIONS


@pytest.fixture
def propagated():
    return []


@pytest.fixture
def orchestrator(api, config, notifications, documents, propagated):
    return DocumentListOrchestrator(api, config, notifications=notifications, on_documents_update=propagated.append)


@pytest.mark.asyncio
async def test_load_fetches_newest_first(orchestrator):
    assert await orchestrator.load() is True

    assert [d.title for d in orchestrator.documents] == ["Onboarding", "Style guide"]
    assert orchestrator.total_count == 3
    assert orchestrator.total_pages == 2
    assert [f.id for f in orchestrator.metadata_fields] == ["category", "effective_date", "owner"]
    assert orchestrator.engine.documents == orchestrator.documents
    assert orchestrator.pagination().has_next is True


@pytest.mark.asyncio
async def test_load_failure_is_reported(orchestrator, api, notifications):
    api.inject_failure("list_documents")

    assert await orchestrator.load() is False
    assert orchestrator.errors.failed_operations == []
    assert "Error during load operation: Internal server error" in [n.message for n in notifications.active]


@pytest.mark.asyncio
async def test_change_page(orchestrator):
    await orchestrator.load()

    assert await orchestrator.change_page(2) is True
    assert [d.title for d in orchestrator.documents] == ["Annual report"]
    assert await orchestrator.change_page(3) is False
    assert orchestrator.pagination().has_previous is True


@pytest.mark.asyncio
async def test_change_status_filter_resets_view(orchestrator, api, documents):
    await api.trash_document(documents[0].id)
    await orchestrator.load()
    orchestrator.select_all(True)
    orchestrator.engine.enter_spreadsheet_mode()

    await orchestrator.change_status_filter("trash")

    assert orchestrator.status_filter == StatusFilter.TRASH
    assert orchestrator.lifecycle.status_filter == StatusFilter.TRASH
    assert orchestrator.current_page == 1
    assert orchestrator.selected_ids == set()
    assert orchestrator.engine.state.is_spreadsheet_mode is False
    assert [d.id for d in orchestrator.documents] == [documents[0].id]


@pytest.mark.asyncio
async def test_document_counts(orchestrator, api, documents):
    await api.trash_document(documents[0].id)
    await orchestrator.load()

    counts = orchestrator.document_counts()
    assert (counts.total, counts.trash) == (2, 1)


@pytest.mark.asyncio
async def test_selection(orchestrator):
    await orchestrator.load()
    first, second = orchestrator.documents

    orchestrator.select_document(second.id)
    orchestrator.select_document(first.id)
    assert orchestrator.selected_documents == [first.id, second.id]

    orchestrator.select_document(first.id, False)
    assert orchestrator.selected_ids == {second.id}
    orchestrator.select_all(False)
    assert orchestrator.selected_ids == set()


@pytest.mark.asyncio
async def test_rows_display_values_and_actions(orchestrator, api):
    api.add_document("Handbook", metadata={"category": ["Policy", "Guideline"], "document_file_size": "1536"})
    await orchestrator.load()

    row = orchestrator.rows()[0]
    assert row.title == "Handbook"
    assert row.cells["category"] == "Policy, Guideline"
    assert row.cells["owner"] == "—"
    assert row.file_size == "1.5 KB"
    assert row.actions == LIST_VIEW_ACTIONS
    assert row.editable is False

    await orchestrator.change_status_filter(StatusFilter.TRASH)
    await api.trash_document(row.id)
    await orchestrator.load()
    assert orchestrator.rows()[0].actions == TRASH_VIEW_ACTIONS


@pytest.mark.asyncio
async def test_rows_show_buffer_in_spreadsheet_mode(orchestrator):
    await orchestrator.load()
    doc = orchestrator.documents[0]
    orchestrator.engine.enter_spreadsheet_mode()
    orchestrator.engine.update_bulk_field(doc.id, "owner", "People")

    row = orchestrator.rows()[0]
    assert row.editable is True
    assert row.cells["owner"] == "People"


@pytest.mark.asyncio
async def test_engine_saves_reach_the_caller(orchestrator, propagated):
    await orchestrator.load()
    doc = orchestrator.documents[0]
    orchestrator.engine.begin_edit(doc)
    orchestrator.engine.update_field("owner", "People")

    assert await orchestrator.engine.save_single() is True

    assert orchestrator.documents[0].metadata["owner"] == "People"
    assert propagated[-1] == orchestrator.documents


@pytest.mark.asyncio
async def test_trash_reloads_the_list(orchestrator, api):
    await orchestrator.load()
    doc = orchestrator.documents[0]

    orchestrator.lifecycle.request_delete(doc)
    assert await orchestrator.lifecycle.confirm_delete() is True

    assert doc.id not in [d.id for d in orchestrator.documents]
    assert orchestrator.total_count == 2


@pytest.mark.asyncio
async def test_deleting_the_last_page_moves_back(orchestrator, api, documents):
    await orchestrator.load()
    await orchestrator.change_page(2)

    await orchestrator.lifecycle.delete_single(orchestrator.documents[0].id)

    assert orchestrator.current_page == 1
    assert len(orchestrator.documents) == 2


@pytest.mark.asyncio
async def test_upload_reloads_the_list(orchestrator):
    await orchestrator.load()

    await orchestrator.upload_files([UploadFile("minutes.pdf", b"%PDF", "application/pdf")])

    assert orchestrator.documents[0].title == "minutes"
    assert orchestrator.total_count == 4


@pytest.mark.asyncio
async def test_retry_all_routes_to_owning_service(orchestrator, api):
    await orchestrator.load()
    doc = orchestrator.documents[0]
    api.inject_failure("trash_document", document_id=doc.id)
    await orchestrator.lifecycle.delete_single(doc.id)
    assert orchestrator.errors.has_failures

    assert await orchestrator.retry_all() == 1

    assert not orchestrator.errors.has_failures
    assert api.get(doc.id).is_trashed()
