import asyncio

import pytest

from docrepo.api.exceptions import UserCancelled
from docrepo.services.metadata_engine import MetadataEditEngine
from docrepo.services.metadata_state import MetadataState, SetSavingBulk, reduce
from docrepo.services.notification_service import NoticeLevel


def messages(notifications, level=None):
    return [n.message for n in notifications.active if level is None or n.level == level]


# Single document editing

def test_begin_edit_seeds_every_field_and_excerpt(engine, documents):
    assert engine.begin_edit(documents[0])
    assert engine.state.edited_values == {
        "category": "Policy",
        "effective_date": "",
        "owner": "Finance",
        "excerpt": "Yearly summary",
    }


def test_has_changed_treats_missing_and_empty_as_equal(engine, documents):
    engine.begin_edit(documents[2])
    engine.update_field("excerpt", "")
    engine.update_field("category", "")
    assert not engine.has_changed()

    engine.update_field("owner", "People")
    assert engine.has_changed()


def test_update_field_without_open_document_is_ignored(engine):
    engine.update_field("owner", "Nobody")
    assert engine.state.edited_values == {}


@pytest.mark.asyncio
async def test_excerpt_only_edit_sends_only_core_update(engine, api, documents, notifications):
    original = documents[0]
    engine.begin_edit(original)
    engine.update_field("excerpt", "New summary")

    assert await engine.save_single() is True

    assert api.call_count("update_document_core", original.id) == 1
    assert api.call_count("patch_document_metadata") == 0
    saved = engine.find_document(original.id)
    assert saved.excerpt == "New summary"
    assert saved.metadata == original.metadata
    assert engine.state.editing_document is None
    assert engine.updates[-1] == engine.documents
    assert "Document metadata updated successfully" in messages(notifications, NoticeLevel.SUCCESS)


@pytest.mark.asyncio
async def test_single_save_patches_only_changed_fields(engine, api, documents):
    engine.begin_edit(documents[0])
    engine.update_field("owner", "Legal")

    assert await engine.save_single() is True

    assert ("patch_document_metadata", (documents[0].id, {"owner": "Legal"})) in api.calls
    assert api.call_count("update_document_core") == 0
    saved = engine.find_document(documents[0].id)
    assert saved == documents[0].with_changes(metadata={"owner": "Legal"})


@pytest.mark.asyncio
async def test_save_without_changes_makes_no_calls(engine, api, documents):
    engine.begin_edit(documents[1])

    assert await engine.save_single() is True

    assert api.call_count("patch_document_metadata") == 0
    assert api.call_count("update_document_core") == 0
    assert engine.state.editing_document is None


@pytest.mark.asyncio
async def test_failed_save_keeps_edits_and_records_field_errors(engine, api, documents, errors, notifications):
    engine.begin_edit(documents[2])
    engine.update_field("effective_date", "03/01/2024")

    assert await engine.save_single() is False

    state = engine.state
    assert state.editing_document == documents[2]
    assert state.edited_values["effective_date"] == "03/01/2024"
    assert "effective_date" in state.field_errors
    assert not state.is_saving_single
    assert engine.find_document(documents[2].id) == documents[2]

    [failed] = errors.failed_operations
    assert failed.key == ("metadata", documents[2].id)
    assert failed.retryable is False
    assert "Invalid metadata values" in messages(notifications, NoticeLevel.ERROR)


@pytest.mark.asyncio
async def test_failed_save_without_server_message_uses_generic_text(engine, api, documents, notifications):
    api.inject_failure("patch_document_metadata", error=RuntimeError())
    engine.begin_edit(documents[0])
    engine.update_field("owner", "Legal")

    assert await engine.save_single() is False
    assert "Failed to update metadata" in messages(notifications, NoticeLevel.ERROR)


@pytest.mark.asyncio
async def test_cancelled_save_discards_edits_silently(engine, api, documents, errors, notifications):
    api.inject_failure("patch_document_metadata", error=UserCancelled())
    engine.begin_edit(documents[0])
    engine.update_field("owner", "Legal")

    assert await engine.save_single() is False

    assert engine.state.editing_document is None
    assert engine.state.edited_values == {}
    assert errors.failed_operations == []
    assert messages(notifications, NoticeLevel.ERROR) == []
    assert engine.find_document(documents[0].id) == documents[0]


@pytest.mark.asyncio
async def test_concurrent_single_saves_send_once(engine, api, documents):
    engine.begin_edit(documents[0])
    engine.update_field("owner", "Legal")

    results = await asyncio.gather(engine.save_single(), engine.save_single())

    assert sorted(results) == [False, True]
    assert api.call_count("patch_document_metadata") == 1


@pytest.mark.asyncio
async def test_save_does_not_close_a_newer_edit(engine, documents):
    engine.begin_edit(documents[0])
    engine.update_field("owner", "Legal")

    task = asyncio.create_task(engine.save_single())
    await asyncio.sleep(0)
    engine.begin_edit(documents[1])
    assert await task is True

    assert engine.state.editing_document == documents[1]
    assert engine.find_document(documents[0].id).metadata["owner"] == "Legal"


# Spreadsheet mode

def test_enter_spreadsheet_mode_seeds_rows_from_shadow(engine, documents):
    assert engine.enter_spreadsheet_mode() is True

    bulk = engine.state.bulk_edited_metadata
    assert set(bulk) == {d.id for d in documents}
    assert bulk[documents[0].id]["owner"] == "Finance"
    assert bulk[documents[2].id]["excerpt"] == ""
    assert engine.state.has_metadata_changes is False


def test_spreadsheet_mode_refused_during_single_edit(engine, documents):
    engine.begin_edit(documents[0])

    assert engine.enter_spreadsheet_mode() is False
    assert engine.state.is_spreadsheet_mode is False
    assert engine.state.bulk_edited_metadata == {}
    assert engine.state.editing_document == documents[0]


def test_single_edit_refused_in_spreadsheet_mode(engine, documents):
    engine.toggle_spreadsheet_mode(True)

    assert engine.begin_edit(documents[0]) is False
    assert engine.state.editing_document is None


def test_bulk_change_flag_follows_the_buffer(engine, documents):
    doc = documents[0]
    assert engine.update_bulk_field(doc.id, "owner", "Legal") is False

    engine.enter_spreadsheet_mode()
    engine.update_bulk_field(doc.id, "owner", "Legal")
    assert engine.state.has_metadata_changes is True

    engine.update_bulk_field(doc.id, "owner", "Finance")
    assert engine.state.has_metadata_changes is False


def test_exit_spreadsheet_mode_discards_edits(engine, documents):
    engine.enter_spreadsheet_mode()
    engine.update_bulk_field(documents[0].id, "owner", "Legal")

    engine.toggle_spreadsheet_mode(False)

    assert engine.state.is_spreadsheet_mode is False
    assert engine.state.bulk_edited_metadata == {}
    assert engine.find_document(documents[0].id) == documents[0]


@pytest.mark.asyncio
async def test_bulk_save_only_touches_changed_rows(engine, api, documents, notifications):
    engine.enter_spreadsheet_mode()
    engine.update_bulk_field(documents[0].id, "owner", "Legal")

    assert await engine.save_bulk() is True

    assert api.call_count("patch_document_metadata") == 1
    assert api.call_count("patch_document_metadata", documents[0].id) == 1
    assert api.call_count("update_document_core") == 0
    assert engine.find_document(documents[0].id).metadata["owner"] == "Legal"
    assert engine.find_document(documents[1].id) == documents[1]
    assert engine.state.is_spreadsheet_mode is False
    assert "All metadata changes saved successfully." in messages(notifications, NoticeLevel.SUCCESS)


@pytest.mark.asyncio
async def test_bulk_save_takes_the_server_record(engine, api, documents):
    engine.enter_spreadsheet_mode()
    engine.update_bulk_field(documents[1].id, "category", "policy")

    await engine.save_bulk()

    assert engine.find_document(documents[1].id).metadata["category"] == "Policy"
    assert engine.updates[-1] == engine.documents


@pytest.mark.asyncio
async def test_second_bulk_save_without_edits_sends_nothing(engine, api, documents):
    engine.enter_spreadsheet_mode()
    engine.update_bulk_field(documents[0].id, "owner", "Legal")
    await engine.save_bulk()
    sent = len(api.calls)

    engine.enter_spreadsheet_mode()
    assert await engine.save_bulk() is True
    assert len(api.calls) == sent


@pytest.mark.asyncio
async def test_bulk_partial_failure_keeps_spreadsheet_open(engine, api, documents, errors, notifications):
    engine.enter_spreadsheet_mode()
    for doc in documents:
        engine.update_bulk_field(doc.id, "owner", f"Owner {doc.id}")
    failing = documents[1].id
    api.inject_failure("patch_document_metadata", document_id=failing)

    assert await engine.save_bulk() is False

    warning = "1 of 3 metadata updates failed. You can retry the failed operations."
    [notice] = [n for n in notifications.active if n.message == warning]
    assert notice.level == NoticeLevel.WARNING
    assert notice.is_sticky
    assert messages(notifications, NoticeLevel.ERROR) == []

    state = engine.state
    assert state.is_spreadsheet_mode is True
    assert state.has_metadata_changes is True
    assert state.bulk_edited_metadata[failing]["owner"] == f"Owner {failing}"
    assert engine.find_document(documents[0].id).metadata["owner"] == f"Owner {documents[0].id}"
    assert engine.find_document(failing) == documents[1]
    assert [op.key for op in errors.failed_operations] == [("metadata", failing)]


@pytest.mark.asyncio
async def test_retrying_the_failed_row_closes_spreadsheet(engine, api, documents, errors):
    engine.enter_spreadsheet_mode()
    engine.update_bulk_field(documents[0].id, "owner", "Legal")
    engine.update_bulk_field(documents[1].id, "owner", "Design")
    api.inject_failure("patch_document_metadata", document_id=documents[1].id)
    await engine.save_bulk()

    replayed = await errors.retry_all({"metadata": engine.retry_metadata})

    assert replayed == 1
    assert errors.failed_operations == []
    assert engine.find_document(documents[1].id).metadata["owner"] == "Design"
    assert engine.state.is_spreadsheet_mode is False


@pytest.mark.asyncio
async def test_saved_rows_take_stored_values_after_partial_failure(engine, api, documents, errors):
    annual, style, onboarding = documents
    engine.enter_spreadsheet_mode()
    engine.update_bulk_field(annual.id, "owner", "Legal")
    engine.update_bulk_field(style.id, "category", "policy")
    engine.update_bulk_field(onboarding.id, "owner", "People  ")
    api.inject_failure("patch_document_metadata", document_id=annual.id)

    assert await engine.save_bulk() is False

    bulk = engine.state.bulk_edited_metadata
    assert bulk[style.id]["category"] == "Policy"
    assert bulk[onboarding.id]["owner"] == "People"
    assert bulk[annual.id]["owner"] == "Legal"

    assert await errors.retry_all({"metadata": engine.retry_metadata}) == 1

    assert engine.state.is_spreadsheet_mode is False
    assert engine.state.has_metadata_changes is False
    assert api.call_count("patch_document_metadata", style.id) == 1
    assert api.call_count("patch_document_metadata", onboarding.id) == 1

    engine.enter_spreadsheet_mode()
    assert await engine.save_bulk() is True
    assert api.call_count("patch_document_metadata") == 4


@pytest.mark.asyncio
async def test_failed_excerpt_stays_buffered_when_metadata_saved(engine, api, documents):
    doc = documents[0]
    engine.enter_spreadsheet_mode()
    engine.update_bulk_field(doc.id, "owner", "legal ")
    engine.update_bulk_field(doc.id, "excerpt", "Rewritten")
    api.inject_failure("update_document_core", document_id=doc.id)

    assert await engine.save_bulk() is False

    row = engine.state.bulk_edited_metadata[doc.id]
    assert row["owner"] == "legal"
    assert row["excerpt"] == "Rewritten"
    assert engine.state.has_metadata_changes is True


@pytest.mark.asyncio
async def test_bulk_row_merges_partial_success(engine, api, documents):
    doc = documents[0]
    engine.enter_spreadsheet_mode()
    engine.update_bulk_field(doc.id, "owner", "Legal")
    engine.update_bulk_field(doc.id, "excerpt", "Rewritten")
    api.inject_failure("update_document_core", document_id=doc.id)

    assert await engine.save_bulk() is False

    saved = engine.find_document(doc.id)
    assert saved.metadata["owner"] == "Legal"
    assert saved.excerpt == "Yearly summary"


@pytest.mark.asyncio
async def test_bulk_row_merges_both_responses(engine, api, documents):
    doc = documents[0]
    engine.enter_spreadsheet_mode()
    engine.update_bulk_field(doc.id, "owner", "Legal")
    engine.update_bulk_field(doc.id, "excerpt", "Rewritten")

    assert await engine.save_bulk() is True

    saved = engine.find_document(doc.id)
    assert saved.metadata["owner"] == "Legal"
    assert saved.excerpt == "Rewritten"


@pytest.mark.asyncio
async def test_unexpected_bulk_error_is_not_queued(api, errors, notifications, documents):
    def broken_listener(_documents):
        raise RuntimeError("listener failed")

    engine = MetadataEditEngine(
        api,
        errors,
        notifications,
        metadata_fields=api.registry.fields(),
        documents=documents,
        on_update_documents=broken_listener,
    )
    engine.enter_spreadsheet_mode()
    engine.update_bulk_field(documents[0].id, "owner", "Legal")

    assert await engine.save_bulk() is False

    assert not errors.has_failures
    assert "Error during bulk-metadata operation: listener failed" in messages(notifications, NoticeLevel.ERROR)
    assert engine.state.is_saving_bulk is False


@pytest.mark.asyncio
async def test_bulk_save_is_not_reentrant(engine, api, documents):
    engine.enter_spreadsheet_mode()
    engine.update_bulk_field(documents[0].id, "owner", "Legal")

    results = await asyncio.gather(engine.save_bulk(), engine.save_bulk())

    assert sorted(results) == [False, True]
    assert api.call_count("patch_document_metadata") == 1


def test_reducer_rejects_unknown_events():
    with pytest.raises(TypeError):
        reduce(MetadataState(), object())


def test_reducer_returns_new_state():
    state = MetadataState()
    saving = reduce(state, SetSavingBulk(saving=True))
    assert saving.is_saving_bulk is True
    assert state.is_saving_bulk is False


def test_subscribers_see_every_transition(engine, documents):
    seen = []
    unsubscribe = engine.subscribe(lambda state: seen.append(state.editing_document))

    engine.begin_edit(documents[0])
    engine.cancel_edit()
    unsubscribe()
    engine.begin_edit(documents[1])

    assert seen == [documents[0], None]
