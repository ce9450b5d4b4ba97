import asyncio
from dataclasses import replace

import pytest

from docrepo.services.api_client import InMemoryDocumentApi, UploadFile
from docrepo.services.notification_service import NoticeLevel
from docrepo.services.upload_service import FileUploadCoordinator, UploadStatus


@pytest.fixture
def uploaded():
    return []


@pytest.fixture
def coordinator(api, config, errors, notifications, uploaded):
    return FileUploadCoordinator(api, config, errors, notifications, on_uploaded=uploaded.extend)


def pdf(name, size=10):
    return UploadFile(filename=name, content=b"x" * size, content_type="application/pdf")


@pytest.mark.asyncio
async def test_uploads_every_file(coordinator, api, uploaded, notifications):
    items = await coordinator.handle_files([pdf("a.pdf"), pdf("b.pdf")], initial_metadata={"owner": "Legal"})

    assert [item.status for item in items] == [UploadStatus.SUCCESS, UploadStatus.SUCCESS]
    assert all(item.progress == 100 for item in items)
    assert [doc.title for doc in uploaded] == ["a", "b"]
    assert uploaded[0].metadata["owner"] == "Legal"
    assert uploaded[0].file_name == "a.pdf"
    assert coordinator.show_upload_feedback is True
    assert "Successfully uploaded 2 files." in [n.message for n in notifications.active]


@pytest.mark.asyncio
async def test_empty_and_oversized_files_fail_without_a_request(coordinator, api, errors, notifications):
    items = await coordinator.handle_files([pdf("empty.pdf", 0), pdf("huge.pdf", 2048), pdf("ok.pdf")])

    empty, huge, ok = items
    assert empty.status == UploadStatus.ERROR and empty.error == "File is empty"
    assert huge.status == UploadStatus.ERROR and "too large" in huge.error
    assert ok.status == UploadStatus.SUCCESS
    assert api.call_count("upload_document") == 1
    assert errors.failed_operations == []
    [warning] = [n for n in notifications.active if n.level == NoticeLevel.WARNING]
    assert warning.message.startswith("2 of 3 file(s) failed to upload")


@pytest.mark.asyncio
async def test_server_failure_is_queued_and_retryable(coordinator, api, errors, uploaded):
    api.inject_failure("upload_document")
    [item] = await coordinator.handle_files([pdf("report.pdf")])

    assert item.status == UploadStatus.ERROR
    assert item.progress == 50
    [failed] = errors.failed_operations
    assert failed.key == ("upload", item.item_id)
    assert uploaded == []

    assert await errors.retry_all({"upload": coordinator.retry_upload}) == 1
    assert item.status == UploadStatus.SUCCESS
    assert item.attempts == 2
    assert [doc.title for doc in uploaded] == ["report"]


@pytest.mark.asyncio
async def test_concurrency_is_bounded(api, config, errors, notifications):
    in_flight = []
    peak = []
    original = api.upload_document

    async def slow_upload(file, initial_metadata=None):
        in_flight.append(file.filename)
        peak.append(len(in_flight))
        await asyncio.sleep(0.01)
        in_flight.remove(file.filename)
        return await original(file, initial_metadata)

    api.upload_document = slow_upload
    coordinator = FileUploadCoordinator(api, config, errors, notifications)

    await coordinator.handle_files([pdf(f"{i}.pdf") for i in range(5)])

    assert max(peak) == config.upload_concurrency


@pytest.mark.asyncio
async def test_close_feedback_keeps_only_failures(coordinator, api):
    api.inject_failure("upload_document", times=1)
    await coordinator.handle_files([pdf("a.pdf")])
    await coordinator.handle_files([pdf("b.pdf")])

    coordinator.close_upload_feedback()

    assert coordinator.show_upload_feedback is False
    assert [item.filename for item in coordinator.uploading_files] == ["a.pdf"]


@pytest.mark.asyncio
async def test_retry_of_unknown_item(coordinator):
    assert await coordinator.retry_upload("missing") is False


def test_upload_limit_is_bound_to_the_running_loop(config, errors, notifications):
    api = InMemoryDocumentApi(base_url="http://example.test", latency=0.01)
    coordinator = FileUploadCoordinator(api, replace(config, upload_concurrency=1), errors, notifications)

    first = asyncio.run(coordinator.handle_files([pdf("a.pdf"), pdf("b.pdf")]))
    second = asyncio.run(coordinator.handle_files([pdf("c.pdf"), pdf("d.pdf"), pdf("e.pdf")]))

    assert all(item.status == UploadStatus.SUCCESS for item in first + second)
    assert api.call_count("upload_document") == 5
