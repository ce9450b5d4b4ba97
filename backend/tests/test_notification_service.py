import asyncio

import pytest

from docrepo.services.notification_service import NoticeLevel, NotificationService


def test_notices_stack_oldest_first(notifications):
    notifications.success("Saved")
    notifications.error("Failed")

    assert [n.message for n in notifications.active] == ["Saved", "Failed"]


def test_duplicate_notice_is_refreshed_not_stacked(notifications, clock):
    first = notifications.warning("Check your input")
    clock.advance(4)
    second = notifications.warning("Check your input")

    assert second is first
    assert len(notifications.active) == 1
    clock.advance(4)
    assert len(notifications.active) == 1


def test_same_message_different_level_stacks(notifications):
    notifications.warning("Heads up")
    notifications.error("Heads up")
    assert len(notifications.active) == 2


def test_notice_expires_after_its_duration(notifications, clock):
    notifications.notify(NoticeLevel.INFO, "Loading", duration_ms=1000)
    clock.advance(0.5)
    assert len(notifications.active) == 1
    clock.advance(0.6)
    assert notifications.active == []


def test_zero_duration_is_sticky(notifications, clock):
    notice = notifications.warning("1 of 2 metadata updates failed.", duration_ms=0)
    clock.advance(3600)

    assert notifications.active == [notice]
    assert notifications.dismiss(notice.id) is True
    assert notifications.dismiss(notice.id) is False


def test_sticky_wins_when_duplicate_arrives(notifications, clock):
    notifications.warning("Retry pending", duration_ms=0)
    notifications.warning("Retry pending", duration_ms=1000)
    clock.advance(10)
    assert [n.message for n in notifications.active] == ["Retry pending"]


def test_negative_duration_is_rejected(notifications):
    with pytest.raises(ValueError):
        notifications.success("Nope", duration_ms=-1)


def test_listeners_receive_the_stack(notifications):
    seen = []
    unsubscribe = notifications.subscribe(lambda stack: seen.append([n.message for n in stack]))

    notifications.success("One")
    notifications.clear()
    unsubscribe()
    notifications.success("Two")

    assert seen == [["One"], []]


@pytest.mark.asyncio
async def test_auto_dismiss_on_running_loop():
    service = NotificationService(default_duration_ms=10)
    service.success("Done")

    await asyncio.sleep(0.05)

    assert service.active == []
