# _test/test_notifications.py
import pytest

from core.errors import AccessDenied, NotFound
from core.notifications import NotificationService


@pytest.fixture
def notifier(store, clock):
    return NotificationService(store, clock)


async def test_create_and_list(clock, notifier):
    await notifier.create("u1", "earnings", "Earned", "You earned 5 coins")
    clock.advance(minutes=1)
    await notifier.create("u1", "withdrawal", "Withdrawal", "Pending")
    await notifier.create("u2", "earnings", "Earned", "Not yours")

    result = await notifier.list_notifications("u1")
    assert [n["title"] for n in result["items"]] == ["Withdrawal", "Earned"]
    assert result["unreadCount"] == 2
    assert "userId" not in result["items"][0]

    only_earnings = await notifier.list_notifications("u1", type="earnings")
    assert only_earnings["pagination"]["total"] == 1


async def test_unknown_type_becomes_system(notifier):
    notification = await notifier.create("u1", "marketing", "Hi", "Hello")
    assert notification.type == "system"


async def test_mark_read_and_filter(notifier):
    first = await notifier.create("u1", "earnings", "One", "1")
    await notifier.create("u1", "earnings", "Two", "2")

    marked = await notifier.mark_read("u1", first.id)
    assert marked.is_read is True
    assert await notifier.unread_count("u1") == 1

    read = await notifier.list_notifications("u1", is_read=True)
    assert [n["title"] for n in read["items"]] == ["One"]


async def test_mark_all_read(notifier):
    for n in range(3):
        await notifier.create("u1", "system", f"N{n}", "x")
    await notifier.create("u2", "system", "Other", "x")

    assert await notifier.mark_all_read("u1") == 3
    assert await notifier.mark_all_read("u1") == 0
    assert await notifier.unread_count("u1") == 0
    assert await notifier.unread_count("u2") == 1


async def test_only_the_owner_can_touch_a_notification(notifier):
    notification = await notifier.create("u1", "system", "Mine", "x")
    with pytest.raises(AccessDenied):
        await notifier.mark_read("u2", notification.id)
    with pytest.raises(AccessDenied):
        await notifier.delete("u2", notification.id)

    await notifier.delete("u1", notification.id)
    with pytest.raises(NotFound):
        await notifier.mark_read("u1", notification.id)
