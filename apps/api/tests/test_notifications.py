"""In-app notifications."""

import pytest

from aris.db.enums import NotificationType, Role
from aris.db.models import Notification
from aris.services import notification_service


def _notify(db, org, user, dedupe_key=None):
    return notification_service.create_notification(
        db=db,
        org_id=org.id,
        user_id=user.id,
        type=NotificationType.SYSTEM_UPDATE,
        title="Update",
        message="Something changed",
        dedupe_key=dedupe_key,
    )


def test_dedupe_key_suppresses_repeat_within_window(db, test_org, test_user):
    first = _notify(db, test_org, test_user, dedupe_key="update:1")
    second = _notify(db, test_org, test_user, dedupe_key="update:1")
    other = _notify(db, test_org, test_user, dedupe_key="update:2")

    assert first is not None
    assert second is None
    assert other is not None
    assert db.query(Notification).count() == 2


def test_notifications_without_dedupe_key_always_created(db, test_org, test_user):
    _notify(db, test_org, test_user)
    _notify(db, test_org, test_user)

    assert notification_service.get_unread_count(db, test_user.id, test_org.id) == 2


def test_notify_org_admins_skips_members(db, test_org, test_user, make_user):
    owner = make_user(test_org, Role.OWNER)
    member = make_user(test_org, Role.MEMBER)

    created = notification_service.notify_org_admins(
        db=db,
        org_id=test_org.id,
        type=NotificationType.SYSTEM_MAINTENANCE,
        title="Maintenance",
        message="Tonight",
        dedupe_key="maintenance",
    )

    assert {n.user_id for n in created} == {test_user.id, owner.id}
    assert db.query(Notification).filter(Notification.user_id == member.id).count() == 0


def test_review_notification_goes_to_mailbox_owner(db, test_org, test_user, make_user):
    make_user(test_org, Role.ADMIN)
    queue_item_id = "00000000-0000-0000-0000-000000000001"

    notification_service.notify_email_review_required(
        db, test_org.id, test_user.id, queue_item_id, "Refund please"
    )

    notification = db.query(Notification).one()
    assert notification.user_id == test_user.id
    assert notification.action_url == f"/email-queue/{queue_item_id}"
    assert notification.message == "Review the suggested reply for: Refund please"


def test_mark_all_read(db, test_org, test_user):
    _notify(db, test_org, test_user)
    _notify(db, test_org, test_user)

    assert notification_service.mark_all_read(db, test_user.id, test_org.id) == 2
    assert notification_service.get_unread_count(db, test_user.id, test_org.id) == 0


# =============================================================================
# API
# =============================================================================


@pytest.mark.asyncio
async def test_list_and_mark_read(authed_client, db, test_org, test_user):
    notification = _notify(db, test_org, test_user)

    listed = await authed_client.get("/me/notifications")
    assert listed.status_code == 200
    assert listed.json()["unread_count"] == 1
    assert listed.json()["items"][0]["type"] == "system_update"

    marked = await authed_client.patch(f"/me/notifications/{notification.id}/read")
    assert marked.status_code == 200
    assert marked.json()["read"] is True

    count = await authed_client.get("/me/notifications/count")
    assert count.json() == {"count": 0}


@pytest.mark.asyncio
async def test_other_users_notifications_are_hidden(authed_client, db, test_org, make_user):
    someone_else = make_user(test_org, Role.MEMBER)
    notification = _notify(db, test_org, someone_else)

    response = await authed_client.patch(f"/me/notifications/{notification.id}/read")
    assert response.status_code == 404

    deleted = await authed_client.delete(f"/me/notifications/{notification.id}")
    assert deleted.status_code == 404


@pytest.mark.asyncio
async def test_filter_by_type_and_read_all(authed_client, db, test_org, test_user):
    _notify(db, test_org, test_user)
    notification_service.create_notification(
        db=db,
        org_id=test_org.id,
        user_id=test_user.id,
        type=NotificationType.METAKOCKA_SYNC_FAILED,
        title="Sync failed",
        message="products",
    )

    filtered = await authed_client.get("/me/notifications", params={"type": "metakocka_sync_failed"})
    assert [n["title"] for n in filtered.json()["items"]] == ["Sync failed"]
    assert filtered.json()["unread_count"] == 2

    marked = await authed_client.post("/me/notifications/read-all")
    assert marked.json() == {"marked_read": 2}
