"""Notifications raised by approval decisions, and the inbox endpoints."""

import pytest

from ppmp.core.exceptions import NotFoundError, ValidationError
from ppmp.models.notification import Notification
from ppmp.services import plan_lifecycle
from ppmp.services.notification import NotificationService


@pytest.fixture()
def submitted(ready_plan, preparer, actor):
    return plan_lifecycle.submit_plan(ready_plan.id, actor(preparer))


class TestLifecycleNotifications:
    def test_approval_notifies_author(self, submitted, preparer, approver, actor):
        plan_lifecycle.approve_plan(submitted.id, actor(approver))
        notif = Notification.query.filter_by(recipient_user_id=preparer.id).one()
        assert notif.type == "ppmp_approved"
        assert notif.title == "PPMP Approved"
        assert notif.entity_type == "plan"
        assert notif.entity_id == submitted.id

    def test_rejection_message_carries_reason(self, submitted, preparer, approver, actor):
        plan_lifecycle.reject_plan(submitted.id, actor(approver), "Missing canvass")
        notif = Notification.query.filter_by(recipient_user_id=preparer.id).one()
        assert notif.type == "ppmp_rejected"
        assert "Missing canvass" in notif.message

    def test_submit_sends_nothing(self, submitted):
        assert Notification.query.count() == 0

    def test_failed_reject_sends_nothing(self, submitted, approver, actor):
        with pytest.raises(ValidationError):
            plan_lifecycle.reject_plan(submitted.id, actor(approver), "")
        assert Notification.query.count() == 0


class TestInbox:
    def test_unread_and_mark_read(self, preparer):
        first = NotificationService.create(recipient_user_id=preparer.id, title="One")
        NotificationService.create(recipient_user_id=preparer.id, title="Two")
        assert NotificationService.unread_count(preparer.id) == 2

        NotificationService.mark_read(first.id, preparer.id)
        assert NotificationService.unread_count(preparer.id) == 1

        assert NotificationService.mark_all_read(preparer.id) == 1
        assert NotificationService.unread_count(preparer.id) == 0

    def test_cannot_read_someone_elses(self, preparer, approver):
        notif = NotificationService.create(recipient_user_id=preparer.id, title="Private")
        with pytest.raises(NotFoundError):
            NotificationService.mark_read(notif.id, approver.id)

    def test_http_inbox(self, client, submitted, preparer, approver, actor, auth_headers):
        plan_lifecycle.approve_plan(submitted.id, actor(approver))
        headers = auth_headers(preparer)

        res = client.get("/api/v1/notifications", headers=headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 1
        assert body["unread_count"] == 1

        notif_id = body["items"][0]["id"]
        res = client.post(f"/api/v1/notifications/{notif_id}/read", headers=headers)
        assert res.get_json()["is_read"] is True
        assert client.get(
            "/api/v1/notifications/unread-count", headers=headers,
        ).get_json() == {"unread_count": 0}
