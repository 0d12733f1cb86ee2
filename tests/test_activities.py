"""Procurement activity CRUD and date ordering."""

from datetime import date

import pytest

from ppmp.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from ppmp.services import plan_service

ACTIVITY = {
    "activity": "Pre-procurement conference",
    "start_date": "2025-02-01",
    "end_date": "2025-02-05",
    "responsible_unit": "BAC Secretariat",
}


class TestActivities:
    def test_add_defaults_to_planned(self, preparer, make_plan, actor):
        plan = make_plan(preparer)
        activity = plan_service.add_activity(actor(preparer), plan.id, dict(ACTIVITY))
        assert activity.status == "PLANNED"
        assert activity.start_date == date(2025, 2, 1)

    def test_end_must_be_after_start(self, preparer, make_plan, actor):
        plan = make_plan(preparer)
        with pytest.raises(ValidationError):
            plan_service.add_activity(actor(preparer), plan.id, {**ACTIVITY, "end_date": "2025-02-01"})
        with pytest.raises(ValidationError):
            plan_service.add_activity(actor(preparer), plan.id, {**ACTIVITY, "end_date": "2025-01-01"})

    @pytest.mark.parametrize("field", ["activity", "start_date", "end_date", "responsible_unit"])
    def test_required_fields(self, preparer, make_plan, actor, field):
        plan = make_plan(preparer)
        data = dict(ACTIVITY)
        data.pop(field)
        with pytest.raises(ValidationError):
            plan_service.add_activity(actor(preparer), plan.id, data)

    def test_invalid_status(self, preparer, make_plan, actor):
        plan = make_plan(preparer)
        with pytest.raises(ValidationError):
            plan_service.add_activity(actor(preparer), plan.id, {**ACTIVITY, "status": "PAUSED"})

    def test_link_to_own_line_item(self, ready_plan, preparer, actor):
        item = plan_service.list_items(actor(preparer), ready_plan.id)[0]
        activity = plan_service.add_activity(
            actor(preparer), ready_plan.id, {**ACTIVITY, "line_item_id": item.id},
        )
        assert activity.line_item_id == item.id

    def test_line_item_of_other_plan_is_not_found(self, ready_plan, preparer, make_plan, actor):
        item = plan_service.list_items(actor(preparer), ready_plan.id)[0]
        other = make_plan(preparer)
        with pytest.raises(NotFoundError):
            plan_service.add_activity(actor(preparer), other.id, {**ACTIVITY, "line_item_id": item.id})

    def test_update_checks_order_against_stored_dates(self, preparer, make_plan, actor):
        plan = make_plan(preparer)
        activity = plan_service.add_activity(actor(preparer), plan.id, dict(ACTIVITY))
        with pytest.raises(ValidationError):
            plan_service.update_activity(actor(preparer), plan.id, activity.id, {"start_date": "2025-03-01"})
        updated = plan_service.update_activity(
            actor(preparer), plan.id, activity.id, {"status": "in_progress", "end_date": "2025-02-10"},
        )
        assert updated.status == "IN_PROGRESS"
        assert updated.end_date == date(2025, 2, 10)

    def test_delete(self, preparer, make_plan, actor):
        plan = make_plan(preparer)
        activity = plan_service.add_activity(actor(preparer), plan.id, dict(ACTIVITY))
        plan_service.delete_activity(actor(preparer), plan.id, activity.id)
        assert plan_service.list_activities(actor(preparer), plan.id) == []

    def test_viewer_cannot_add(self, preparer, viewer, make_plan, actor):
        plan = make_plan(preparer)
        with pytest.raises(PermissionDeniedError):
            plan_service.add_activity(actor(viewer), plan.id, dict(ACTIVITY))
