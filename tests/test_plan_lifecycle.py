"""
Plan lifecycle tests: create, submit, approve, reject, delete.
"""

import pytest

from ppmp.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ppmp.models import db
from ppmp.models.plan import BudgetAllocation, LineItem, Plan, PlanStatus, validate_plan_transition
from ppmp.services import plan_lifecycle, plan_service


class TestTransitionTable:
    @pytest.mark.parametrize("old,new", [
        ("DRAFT", "SUBMITTED"),
        ("SUBMITTED", "APPROVED"),
        ("SUBMITTED", "REJECTED"),
    ])
    def test_allowed(self, old, new):
        assert validate_plan_transition(old, new)

    @pytest.mark.parametrize("old,new", [
        ("DRAFT", "APPROVED"),
        ("DRAFT", "REJECTED"),
        ("APPROVED", "DRAFT"),
        ("REJECTED", "DRAFT"),
        ("APPROVED", "REJECTED"),
        ("SUBMITTED", "DRAFT"),
    ])
    def test_forbidden(self, old, new):
        assert not validate_plan_transition(old, new)

    def test_unknown_status_is_rejected(self):
        assert not validate_plan_transition("ARCHIVED", "DRAFT")


class TestCreatePlan:
    def test_creates_draft_with_zero_totals(self, preparer, actor):
        plan = plan_service.create_plan(actor(preparer), {"title": "Office Supplies", "fiscal_year": 2025})
        assert plan.status == PlanStatus.DRAFT.value
        assert plan.department_id == preparer.department_id
        assert plan.prepared_by_id == preparer.id
        assert str(plan.total_estimated_budget) in ("0", "0.00")

    def test_title_required(self, preparer, actor):
        with pytest.raises(ValidationError):
            plan_service.create_plan(actor(preparer), {"title": "  ", "fiscal_year": 2025})

    @pytest.mark.parametrize("year", [1999, 2101, "abc", None])
    def test_fiscal_year_validated(self, preparer, actor, year):
        with pytest.raises(ValidationError):
            plan_service.create_plan(actor(preparer), {"title": "X", "fiscal_year": year})

    def test_preparer_cannot_create_for_other_department(self, preparer, other_dept, actor):
        with pytest.raises(PermissionDeniedError):
            plan_service.create_plan(
                actor(preparer),
                {"title": "X", "fiscal_year": 2025, "department_id": other_dept.id},
            )

    def test_viewer_cannot_create(self, viewer, dept, actor):
        with pytest.raises(PermissionDeniedError):
            plan_service.create_plan(
                actor(viewer), {"title": "X", "fiscal_year": 2025, "department_id": dept.id},
            )

    def test_admin_needs_existing_department(self, admin, actor):
        with pytest.raises(NotFoundError):
            plan_service.create_plan(
                actor(admin), {"title": "X", "fiscal_year": 2025, "department_id": 9999},
            )

    def test_admin_without_department_must_name_one(self, admin, actor):
        with pytest.raises(ValidationError):
            plan_service.create_plan(actor(admin), {"title": "X", "fiscal_year": 2025})


class TestUpdatePlan:
    def test_edit_title(self, preparer, make_plan, actor):
        plan = make_plan(preparer)
        updated = plan_service.update_plan(actor(preparer), plan.id, {"title": "Renamed"})
        assert updated.title == "Renamed"

    def test_status_is_not_writable(self, preparer, make_plan, actor):
        plan = make_plan(preparer)
        with pytest.raises(ValidationError):
            plan_service.update_plan(actor(preparer), plan.id, {"status": "APPROVED"})
        assert db.session.get(Plan, plan.id).status == PlanStatus.DRAFT.value

    def test_submitted_plan_is_read_only_for_preparer(self, preparer, make_plan, actor):
        plan = make_plan(preparer, status=PlanStatus.SUBMITTED)
        with pytest.raises(PermissionDeniedError):
            plan_service.update_plan(actor(preparer), plan.id, {"title": "Late edit"})

    def test_outsider_cannot_view(self, preparer, outsider, make_plan, actor):
        plan = make_plan(preparer)
        with pytest.raises(PermissionDeniedError):
            plan_service.get_plan(actor(outsider), plan.id)

    def test_missing_plan_is_404(self, admin, actor):
        with pytest.raises(NotFoundError):
            plan_service.get_plan(actor(admin), 424242)


class TestSubmit:
    def test_submit_without_items_fails(self, preparer, make_plan, actor):
        plan = make_plan(preparer)
        with pytest.raises(ValidationError, match="no items"):
            plan_lifecycle.submit_plan(plan.id, actor(preparer))
        assert db.session.get(Plan, plan.id).status == PlanStatus.DRAFT.value

    def test_submit_without_allocations_fails(self, preparer, make_plan, actor, item_payload):
        plan = make_plan(preparer)
        plan_service.add_item(actor(preparer), plan.id, item_payload)
        with pytest.raises(ValidationError, match="no budget allocations"):
            plan_lifecycle.submit_plan(plan.id, actor(preparer))

    def test_submit_sets_status_and_timestamp(self, ready_plan, preparer, actor):
        plan = plan_lifecycle.submit_plan(ready_plan.id, actor(preparer))
        assert plan.status == PlanStatus.SUBMITTED.value
        assert plan.submitted_at is not None

    def test_only_author_submits(self, ready_plan, colleague, actor):
        with pytest.raises(PermissionDeniedError):
            plan_lifecycle.submit_plan(ready_plan.id, actor(colleague))

    def test_resubmit_is_wrong_status(self, ready_plan, preparer, actor):
        plan_lifecycle.submit_plan(ready_plan.id, actor(preparer))
        with pytest.raises(ValidationError, match="wrong status"):
            plan_lifecycle.submit_plan(ready_plan.id, actor(preparer))

    def test_submit_missing_plan(self, preparer, actor):
        with pytest.raises(NotFoundError):
            plan_lifecycle.submit_plan(99999, actor(preparer))


class TestApproveReject:
    @pytest.fixture()
    def submitted(self, ready_plan, preparer, actor):
        return plan_lifecycle.submit_plan(ready_plan.id, actor(preparer))

    def test_approve_records_approver(self, submitted, approver, actor):
        plan = plan_lifecycle.approve_plan(submitted.id, actor(approver), remarks="  Looks fine ")
        assert plan.status == PlanStatus.APPROVED.value
        assert plan.approved_by_id == approver.id
        assert plan.approved_at is not None
        assert plan.approval_remarks == "Looks fine"

    def test_preparer_cannot_approve(self, submitted, preparer, actor):
        with pytest.raises(PermissionDeniedError):
            plan_lifecycle.approve_plan(submitted.id, actor(preparer))

    def test_viewer_cannot_approve(self, submitted, viewer, actor):
        with pytest.raises(PermissionDeniedError):
            plan_lifecycle.approve_plan(submitted.id, actor(viewer))

    def test_approve_draft_is_wrong_status(self, ready_plan, approver, actor):
        with pytest.raises(ValidationError, match="wrong status"):
            plan_lifecycle.approve_plan(ready_plan.id, actor(approver))

    def test_approve_twice_is_wrong_status(self, submitted, approver, actor):
        plan_lifecycle.approve_plan(submitted.id, actor(approver))
        with pytest.raises(ValidationError, match="wrong status"):
            plan_lifecycle.approve_plan(submitted.id, actor(approver))

    def test_reject_requires_reason(self, submitted, approver, actor):
        with pytest.raises(ValidationError):
            plan_lifecycle.reject_plan(submitted.id, actor(approver), "   ")
        assert db.session.get(Plan, submitted.id).status == PlanStatus.SUBMITTED.value

    def test_reject_stores_reason(self, submitted, approver, actor):
        plan = plan_lifecycle.reject_plan(submitted.id, actor(approver), "Over budget")
        assert plan.status == PlanStatus.REJECTED.value
        assert plan.rejection_reason == "Over budget"
        assert plan.rejected_at is not None

    def test_rejected_plan_is_terminal(self, submitted, approver, preparer, actor):
        plan_lifecycle.reject_plan(submitted.id, actor(approver), "No")
        with pytest.raises(ValidationError):
            plan_lifecycle.submit_plan(submitted.id, actor(preparer))
        with pytest.raises(ValidationError):
            plan_lifecycle.approve_plan(submitted.id, actor(approver))


class TestDeletePlan:
    def test_delete_draft_removes_children(self, ready_plan, preparer, actor):
        plan_id = ready_plan.id
        plan_lifecycle.delete_plan(plan_id, actor(preparer))
        assert db.session.get(Plan, plan_id) is None
        assert LineItem.query.filter_by(plan_id=plan_id).count() == 0
        assert BudgetAllocation.query.filter_by(plan_id=plan_id).count() == 0

    def test_cannot_delete_submitted(self, ready_plan, preparer, admin, actor):
        plan_lifecycle.submit_plan(ready_plan.id, actor(preparer))
        with pytest.raises(ValidationError, match="wrong status"):
            plan_lifecycle.delete_plan(ready_plan.id, actor(admin))
        assert db.session.get(Plan, ready_plan.id) is not None

    def test_preparer_delete_of_approved_plan_is_wrong_status(self, preparer, make_plan, actor):
        plan = make_plan(preparer, status=PlanStatus.APPROVED)
        with pytest.raises(ValidationError):
            plan_lifecycle.delete_plan(plan.id, actor(preparer))

    def test_viewer_cannot_delete(self, preparer, viewer, make_plan, actor):
        plan = make_plan(preparer)
        with pytest.raises(PermissionDeniedError):
            plan_lifecycle.delete_plan(plan.id, actor(viewer))


class TestListPlans:
    def test_preparer_sees_only_own_department(self, preparer, outsider, make_plan, actor):
        mine = make_plan(preparer)
        make_plan(outsider)
        ids = [p.id for p in plan_service.list_plans(actor(preparer)).all()]
        assert ids == [mine.id]

    def test_approver_sees_everything(self, preparer, outsider, approver, make_plan, actor):
        make_plan(preparer)
        make_plan(outsider)
        assert plan_service.list_plans(actor(approver)).count() == 2

    def test_filters(self, preparer, admin, make_plan, actor):
        make_plan(preparer, title="Janitorial supplies", fiscal_year=2024)
        make_plan(preparer, title="Office supplies", fiscal_year=2025, status=PlanStatus.SUBMITTED)
        a = actor(admin)
        assert plan_service.list_plans(a, fiscal_year="2024").count() == 1
        assert plan_service.list_plans(a, status="submitted").count() == 1
        assert plan_service.list_plans(a, search="office").count() == 1
        assert plan_service.list_plans(a, fiscal_year="all").count() == 2

    def test_invalid_status_filter(self, admin, actor):
        with pytest.raises(ValidationError):
            plan_service.list_plans(actor(admin), status="ARCHIVED")
