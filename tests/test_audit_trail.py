"""
Audit trail: one entry per mutation, written after commit, append-only.
"""

import logging

import pytest
from sqlalchemy.exc import OperationalError

from ppmp.core.exceptions import PermissionDeniedError, ValidationError
from ppmp.models import db
from ppmp.models.audit import AuditTrail, AuditTrailImmutableError, write_audit
from ppmp.models.plan import Plan, PlanStatus
from ppmp.services import audit_service, plan_lifecycle, plan_service
from ppmp.services.helpers import unit_of_work as uow


def _actions(entity_type=None):
    q = AuditTrail.query
    if entity_type:
        q = q.filter_by(entity_type=entity_type)
    return [e.action for e in q.order_by(AuditTrail.id).all()]


class TestEntries:
    def test_create_plan_is_audited(self, preparer, actor):
        plan = plan_service.create_plan(actor(preparer), {"title": "FY25", "fiscal_year": 2025})
        entry = AuditTrail.query.filter_by(entity_type="plan", entity_id=plan.id).one()
        assert entry.action == "CREATE"
        assert entry.actor_user_id == preparer.id
        assert entry.new_values["title"] == "FY25"
        assert entry.old_values is None

    def test_update_records_only_changed_fields(self, preparer, make_plan, actor):
        plan = make_plan(preparer, title="Old")
        plan_service.update_plan(actor(preparer), plan.id, {"title": "New", "fiscal_year": 2025})
        entry = AuditTrail.query.filter_by(entity_type="plan", action="UPDATE").one()
        assert entry.old_values == {"title": "Old"}
        assert entry.new_values == {"title": "New"}

    def test_noop_update_writes_nothing(self, preparer, make_plan, actor):
        plan = make_plan(preparer, title="Same")
        plan_service.update_plan(actor(preparer), plan.id, {"title": "Same"})
        assert _actions("plan") == []

    def test_full_lifecycle_sequence(self, ready_plan, preparer, approver, actor):
        plan_lifecycle.submit_plan(ready_plan.id, actor(preparer))
        plan_lifecycle.approve_plan(ready_plan.id, actor(approver))
        assert _actions("plan") == ["SUBMIT", "APPROVE"]
        approve = AuditTrail.query.filter_by(action="APPROVE").one()
        assert approve.old_values == {"status": "SUBMITTED"}
        assert approve.new_values["status"] == "APPROVED"
        assert approve.actor_user_id == approver.id

    def test_line_item_entries_store_money_as_strings(self, ready_plan):
        entry = AuditTrail.query.filter_by(entity_type="line_item", action="CREATE").one()
        assert entry.new_values["total_cost"] == "50.00"

    def test_delete_keeps_old_values(self, ready_plan, preparer, actor):
        plan_id = ready_plan.id
        plan_lifecycle.delete_plan(plan_id, actor(preparer))
        entry = AuditTrail.query.filter_by(entity_type="plan", action="DELETE").one()
        assert entry.entity_id == plan_id
        assert entry.old_values["status"] == PlanStatus.DRAFT.value
        assert entry.new_values is None


class TestFailurePaths:
    def test_failed_operation_writes_no_entry(self, preparer, make_plan, actor):
        plan = make_plan(preparer)
        with pytest.raises(ValidationError):
            plan_lifecycle.submit_plan(plan.id, actor(preparer))
        assert _actions() == []

    def test_rolled_back_unit_discards_queued_entries(self, preparer, make_plan):
        plan = make_plan(preparer)
        with pytest.raises(RuntimeError):
            with uow.unit_of_work():
                uow.queue_audit(entity_type="plan", entity_id=plan.id, action="UPDATE")
                raise RuntimeError("boom")
        assert uow._AUDIT_QUEUE_KEY not in db.session.info
        assert _actions() == []

    def test_audit_write_failure_keeps_primary_change(
        self, ready_plan, preparer, actor, monkeypatch, caplog,
    ):
        def broken_write(**kwargs):
            raise OperationalError("INSERT INTO audit_trail", {}, Exception("disk full"))

        monkeypatch.setattr(uow, "write_audit", broken_write)
        with caplog.at_level(logging.WARNING, logger=uow.__name__):
            plan = plan_lifecycle.submit_plan(ready_plan.id, actor(preparer))

        assert plan.status == PlanStatus.SUBMITTED.value
        db.session.expire_all()
        assert db.session.get(Plan, ready_plan.id).status == PlanStatus.SUBMITTED.value
        assert "SUBMIT" not in _actions("plan")
        assert any("Audit write failed" in r.getMessage() for r in caplog.records)


class TestImmutability:
    def test_update_is_refused(self, admin):
        entry = write_audit(entity_type="plan", entity_id=1, action="CREATE", actor_user_id=admin.id)
        db.session.commit()
        entry.action = "DELETE"
        with pytest.raises(AuditTrailImmutableError):
            db.session.flush()
        db.session.rollback()

    def test_delete_is_refused(self, admin):
        entry = write_audit(entity_type="plan", entity_id=1, action="CREATE", actor_user_id=admin.id)
        db.session.commit()
        db.session.delete(entry)
        with pytest.raises(AuditTrailImmutableError):
            db.session.flush()
        db.session.rollback()


class TestQuery:
    def test_admin_can_filter(self, ready_plan, preparer, admin, actor):
        plan_lifecycle.submit_plan(ready_plan.id, actor(preparer))
        items, total = audit_service.list_audit(actor(admin), entity_type="plan", action="submit")
        assert total == 1
        assert items[0].entity_id == ready_plan.id

    def test_newest_first(self, ready_plan, admin, actor):
        items, total = audit_service.list_audit(actor(admin))
        assert total == 2
        assert [i.entity_type for i in items] == ["budget_allocation", "line_item"]

    def test_non_admin_forbidden(self, approver, actor):
        with pytest.raises(PermissionDeniedError):
            audit_service.list_audit(actor(approver))
