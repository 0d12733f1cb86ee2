"""
Role-Permission Matrix unit tests.

Pure-function tests: no database, explicit Actor / PlanContext values.
"""

import pytest

from ppmp.core.exceptions import PermissionDeniedError
from ppmp.models.auth import Role
from ppmp.models.plan import PlanStatus
from ppmp.services.permission import (
    Action,
    Actor,
    PlanContext,
    allowed_actions,
    can,
    can_create_plan,
    check,
    visible_department_scope,
)

DEPT = 1
OTHER_DEPT = 2
AUTHOR = 10


def _plan(status=PlanStatus.DRAFT, department_id=DEPT, prepared_by_id=AUTHOR):
    return PlanContext(status=status, department_id=department_id, prepared_by_id=prepared_by_id)


def _actor(role, user_id=AUTHOR, department_id=DEPT):
    return Actor(user_id=user_id, role=role, department_id=department_id)


class TestTotality:
    @pytest.mark.parametrize("role", list(Role))
    @pytest.mark.parametrize("status", list(PlanStatus))
    def test_every_role_and_status_yields_a_frozenset(self, role, status):
        result = allowed_actions(_actor(role), _plan(status))
        assert isinstance(result, frozenset)
        assert result <= frozenset(Action)

    def test_unknown_role_gets_nothing(self):
        ghost = Actor(user_id=1, role=None, department_id=DEPT)
        for status in PlanStatus:
            assert allowed_actions(ghost, _plan(status)) == frozenset()

    def test_unknown_role_cannot_create(self):
        assert not can_create_plan(Actor(user_id=1, role=None, department_id=DEPT), DEPT)


class TestAdmin:
    @pytest.mark.parametrize("status", list(PlanStatus))
    def test_full_access_regardless_of_status_and_department(self, status):
        admin = _actor(Role.ADMIN, user_id=99, department_id=None)
        assert allowed_actions(admin, _plan(status, department_id=OTHER_DEPT)) == frozenset(Action)

    def test_can_create_for_any_department(self):
        assert can_create_plan(_actor(Role.ADMIN, department_id=None), OTHER_DEPT)


class TestPreparer:
    def test_author_on_draft_can_edit_delete_add_and_submit(self):
        actions = allowed_actions(_actor(Role.PPMP_PREPARER), _plan())
        assert {Action.VIEW, Action.EDIT, Action.DELETE, Action.ADD_CHILD, Action.SUBMIT} <= actions
        assert Action.APPROVE not in actions

    def test_colleague_can_edit_but_not_submit(self):
        colleague = _actor(Role.PPMP_PREPARER, user_id=11)
        actions = allowed_actions(colleague, _plan())
        assert Action.EDIT in actions
        assert Action.SUBMIT not in actions

    @pytest.mark.parametrize("status", [PlanStatus.SUBMITTED, PlanStatus.APPROVED, PlanStatus.REJECTED])
    def test_no_edits_after_draft(self, status):
        actions = allowed_actions(_actor(Role.PPMP_PREPARER), _plan(status))
        assert Action.VIEW in actions
        assert not actions & {Action.EDIT, Action.DELETE, Action.ADD_CHILD, Action.SUBMIT}

    @pytest.mark.parametrize("status", list(PlanStatus))
    def test_other_department_is_invisible(self, status):
        assert allowed_actions(_actor(Role.PPMP_PREPARER), _plan(status, department_id=OTHER_DEPT)) == frozenset()

    def test_preparer_without_department_sees_nothing(self):
        homeless = _actor(Role.PPMP_PREPARER, department_id=None)
        assert allowed_actions(homeless, _plan()) == frozenset()
        assert visible_department_scope(homeless) == -1

    def test_create_only_for_own_department(self):
        prep = _actor(Role.PPMP_PREPARER)
        assert can_create_plan(prep, DEPT)
        assert not can_create_plan(prep, OTHER_DEPT)

    def test_author_may_link_on_approved_plan(self):
        assert can(_actor(Role.PPMP_PREPARER), Action.LINK_DISBURSEMENT, _plan(PlanStatus.APPROVED))
        colleague = _actor(Role.PPMP_PREPARER, user_id=11)
        assert not can(colleague, Action.LINK_DISBURSEMENT, _plan(PlanStatus.APPROVED))

    def test_list_scope_is_own_department(self):
        assert visible_department_scope(_actor(Role.PPMP_PREPARER)) == DEPT


class TestApprovers:
    @pytest.mark.parametrize("role", [Role.PPMP_APPROVER, Role.FINANCE_HEAD, Role.MAYOR])
    def test_approve_and_reject_only_while_submitted(self, role):
        approver = _actor(role, user_id=50, department_id=None)
        assert {Action.APPROVE, Action.REJECT} <= allowed_actions(approver, _plan(PlanStatus.SUBMITTED))
        for status in (PlanStatus.DRAFT, PlanStatus.APPROVED, PlanStatus.REJECTED):
            assert not allowed_actions(approver, _plan(status)) & {Action.APPROVE, Action.REJECT}

    @pytest.mark.parametrize("role", [Role.PPMP_APPROVER, Role.FINANCE_HEAD, Role.MAYOR])
    def test_no_edit_rights(self, role):
        approver = _actor(role, user_id=50, department_id=None)
        for status in PlanStatus:
            assert not allowed_actions(approver, _plan(status)) & {
                Action.EDIT, Action.DELETE, Action.ADD_CHILD, Action.SUBMIT,
            }

    def test_view_all_departments(self):
        approver = _actor(Role.MAYOR, user_id=50, department_id=None)
        assert can(approver, Action.VIEW, _plan(department_id=OTHER_DEPT))
        assert visible_department_scope(approver) is None

    def test_link_only_on_approved(self):
        approver = _actor(Role.FINANCE_HEAD, user_id=50)
        assert can(approver, Action.LINK_DISBURSEMENT, _plan(PlanStatus.APPROVED))
        assert not can(approver, Action.LINK_DISBURSEMENT, _plan(PlanStatus.SUBMITTED))


class TestViewer:
    @pytest.mark.parametrize("status", list(PlanStatus))
    def test_read_only(self, status):
        assert allowed_actions(_actor(Role.VIEWER, user_id=70), _plan(status)) == frozenset(
            {Action.VIEW, Action.VIEW_REPORTS}
        )


class TestCheck:
    def test_check_raises_permission_denied(self):
        with pytest.raises(PermissionDeniedError):
            check(_actor(Role.VIEWER), Action.EDIT, _plan())

    def test_check_passes_silently_when_allowed(self):
        assert check(_actor(Role.ADMIN), Action.DELETE, _plan()) is None

    def test_at_status_keeps_ownership(self):
        ctx = _plan(PlanStatus.SUBMITTED).at_status(PlanStatus.DRAFT)
        assert ctx.status == PlanStatus.DRAFT
        assert ctx.prepared_by_id == AUTHOR
