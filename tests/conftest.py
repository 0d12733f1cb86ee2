"""
Shared pytest fixtures for the PPMP Administration Service test suite.

Provides:
    - app: Flask application (session-scoped, in-memory SQLite)
    - session: Per-test app context with table drop/recreate (autouse)
    - client: Flask test client
    - make_department / make_user / make_plan: ORM factories
    - dept, other_dept, admin, preparer, ...: common actors
    - actor: User → Actor helper
    - auth_headers: User → Authorization header with a real JWT
    - ready_plan: DRAFT plan with one line item (10 × 5.00) and one 50.00 allocation
"""

import itertools
from decimal import Decimal

import pytest

from ppmp import create_app
from ppmp.models import db as _db
from ppmp.models.auth import Department, Role, User
from ppmp.models.disbursement import DisbursementVoucher
from ppmp.models.plan import Plan, PlanStatus
from ppmp.services import plan_service
from ppmp.services.jwt_service import generate_access_token
from ppmp.services.permission import Actor
from ppmp.utils.crypto import hash_password


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(autouse=True)
def session(app):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.session.info.clear()
        _db.drop_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────

_seq = itertools.count(1)


@pytest.fixture()
def make_department():
    def _make(code=None, name=None):
        n = next(_seq)
        dept = Department(code=code or f"D{n}", name=name or f"Department {n}")
        _db.session.add(dept)
        _db.session.commit()
        return dept
    return _make


@pytest.fixture()
def make_user():
    def _make(role, department=None, email=None, password=None, is_active=True):
        n = next(_seq)
        role_value = role.value if isinstance(role, Role) else role
        user = User(
            email=email or f"{role_value.lower()}.{n}@test.gov.ph",
            full_name=f"{role_value.title()} {n}",
            role=role_value,
            department_id=department.id if department else None,
            password_hash=hash_password(password) if password else None,
            is_active=is_active,
        )
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_plan():
    """Insert a plan directly (any status) without going through the lifecycle."""
    def _make(preparer, status=PlanStatus.DRAFT, title=None, fiscal_year=2025, department=None):
        plan = Plan(
            title=title or f"Plan {next(_seq)}",
            fiscal_year=fiscal_year,
            status=PlanStatus(status).value,
            department_id=department.id if department else preparer.department_id,
            prepared_by_id=preparer.id,
            total_estimated_budget=0,
            total_allocated_budget=0,
        )
        _db.session.add(plan)
        _db.session.commit()
        return plan
    return _make


@pytest.fixture()
def make_voucher():
    def _make(amount="50.00", payee="Socorro Trading", particulars="Payment", dv_number=None):
        voucher = DisbursementVoucher(
            dv_number=dv_number or f"DV-{next(_seq):05d}",
            payee=payee,
            particulars=particulars,
            amount=Decimal(amount),
        )
        _db.session.add(voucher)
        _db.session.commit()
        return voucher
    return _make


# ── Common actors ────────────────────────────────────────────────────────


@pytest.fixture()
def dept(make_department):
    return make_department("GSO", "General Services Office")


@pytest.fixture()
def other_dept(make_department):
    return make_department("HR", "Human Resources")


@pytest.fixture()
def admin(make_user):
    return make_user(Role.ADMIN)


@pytest.fixture()
def preparer(make_user, dept):
    return make_user(Role.PPMP_PREPARER, dept)


@pytest.fixture()
def colleague(make_user, dept):
    """Second preparer in the same department."""
    return make_user(Role.PPMP_PREPARER, dept)


@pytest.fixture()
def outsider(make_user, other_dept):
    """Preparer from a different department."""
    return make_user(Role.PPMP_PREPARER, other_dept)


@pytest.fixture()
def approver(make_user):
    return make_user(Role.PPMP_APPROVER)


@pytest.fixture()
def viewer(make_user):
    return make_user(Role.VIEWER)


@pytest.fixture()
def actor():
    return Actor.from_user


@pytest.fixture()
def auth_headers():
    def _headers(user):
        token = generate_access_token(user.id, user.role, user.department_id)
        return {"Authorization": f"Bearer {token}"}
    return _headers


# ── Composite fixtures ───────────────────────────────────────────────────


ITEM_PAYLOAD = {
    "item_no": "GSO-001",
    "category": "GOODS",
    "description": "Bond Paper A4",
    "quantity": 10,
    "unit": "ream",
    "unit_cost": "5.00",
    "procurement_method": "SHOPPING",
}

ALLOCATION_PAYLOAD = {
    "budget_code": "101-001",
    "description": "Office Supplies",
    "allocated_amount": "50.00",
}


@pytest.fixture()
def item_payload():
    return dict(ITEM_PAYLOAD)


@pytest.fixture()
def allocation_payload():
    return dict(ALLOCATION_PAYLOAD)


@pytest.fixture()
def ready_plan(preparer, make_plan, actor):
    """DRAFT plan with one 10 × 5.00 item and a 50.00 allocation."""
    plan = make_plan(preparer)
    plan_service.add_item(actor(preparer), plan.id, dict(ITEM_PAYLOAD))
    plan_service.add_allocation(actor(preparer), plan.id, dict(ALLOCATION_PAYLOAD))
    return plan
