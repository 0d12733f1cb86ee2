"""
Demo data for local development.

    flask --app wsgi seed-demo

Idempotent: existing departments, users, products and vouchers (matched by
their unique key) are left alone. Every seeded account uses the password
given on the command line (default ``password123``).
"""

import logging
from datetime import date
from decimal import Decimal

from ppmp.models import db
from ppmp.models.auth import Department, Role, User
from ppmp.models.disbursement import DisbursementVoucher
from ppmp.models.plan import (
    BudgetAllocation,
    ItemCategory,
    LineItem,
    Plan,
    PlanStatus,
    ProcurementMethod,
    Product,
)
from ppmp.services.aggregates import compute_line_total, recompute_plan_totals
from ppmp.utils.crypto import hash_password

logger = logging.getLogger(__name__)

DEPARTMENTS = [
    ("GSO", "General Services Office"),
    ("HR", "Human Resources"),
    ("FIN", "Finance Department"),
    ("ENG", "Engineering Department"),
]

# (email, full name, role, department code)
USERS = [
    ("admin@socorro.gov.ph", "System Administrator", Role.ADMIN, None),
    ("ppmp.gso@socorro.gov.ph", "GSO PPMP Preparer", Role.PPMP_PREPARER, "GSO"),
    ("ppmp.hr@socorro.gov.ph", "HR PPMP Preparer", Role.PPMP_PREPARER, "HR"),
    ("approver@socorro.gov.ph", "PPMP Approver", Role.PPMP_APPROVER, None),
    ("finance.head@socorro.gov.ph", "Finance Head", Role.FINANCE_HEAD, "FIN"),
    ("mayor@socorro.gov.ph", "Municipal Mayor", Role.MAYOR, None),
    ("viewer@socorro.gov.ph", "Read-only Viewer", Role.VIEWER, None),
]

PRODUCTS = [
    ("Bond Paper A4 (500 sheets/pack)", "pack", "250.00"),
    ("Ballpoint Pens (black, 12/pack)", "pack", "120.00"),
    ("Desktop Computer (Core i5)", "unit", "25000.00"),
    ('LED Monitor 24"', "unit", "8000.00"),
]

VOUCHERS = [
    ("DV-2025-0001", "Socorro Office Supplies Trading", "Payment for bond paper delivery", "25000.00", date(2025, 2, 20)),
    ("DV-2025-0002", "Socorro Office Supplies Trading", "Payment for ballpoint pens", "6000.00", date(2025, 2, 20)),
    ("DV-2025-0003", "Metro Computer Center", "Partial payment, desktop computers", "62500.00", date(2025, 6, 5)),
]


def _get_or_create(model, lookup: dict, **values):
    obj = model.query.filter_by(**lookup).first()
    if obj is None:
        obj = model(**lookup, **values)
        db.session.add(obj)
        return obj, True
    return obj, False


def seed_demo(password: str = "password123") -> dict:
    """Insert demo records; returns counts of newly created rows per kind."""
    created = {"departments": 0, "users": 0, "products": 0, "vouchers": 0, "plans": 0}

    departments = {}
    for code, name in DEPARTMENTS:
        dept, new = _get_or_create(Department, {"code": code}, name=name)
        departments[code] = dept
        created["departments"] += new
    db.session.flush()

    password_hash = hash_password(password)
    users = {}
    for email, full_name, role, dept_code in USERS:
        user, new = _get_or_create(
            User, {"email": email},
            full_name=full_name,
            role=role.value,
            department_id=departments[dept_code].id if dept_code else None,
            password_hash=password_hash,
        )
        users[email] = user
        created["users"] += new

    for description, unit, cost in PRODUCTS:
        _, new = _get_or_create(
            Product, {"description": description}, unit=unit, default_unit_cost=Decimal(cost),
        )
        created["products"] += new

    for dv_number, payee, particulars, amount, released in VOUCHERS:
        _, new = _get_or_create(
            DisbursementVoucher, {"dv_number": dv_number},
            payee=payee, particulars=particulars, amount=Decimal(amount),
            status="RELEASED", release_date=released,
        )
        created["vouchers"] += new
    db.session.flush()

    title = "Office Supplies Procurement Plan FY 2025"
    if Plan.query.filter_by(title=title).first() is None:
        preparer = users["ppmp.gso@socorro.gov.ph"]
        plan = Plan(
            title=title,
            fiscal_year=2025,
            status=PlanStatus.DRAFT.value,
            department_id=departments["GSO"].id,
            prepared_by_id=preparer.id,
        )
        db.session.add(plan)
        db.session.flush()
        for item_no, description, qty, cost in (
            ("GSO-001", "Bond Paper A4 (500 sheets/pack)", 100, "250.00"),
            ("GSO-002", "Ballpoint Pens (black, 12/pack)", 50, "120.00"),
        ):
            db.session.add(LineItem(
                plan_id=plan.id,
                item_no=item_no,
                category=ItemCategory.GOODS.value,
                description=description,
                quantity=qty,
                unit="pack",
                unit_cost=Decimal(cost),
                total_cost=compute_line_total(qty, cost),
                procurement_method=ProcurementMethod.SHOPPING.value,
                start_date=date(2025, 1, 15),
                end_date=date(2025, 2, 15),
                delivery_date=date(2025, 2, 15),
            ))
        db.session.add(BudgetAllocation(
            plan_id=plan.id,
            budget_code="101-001-001",
            description="Office Supplies Budget",
            allocated_amount=Decimal("150000.00"),
            expended_amount=Decimal("0.00"),
        ))
        recompute_plan_totals(plan)
        created["plans"] += 1

    db.session.commit()
    logger.info("Demo data seeded: %s", created)
    return created
