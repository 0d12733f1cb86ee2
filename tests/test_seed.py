"""Demo seed data and the ``seed-demo`` CLI command."""

from decimal import Decimal

from ppmp.models.auth import User
from ppmp.models.plan import Plan
from ppmp.seed import seed_demo


class TestSeed:
    def test_seed_creates_consistent_plan(self):
        created = seed_demo(password="pw")
        assert created == {"departments": 4, "users": 7, "products": 4, "vouchers": 3, "plans": 1}
        plan = Plan.query.one()
        # 100 × 250.00 + 50 × 120.00
        assert plan.total_estimated_budget == Decimal("31000.00")
        assert plan.total_allocated_budget == Decimal("150000.00")

    def test_seed_is_idempotent(self):
        seed_demo(password="pw")
        again = seed_demo(password="pw")
        assert set(again.values()) == {0}
        assert User.query.count() == 7

    def test_cli_command(self, app):
        result = app.test_cli_runner().invoke(args=["seed-demo", "--password", "pw"])
        assert result.exit_code == 0
        assert "Seeded:" in result.output
