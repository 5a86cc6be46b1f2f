"""
Stock movements valued into the inventory asset and its contra accounts.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalEntry
from ledger_services.events import StockMovement, StockMovementRecorded
from ledger_services.integrators import InventoryIntegrator


def _movement_event(tenant_id, movement_type="RECEIPT", quantity="10", **overrides):
    values = dict(
        movement_id="MV-1",
        movement_type=movement_type,
        product_id="P-1",
        product_name="Widget",
        quantity=Decimal(quantity),
        unit_cost=Decimal("12.50"),
        reference_number="GRN-0001",
        movement_date=date(2024, 2, 15),
    )
    values.update(overrides)
    return StockMovementRecorded(tenant_id=tenant_id, movement=StockMovement(**values))


@pytest.fixture
def integrator(session_factory, ledger_config, deterministic_clock):
    return InventoryIntegrator(session_factory, ledger_config, deterministic_clock)


def _balances(read_session, tenant_id):
    s = read_session()
    try:
        rows = s.scalars(select(Account).where(Account.tenant_id == tenant_id)).all()
        return {a.code: a.balance for a in rows}
    finally:
        s.close()


class TestInventoryValuation:
    def test_receipt_debits_inventory_credits_payables(
        self, integrator, committed_period, read_session, tenant_id,
    ):
        result = integrator.handle(_movement_event(tenant_id))

        assert result.amount == Decimal("125.00")
        assert result.record_number == "JE-INV-20240215-000001"
        assert _balances(read_session, tenant_id) == {
            "1400": Decimal("125.00"),
            "2100": Decimal("125.00"),
        }

        s = read_session()
        try:
            entry = s.get(JournalEntry, result.record_id)
            assert entry.description == "Inventory valuation for RECEIPT: GRN-0001"
            assert entry.reference_type == "stock_movement"
            assert entry.lines[0].description == "Inventory increase - Widget"
        finally:
            s.close()

    def test_issue_credits_inventory_debits_cogs(
        self, integrator, committed_period, read_session, tenant_id,
    ):
        integrator.handle(_movement_event(tenant_id, "issue", "-4"))

        balances = _balances(read_session, tenant_id)
        assert balances["5000"] == Decimal("50.00")
        assert balances["1400"] == Decimal("-50.00")

    def test_adjustment_uses_adjustment_account(
        self, integrator, committed_period, read_session, tenant_id,
    ):
        integrator.handle(_movement_event(tenant_id, "ADJUSTMENT", "-2"))
        assert _balances(read_session, tenant_id)["6100"] == Decimal("25.00")

    def test_product_cost_price_fallback(
        self, integrator, committed_period, tenant_id,
    ):
        result = integrator.handle(
            _movement_event(tenant_id, unit_cost=None, product_cost_price=Decimal("3.335"))
        )
        assert result.amount == Decimal("33.35")

    def test_movement_date_defaults_to_today(self, integrator, committed_period, tenant_id):
        result = integrator.handle(_movement_event(tenant_id, movement_date=None))
        assert result.record_number == "JE-INV-20240101-000001"


class TestSkippedMovements:
    def test_unlisted_type_skipped(self, integrator, read_session, tenant_id, captured_logs):
        result = integrator.handle(_movement_event(tenant_id, "CYCLE_COUNT"))

        assert result.skipped
        assert result.reason == "movement_type_not_valued"
        assert _balances(read_session, tenant_id) == {}
        skipped = [r for r in captured_logs() if r["message"] == "stock_movement_skipped"]
        assert skipped[0]["movement_type"] == "CYCLE_COUNT"

    def test_zero_value_skipped(self, integrator, tenant_id):
        result = integrator.handle(_movement_event(tenant_id, unit_cost=Decimal("0")))
        assert result.skipped
        assert result.reason == "zero_value"

    def test_redelivery_posts_once(
        self, integrator, committed_period, read_session, tenant_id, captured_logs,
    ):
        event = _movement_event(tenant_id)
        first = integrator.handle(event)
        second = integrator.handle(event)

        assert second.record_id == first.record_id
        assert second.amount == Decimal("125.00")
        assert _balances(read_session, tenant_id)["1400"] == Decimal("125.00")

        messages = [r["message"] for r in captured_logs()]
        assert messages.count("inventory_journal_posted") == 1
        assert messages.count("inventory_journal_already_posted") == 1
