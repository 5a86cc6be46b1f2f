"""
Goods receipts raise payable invoices.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from ledger_kernel.exceptions import MissingFieldError
from ledger_kernel.models.account import Account
from ledger_kernel.models.invoice import Invoice, InvoiceType
from ledger_kernel.models.journal import JournalEntry
from ledger_services.events import GoodsReceipt, GoodsReceived
from ledger_services.integrators import PurchaseIntegrator


def _receipt_event(tenant_id, **overrides):
    data = {
        "receipt_id": "GR-3",
        "receipt_number": "GR-2024-0003",
        "supplier_id": "SUP-9",
        "receipt_date": "2024-04-10",
        "payment_terms_days": 15,
        "lines": [
            {
                "product_id": "P-1",
                "description": "Widget",
                "received_quantity": "8",
                "unit_price": "12.50",
                "discount_percentage": "5",
                "tax_rate": "10",
            },
        ],
    }
    data.update(overrides)
    return GoodsReceived(tenant_id=tenant_id, receipt=GoodsReceipt.from_dict(data))


@pytest.fixture
def integrator(session_factory, ledger_config, deterministic_clock):
    return PurchaseIntegrator(session_factory, ledger_config, deterministic_clock)


class TestPurchaseInvoice:
    def test_invoice_created_without_journal_entry(self, integrator, read_session, tenant_id):
        result = integrator.handle(_receipt_event(tenant_id))

        # 100.00 less 5.00 discount plus 10% tax on 95.00
        assert result.record_number == "APINV-20240410-000001"
        assert result.amount == Decimal("104.50")

        s = read_session()
        try:
            invoice = s.get(Invoice, result.record_id)
            assert invoice.invoice_type == InvoiceType.PURCHASE
            assert invoice.supplier_id == "SUP-9"
            assert invoice.due_date == date(2024, 4, 25)
            assert invoice.reference_number == "GR-2024-0003"
            assert invoice.created_by_id is not None
            entries = s.scalars(select(JournalEntry).where(JournalEntry.tenant_id == tenant_id)).all()
            assert entries == []
        finally:
            s.close()

    def test_payable_account_provisioned(
        self, integrator, read_session, tenant_id, ledger_config,
    ):
        integrator.handle(_receipt_event(tenant_id))

        s = read_session()
        try:
            payable = s.scalars(
                select(Account).where(Account.tenant_id == tenant_id, Account.code == "2100")
            ).one()
            assert payable.is_system
            assert payable.created_by_id == ledger_config.system_actor_id
        finally:
            s.close()

    def test_redelivery_returns_same_invoice(
        self, integrator, read_session, tenant_id, captured_logs,
    ):
        event = _receipt_event(tenant_id)

        first = integrator.handle(event)
        second = integrator.handle(event)

        assert second.record_id == first.record_id
        s = read_session()
        try:
            invoices = s.scalars(select(Invoice).where(Invoice.tenant_id == tenant_id)).all()
            assert len(invoices) == 1
        finally:
            s.close()

        messages = [r["message"] for r in captured_logs()]
        assert messages.count("purchase_invoice_recorded") == 1
        assert messages.count("purchase_invoice_already_recorded") == 1

    def test_missing_supplier_rolls_back(self, integrator, read_session, tenant_id):
        with pytest.raises(MissingFieldError):
            integrator.handle(_receipt_event(tenant_id, supplier_id=None))

        s = read_session()
        try:
            assert s.scalars(select(Account).where(Account.tenant_id == tenant_id)).all() == []
            assert s.scalars(select(Invoice).where(Invoice.tenant_id == tenant_id)).all() == []
        finally:
            s.close()

    def test_logs_carry_event_context(self, integrator, tenant_id, captured_logs):
        event = _receipt_event(tenant_id)
        integrator.handle(event)

        recorded = [r for r in captured_logs() if r["message"] == "purchase_invoice_recorded"]
        assert recorded[0]["event_id"] == str(event.event_id)
        assert recorded[0]["handler"] == "purchase_invoice"
        assert recorded[0]["total_amount"] == "104.50"
