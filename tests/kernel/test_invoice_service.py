"""
Invoices raised from confirmed sales orders and goods receipts.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.exceptions import InvalidAmountError, InvalidCurrencyError, MissingFieldError
from ledger_kernel.models.invoice import InvoiceStatus, InvoiceType
from ledger_services.events import GoodsReceipt, SalesOrder


def _order(**overrides):
    data = {
        "order_id": "SO-42",
        "order_number": "SO-2024-0042",
        "customer_id": "CUST-7",
        "subtotal": "200.00",
        "tax_amount": "16.00",
        "discount_amount": "10.00",
        "total_amount": "206.00",
        "lines": [
            {
                "product_id": "P-1",
                "description": "Widget",
                "quantity": "4",
                "unit_price": "25.00",
                "line_total": "100.00",
            },
            {
                "product_id": "P-2",
                "description": "Gadget",
                "quantity": "2",
                "unit_price": "50.00",
                "discount_percentage": "10",
                "tax_rate": "8",
                "line_total": "100.00",
            },
        ],
    }
    data.update(overrides)
    return SalesOrder.from_dict(data)


class TestCreateFromOrder:
    def test_invoice_mirrors_order(self, invoice_service, tenant_id, test_actor_id):
        invoice = invoice_service.create_from_order(tenant_id, _order(), actor_id=test_actor_id)

        assert invoice.invoice_number == "INV-20240101-000001"
        assert invoice.invoice_type == InvoiceType.SALES
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.customer_id == "CUST-7"
        assert invoice.invoice_date == date(2024, 1, 1)
        assert invoice.due_date == date(2024, 1, 31)
        assert invoice.total_amount == Decimal("206.00")
        assert invoice.amount_paid == Decimal("0")
        assert invoice.amount_due == Decimal("206.00")
        assert invoice.reference_type == "sales_order"
        assert invoice.reference_id == "SO-42"
        assert invoice.notes == "Invoice for sales order SO-2024-0042"
        assert [line.description for line in invoice.lines] == ["Widget", "Gadget"]
        assert invoice.lines[1].discount_percentage == Decimal("10")

    def test_invoice_numbers_increment(self, invoice_service, tenant_id, test_actor_id):
        invoice_service.create_from_order(tenant_id, _order(), actor_id=test_actor_id)
        second = invoice_service.create_from_order(
            tenant_id, _order(order_id="SO-43"), actor_id=test_actor_id,
        )
        assert second.invoice_number == "INV-20240101-000002"

    def test_idempotency_key_returns_existing(self, invoice_service, tenant_id, test_actor_id):
        first = invoice_service.create_from_order(
            tenant_id, _order(), "sales_invoice:sales.order_confirmed:1", actor_id=test_actor_id,
        )
        again = invoice_service.create_from_order(
            tenant_id, _order(), "sales_invoice:sales.order_confirmed:1", actor_id=test_actor_id,
        )
        assert again.id == first.id
        assert len(invoice_service.invoices_for_order(tenant_id, "SO-42")) == 1

    def test_missing_customer_rejected(self, invoice_service, tenant_id, test_actor_id):
        with pytest.raises(MissingFieldError):
            invoice_service.create_from_order(
                tenant_id, _order(customer_id=None), actor_id=test_actor_id,
            )

    def test_unknown_currency_rejected(self, invoice_service, tenant_id, test_actor_id):
        with pytest.raises(InvalidCurrencyError):
            invoice_service.create_from_order(
                tenant_id, _order(currency="ABC"), actor_id=test_actor_id,
            )

    def test_no_journal_entry_posted(
        self, session, invoice_service, tenant_id, test_actor_id,
    ):
        from ledger_kernel.models.journal import JournalEntry

        invoice_service.create_from_order(tenant_id, _order(), actor_id=test_actor_id)
        assert session.query(JournalEntry).filter_by(tenant_id=tenant_id).count() == 0


def _receipt(**overrides):
    data = {
        "receipt_id": "GR-5",
        "receipt_number": "GR-2024-0005",
        "supplier_id": "SUP-3",
        "receipt_date": "2024-01-15",
        "purchase_order_number": "PO-2024-0002",
        "lines": [
            {
                "product_id": "P-1",
                "description": "Widget",
                "received_quantity": "10",
                "unit_price": "12.50",
            },
            {
                "product_id": "P-2",
                "description": "Gadget",
                "received_quantity": "3",
                "unit_price": "40.00",
                "discount_percentage": "10",
                "tax_rate": "8",
            },
        ],
    }
    data.update(overrides)
    return GoodsReceipt.from_dict(data)


class TestCreateFromGoodsReceipt:
    def test_amounts_computed_per_line(self, invoice_service, tenant_id, test_actor_id):
        invoice = invoice_service.create_from_goods_receipt(
            tenant_id, _receipt(), actor_id=test_actor_id,
        )

        # Widget 125.00; Gadget 120.00 less 12.00 discount, 8% tax on 108.00
        assert invoice.subtotal == Decimal("245.00")
        assert invoice.discount_amount == Decimal("12.00")
        assert invoice.tax_amount == Decimal("8.64")
        assert invoice.total_amount == Decimal("241.64")
        assert invoice.amount_due == Decimal("241.64")
        assert invoice.amount_paid == Decimal("0")
        assert [line.line_total for line in invoice.lines] == [Decimal("125.00"), Decimal("120.00")]

    def test_purchase_invoice_header(self, invoice_service, tenant_id, test_actor_id):
        invoice = invoice_service.create_from_goods_receipt(
            tenant_id, _receipt(), actor_id=test_actor_id,
        )

        assert invoice.invoice_number == "APINV-20240115-000001"
        assert invoice.invoice_type == InvoiceType.PURCHASE
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.supplier_id == "SUP-3"
        assert invoice.customer_id is None
        assert invoice.invoice_date == date(2024, 1, 15)
        assert invoice.due_date == date(2024, 2, 14)
        assert invoice.reference_type == "goods_receipt"
        assert invoice.reference_number == "GR-2024-0005"
        assert invoice.notes == "Invoice for goods receipt GR-2024-0005"

    def test_receipt_terms_override_default(self, invoice_service, tenant_id, test_actor_id):
        invoice = invoice_service.create_from_goods_receipt(
            tenant_id, _receipt(payment_terms_days=45), actor_id=test_actor_id,
        )
        assert invoice.due_date == date(2024, 2, 29)

    def test_missing_receipt_date_uses_clock(self, invoice_service, tenant_id, test_actor_id):
        invoice = invoice_service.create_from_goods_receipt(
            tenant_id, _receipt(receipt_date=None), actor_id=test_actor_id,
        )
        assert invoice.invoice_date == date(2024, 1, 1)
        assert invoice.due_date == date(2024, 1, 31)

    def test_sub_cent_line_amounts_rounded(self, invoice_service, tenant_id, test_actor_id):
        receipt = _receipt(
            lines=[
                {
                    "product_id": "P-9",
                    "description": "Bolt",
                    "received_quantity": "3",
                    "unit_price": "0.335",
                    "tax_rate": "7.5",
                },
            ],
        )
        invoice = invoice_service.create_from_goods_receipt(
            tenant_id, receipt, actor_id=test_actor_id,
        )
        assert invoice.subtotal == Decimal("1.01")
        assert invoice.tax_amount == Decimal("0.08")
        assert invoice.total_amount == Decimal("1.09")

    def test_numbering_separate_from_sales(self, invoice_service, tenant_id, test_actor_id):
        invoice_service.create_from_order(tenant_id, _order(), actor_id=test_actor_id)
        purchase = invoice_service.create_from_goods_receipt(
            tenant_id, _receipt(), actor_id=test_actor_id,
        )
        assert purchase.invoice_number.endswith("-000001")

    def test_idempotency_key_returns_existing(self, invoice_service, tenant_id, test_actor_id):
        key = "purchase_invoice:procurement.goods_received:1"
        first = invoice_service.create_from_goods_receipt(
            tenant_id, _receipt(), key, actor_id=test_actor_id,
        )
        again = invoice_service.create_from_goods_receipt(
            tenant_id, _receipt(), key, actor_id=test_actor_id,
        )
        assert again.id == first.id
        assert len(invoice_service.invoices_for_receipt(tenant_id, "GR-5")) == 1

    def test_missing_supplier_rejected(self, invoice_service, tenant_id, test_actor_id):
        with pytest.raises(MissingFieldError):
            invoice_service.create_from_goods_receipt(
                tenant_id, _receipt(supplier_id=None), actor_id=test_actor_id,
            )

    @pytest.mark.parametrize("field", ["received_quantity", "unit_price"])
    def test_negative_line_values_rejected(
        self, invoice_service, tenant_id, test_actor_id, field,
    ):
        line = {
            "product_id": "P-1",
            "description": "Widget",
            "received_quantity": "1",
            "unit_price": "5.00",
            field: "-1",
        }
        with pytest.raises(InvalidAmountError):
            invoice_service.create_from_goods_receipt(
                tenant_id, _receipt(lines=[line]), actor_id=test_actor_id,
            )
