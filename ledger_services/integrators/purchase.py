"""
PurchaseIntegrator -- raises the payable invoice for received goods.

Amounts are computed from the receipt lines (quantity, price, discount and
tax rates); see InvoiceService.create_from_goods_receipt.  Like the sales
invoice, no journal entry is posted until the supplier is paid.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_services.events import GoodsReceived
from ledger_services.integrators.base import EventIntegrator, IntegrationResult

logger = get_logger("integrators.purchase")


class PurchaseIntegrator(EventIntegrator):
    name = "purchase_invoice"
    event_type = GoodsReceived.event_type

    def process(self, session: Session, event: GoodsReceived) -> IntegrationResult:
        receipt = event.receipt
        # The payable account has to exist before the invoice can be paid
        self.provision(session, event.tenant_id, "accounts_payable")
        invoices = self.invoices(session)
        key = self.idempotency_key(event)
        already_recorded = invoices.find_by_idempotency_key(event.tenant_id, key) is not None
        invoice = invoices.create_from_goods_receipt(
            event.tenant_id,
            receipt,
            idempotency_key=key,
            actor_id=self.actor_id,
        )
        logger.info(
            (
                "purchase_invoice_already_recorded"
                if already_recorded
                else "purchase_invoice_recorded"
            ),
            extra={
                "receipt_id": receipt.receipt_id,
                "receipt_number": receipt.receipt_number,
                "supplier_id": receipt.supplier_id,
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "total_amount": str(invoice.total_amount),
            },
        )
        return IntegrationResult(
            record_id=invoice.id,
            record_number=invoice.invoice_number,
            amount=invoice.total_amount,
        )
