"""
SalesIntegrator -- raises the receivable invoice for a confirmed order.

No journal entry is posted: the invoice is the downstream record that
PaymentService settles when the customer pays.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_services.events import OrderConfirmed
from ledger_services.integrators.base import EventIntegrator, IntegrationResult

logger = get_logger("integrators.sales")


class SalesIntegrator(EventIntegrator):
    name = "sales_invoice"
    event_type = OrderConfirmed.event_type

    def process(self, session: Session, event: OrderConfirmed) -> IntegrationResult:
        invoices = self.invoices(session)
        key = self.idempotency_key(event)
        already_recorded = invoices.find_by_idempotency_key(event.tenant_id, key) is not None
        invoice = invoices.create_from_order(
            event.tenant_id,
            event.order,
            idempotency_key=key,
            actor_id=self.actor_id,
        )
        logger.info(
            "sales_invoice_already_recorded" if already_recorded else "sales_invoice_recorded",
            extra={
                "order_id": event.order.order_id,
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
            },
        )
        return IntegrationResult(
            record_id=invoice.id,
            record_number=invoice.invoice_number,
            amount=invoice.total_amount,
        )
