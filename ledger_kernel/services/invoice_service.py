"""
InvoiceService -- invoices raised from sales orders and goods receipts.

Responsibility:
    Mirrors a confirmed sales order into a DRAFT receivable invoice, and a
    goods receipt into a DRAFT payable invoice, one invoice line per source
    line.  No journal entry is posted here; PaymentService posts the cash
    movement when the invoice is settled.

Invariants enforced:
    - Sales invoice numbers come from the per-tenant "invoice" sequence,
      purchase invoice numbers from "purchase_invoice":
      ``{prefix}-{YYYYMMDD}-{seq:06d}``.
    - A repeated ``idempotency_key`` returns the invoice already created
      for it.
    - amount_paid starts at 0 and amount_due at the invoice total.
    - Purchase invoice amounts are computed per line and rounded to cents:
      discount = qty * price * discount% / 100,
      tax = (qty * price - discount) * tax% / 100,
      total = subtotal - discount + tax.

Failure modes:
    - MissingFieldError when the order carries no customer or the receipt
      no supplier.
    - InvalidAmountError for a negative receipt quantity or price.
    - InvalidCurrencyError for an unknown currency.
"""

from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money, to_decimal, validate_currency
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import InvalidAmountError, MissingFieldError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.invoice import Invoice, InvoiceLine, InvoiceStatus, InvoiceType
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.invoice")


class InvoiceService(BaseService[Invoice]):
    """Invoice creation for the sales and purchasing integrations."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sequence_service: SequenceService | None = None,
        invoice_prefix: str = "INV",
        purchase_prefix: str = "APINV",
        payment_terms_days: int = 30,
        default_currency: str = "USD",
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._sequences = sequence_service or SequenceService(session)
        self._prefix = invoice_prefix
        self._purchase_prefix = purchase_prefix
        self._payment_terms_days = payment_terms_days
        self._default_currency = default_currency

    def find_by_idempotency_key(self, tenant_id: UUID, idempotency_key: str) -> Invoice | None:
        return self.session.execute(
            select(Invoice).where(
                Invoice.tenant_id == tenant_id,
                Invoice.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()

    def invoices_for_order(self, tenant_id: UUID, order_id: str) -> list[Invoice]:
        return self._invoices_for_reference(tenant_id, "sales_order", order_id)

    def invoices_for_receipt(self, tenant_id: UUID, receipt_id: str) -> list[Invoice]:
        return self._invoices_for_reference(tenant_id, "goods_receipt", receipt_id)

    def _invoices_for_reference(
        self, tenant_id: UUID, reference_type: str, reference_id: str,
    ) -> list[Invoice]:
        return list(
            self.session.execute(
                select(Invoice)
                .where(
                    Invoice.tenant_id == tenant_id,
                    Invoice.reference_type == reference_type,
                    Invoice.reference_id == str(reference_id),
                )
                .order_by(Invoice.invoice_number)
            ).scalars()
        )

    def create_from_order(
        self,
        tenant_id: UUID,
        order: Any,
        idempotency_key: str | None = None,
        *,
        actor_id: UUID,
    ) -> Invoice:
        """
        Create a DRAFT sales invoice mirroring ``order``.

        ``order`` needs ``order_id``, ``order_number``, ``customer_id``,
        ``currency``, ``subtotal``, ``tax_amount``, ``discount_amount``,
        ``total_amount``, and ``lines`` whose items carry ``product_id``,
        ``description``, ``quantity``, ``unit_price``,
        ``discount_percentage``, ``tax_rate`` and ``line_total``.

        Invoice date is the clock's today; due date adds the payment terms.
        """
        if idempotency_key:
            existing = self.find_by_idempotency_key(tenant_id, idempotency_key)
            if existing is not None:
                self._log_idempotent(existing, idempotency_key)
                return existing

        if not order.customer_id:
            raise MissingFieldError("customer_id", f"order {order.order_number}")

        currency = validate_currency(order.currency or self._default_currency)
        invoice_date = self._clock.today()
        seq = self._sequences.next_value(tenant_id, SequenceService.INVOICE)
        total = to_decimal(order.total_amount)

        invoice = Invoice(
            tenant_id=tenant_id,
            invoice_number=f"{self._prefix}-{invoice_date:%Y%m%d}-{seq:06d}",
            invoice_type=InvoiceType.SALES,
            customer_id=str(order.customer_id),
            invoice_date=invoice_date,
            due_date=invoice_date + timedelta(days=self._payment_terms_days),
            reference_type="sales_order",
            reference_id=str(order.order_id),
            reference_number=order.order_number,
            subtotal=to_decimal(order.subtotal),
            tax_amount=to_decimal(order.tax_amount),
            discount_amount=to_decimal(order.discount_amount),
            total_amount=total,
            amount_paid=ZERO,
            amount_due=total,
            status=InvoiceStatus.DRAFT,
            currency=currency,
            notes=f"Invoice for sales order {order.order_number}",
            idempotency_key=idempotency_key,
            created_by_id=actor_id,
        )
        for seq_no, line in enumerate(order.lines):
            invoice.lines.append(
                InvoiceLine(
                    tenant_id=tenant_id,
                    line_seq=seq_no,
                    product_id=str(line.product_id) if line.product_id else None,
                    description=line.description,
                    quantity=to_decimal(line.quantity),
                    unit_price=to_decimal(line.unit_price),
                    discount_percentage=to_decimal(line.discount_percentage),
                    tax_rate=to_decimal(line.tax_rate),
                    line_total=to_decimal(line.line_total),
                    created_by_id=actor_id,
                )
            )

        winner = self._insert(invoice, idempotency_key)
        if winner is not None:
            return winner

        logger.info(
            "invoice_created",
            extra={
                "tenant_id": str(tenant_id),
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "order_id": str(order.order_id),
                "order_number": order.order_number,
                "total_amount": str(total),
                "line_count": len(invoice.lines),
            },
        )
        return invoice

    def create_from_goods_receipt(
        self,
        tenant_id: UUID,
        receipt: Any,
        idempotency_key: str | None = None,
        *,
        actor_id: UUID,
    ) -> Invoice:
        """
        Create a DRAFT purchase invoice for the goods on ``receipt``.

        ``receipt`` needs ``receipt_id``, ``receipt_number``, ``supplier_id``,
        ``receipt_date``, ``currency``, ``payment_terms_days`` and ``lines``
        whose items carry ``product_id``, ``description``,
        ``received_quantity``, ``unit_price``, ``discount_percentage`` and
        ``tax_rate``.

        Invoice date is the receipt date (the clock's today when absent);
        due date adds the receipt's payment terms, or the configured terms.
        """
        if idempotency_key:
            existing = self.find_by_idempotency_key(tenant_id, idempotency_key)
            if existing is not None:
                self._log_idempotent(existing, idempotency_key)
                return existing

        if not receipt.supplier_id:
            raise MissingFieldError("supplier_id", f"goods receipt {receipt.receipt_number}")

        currency = validate_currency(receipt.currency or self._default_currency)
        invoice_date = receipt.receipt_date or self._clock.today()
        terms = receipt.payment_terms_days or self._payment_terms_days

        subtotal = discount_total = tax_total = ZERO
        lines: list[InvoiceLine] = []
        for seq_no, line in enumerate(receipt.lines):
            quantity = to_decimal(line.received_quantity)
            unit_price = to_decimal(line.unit_price)
            if quantity < ZERO:
                raise InvalidAmountError("received_quantity", str(quantity), "non-negative")
            if unit_price < ZERO:
                raise InvalidAmountError("unit_price", str(unit_price), "non-negative")
            discount_pct = to_decimal(line.discount_percentage)
            tax_rate = to_decimal(line.tax_rate)

            line_total = round_money(quantity * unit_price)
            discount = round_money(line_total * discount_pct / 100)
            tax = round_money((line_total - discount) * tax_rate / 100)
            subtotal += line_total
            discount_total += discount
            tax_total += tax

            lines.append(
                InvoiceLine(
                    tenant_id=tenant_id,
                    line_seq=seq_no,
                    product_id=str(line.product_id) if line.product_id else None,
                    description=line.description,
                    quantity=quantity,
                    unit_price=unit_price,
                    discount_percentage=discount_pct,
                    tax_rate=tax_rate,
                    line_total=line_total,
                    created_by_id=actor_id,
                )
            )

        total = subtotal - discount_total + tax_total
        seq = self._sequences.next_value(tenant_id, SequenceService.PURCHASE_INVOICE)

        invoice = Invoice(
            tenant_id=tenant_id,
            invoice_number=f"{self._purchase_prefix}-{invoice_date:%Y%m%d}-{seq:06d}",
            invoice_type=InvoiceType.PURCHASE,
            supplier_id=str(receipt.supplier_id),
            invoice_date=invoice_date,
            due_date=invoice_date + timedelta(days=terms),
            reference_type="goods_receipt",
            reference_id=str(receipt.receipt_id),
            reference_number=receipt.receipt_number,
            subtotal=subtotal,
            tax_amount=tax_total,
            discount_amount=discount_total,
            total_amount=total,
            amount_paid=ZERO,
            amount_due=total,
            status=InvoiceStatus.DRAFT,
            currency=currency,
            notes=f"Invoice for goods receipt {receipt.receipt_number}",
            idempotency_key=idempotency_key,
            created_by_id=actor_id,
        )
        invoice.lines.extend(lines)

        winner = self._insert(invoice, idempotency_key)
        if winner is not None:
            return winner

        logger.info(
            "purchase_invoice_created",
            extra={
                "tenant_id": str(tenant_id),
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "receipt_id": str(receipt.receipt_id),
                "receipt_number": receipt.receipt_number,
                "supplier_id": invoice.supplier_id,
                "total_amount": str(total),
                "line_count": len(lines),
            },
        )
        return invoice

    def _insert(self, invoice: Invoice, idempotency_key: str | None) -> Invoice | None:
        """Flush ``invoice`` in a savepoint.  Returns the winner of a key race."""
        try:
            with self.session.begin_nested():
                self.session.add(invoice)
                self.session.flush()
        except IntegrityError:
            if idempotency_key:
                existing = self.find_by_idempotency_key(invoice.tenant_id, idempotency_key)
                if existing is not None:
                    self._log_idempotent(existing, idempotency_key)
                    return existing
            raise
        return None

    def _log_idempotent(
self, invoice: Invoice, idempotency_key: str) -> None:
        logger.info(
            "invoice_create_idempotent",
            extra={
                "tenant_id": str(invoice.tenant_id),
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "idempotency_key": idempotency_key,
            },
        )
