"""
PaymentService -- settles invoices through the journal.

Responsibility:
    Records a payment against one invoice: posts the cash movement with
    JournalService.post_entry, applies the amount to the invoice and keeps a
    Payment row linking the two.

        sales invoice     Dr cash/bank            Cr accounts receivable
        purchase invoice  Dr accounts payable     Cr cash/bank

Invariants enforced:
    - The invoice row is locked (SELECT ... FOR UPDATE) before its balance is
      read, so two payments against one invoice serialize.
    - The amount is rounded to cents and must be positive and no greater
      than the invoice's amount_due.
    - Journal entry, invoice update and Payment row are flushed together; a
      failure in any of them leaves none of them once the caller rolls back.
    - A repeated ``idempotency_key`` returns the payment already recorded
      for it and writes nothing.  The lookup runs under the invoice lock.
    - Payment numbers come from the per-tenant "payment" sequence:
      ``{prefix}-{YYYYMM}-{seq:05d}``.

Failure modes:
    - InvoiceNotFoundError for an unknown invoice.
    - InvalidAmountError for a zero or negative amount.
    - InvoiceNotPayableError when the invoice is PAID, CANCELLED, REFUNDED
      or WRITTEN_OFF.
    - PaymentExceedsBalanceError when the amount is above amount_due.
    - Everything post_entry raises (closed period, unknown cash account).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money, to_decimal
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntryLine
from ledger_kernel.exceptions import (
    InvalidAmountError,
    InvoiceNotFoundError,
    InvoiceNotPayableError,
    PaymentExceedsBalanceError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.invoice import Invoice, InvoiceType
from ledger_kernel.models.journal import PostingSource
from ledger_kernel.models.payment import (
    Payment,
    PaymentDirection,
    PaymentMethod,
    PaymentStatus,
)
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.payment")


class PaymentService(BaseService[Payment]):
    """
    Invoice settlement.

    Contract:
        Flush-only, like JournalService.  Account codes are resolved by
        post_entry, so the cash, receivable and payable accounts must exist
        in the tenant.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        journal_service: JournalService | None = None,
        sequence_service: SequenceService | None = None,
        payment_prefix: str = "PAY",
        number_prefix: str = "JE-PMT",
        cash_account_code: str = "1110",
        receivable_account_code: str = "1130",
        payable_account_code: str = "2100",
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._sequences = sequence_service or SequenceService(session)
        self._journal = journal_service or JournalService(
            session, self._clock, sequence_service=self._sequences,
        )
        self._prefix = payment_prefix
        self._number_prefix = number_prefix
        self._cash_account_code = cash_account_code
        self._receivable_account_code = receivable_account_code
        self._payable_account_code = payable_account_code

    def find_by_idempotency_key(self, tenant_id: UUID, idempotency_key: str) -> Payment | None:
        return self.session.execute(
            select(Payment).where(
                Payment.tenant_id == tenant_id,
                Payment.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()

    def payments_for_invoice(self, tenant_id: UUID, invoice_id: UUID) -> list[Payment]:
        return list(
            self.session.execute(
                select(Payment)
                .where(
                    Payment.tenant_id == tenant_id,
                    Payment.invoice_id == invoice_id,
                )
                .order_by(Payment.payment_number)
            ).scalars()
        )

    def record_payment(
        self,
        tenant_id: UUID,
        invoice_id: UUID,
        amount: Decimal,
        payment_date: date | None = None,
        *,
        actor_id: UUID,
        cash_account_code: str | None = None,
        payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER,
        reference: str | None = None,
        notes: str | None = None,
        idempotency_key: str | None = None,
    ) -> Payment:
        """
        Post a payment of ``amount`` against the invoice and apply it.

        ``payment_date`` defaults to the clock's today and is the journal
        entry date, so it must fall in an OPEN period.  ``cash_account_code``
        overrides the default cash account, e.g. with a bank account.

        Postconditions:
            - A POSTED journal entry moved ``amount`` between cash and the
              receivable (or payable) account.
            - invoice.amount_paid grew by ``amount``; amount_due shrank by it;
              status is PAID when nothing is due, else PARTIALLY_PAID.
            - A COMPLETED Payment references both.
        """
        invoice = self._get_invoice_for_update(tenant_id, invoice_id)

        # Checked under the invoice lock so a concurrent retry sees the winner
        if idempotency_key:
            existing = self.find_by_idempotency_key(tenant_id, idempotency_key)
            if existing is not None:
                self._log_idempotent(existing, idempotency_key)
                return existing

        amount = round_money(to_decimal(amount))
        if amount <= ZERO:
            raise InvalidAmountError("amount", str(amount))
        if not invoice.is_payable:
            raise InvoiceNotPayableError(invoice.invoice_number, invoice.status.value)
        if amount > invoice.amount_due:
            raise PaymentExceedsBalanceError(
                invoice.invoice_number, str(amount), str(invoice.amount_due),
            )

        payment_date = payment_date or self._clock.today()
        cash_code = cash_account_code or self._cash_account_code
        seq = self._sequences.next_value(tenant_id, SequenceService.PAYMENT)
        payment_number = f"{self._prefix}-{payment_date:%Y%m}-{seq:05d}"

        if invoice.invoice_type == InvoiceType.PURCHASE:
            direction = PaymentDirection.DISBURSED
            party_id = invoice.supplier_id
            debit_code, credit_code = self._payable_account_code, cash_code
            description = f"Payment {payment_number} to supplier {party_id}"
        else:
            direction = PaymentDirection.RECEIVED
            party_id = invoice.customer_id
            debit_code, credit_code = cash_code, self._receivable_account_code
            description = f"Payment {payment_number} from customer {party_id}"

        entry = self._journal.post_entry(
            tenant_id,
            payment_date,
            description,
            [
                EntryLine(account_code=debit_code, debit=amount, description=description),
                EntryLine(account_code=credit_code, credit=amount, description=description),
            ],
            reference_type="payment",
            reference_id=payment_number,
            reference_number=invoice.invoice_number,
            actor_id=actor_id,
            reference=reference,
            currency=invoice.currency,
            source=PostingSource.SYSTEM,
            idempotency_key=f"payment:{idempotency_key}" if idempotency_key else None,
            number_prefix=self._number_prefix,
        )

        invoice.apply_payment(amount)
        invoice.updated_by_id = actor_id

        payment = Payment(
            tenant_id=tenant_id,
            payment_number=payment_number,
            direction=direction,
            invoice_id=invoice.id,
            party_id=party_id,
            payment_date=payment_date,
            amount=amount,
            currency=invoice.currency,
            payment_method=payment_method,
            cash_account_code=cash_code,
            reference=reference,
            notes=notes,
            journal_entry_id=entry.id,
            status=PaymentStatus.COMPLETED,
            idempotency_key=idempotency_key,
            created_by_id=actor_id,
        )
        self.session.add(payment)
        self.session.flush()

        logger.info(
            "payment_recorded",
            extra={
                "tenant_id": str(tenant_id),
                "payment_id": str(payment.id),
                "payment_number": payment_number,
                "direction": direction.value,
                "invoice_number": invoice.invoice_number,
                "amount": str(amount),
                "amount_due": str(invoice.amount_due),
                "invoice_status": invoice.status.value,
                "entry_number": entry.entry_number,
            },
        )
        return payment

    def _get_invoice_for_update(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        invoice = self.session.execute(
            select(Invoice)
            .where(
                Invoice.tenant_id == tenant_id,
                Invoice.id == invoice_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    def _log_idempotent(self, payment: Payment, idempotency_key: str) -> None:
        logger.info(
            "payment_record_idempotent",
            extra={
                "tenant_id": str(payment.tenant_id),
                "payment_id": str(payment.id),
                "payment_number": payment.payment_number,
                "idempotency_key": idempotency_key,
            },
        )
