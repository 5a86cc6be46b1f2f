"""
Module: ledger_kernel.models.payment
Responsibility: ORM persistence for payments applied to invoices.
Architecture position: Kernel > Models.  May import from db/ and sibling
    models only.

Invariants enforced:
    - (tenant_id, payment_number) is unique (uq_payment_tenant_number).
    - (tenant_id, idempotency_key) is unique (uq_payment_tenant_idempotency).
    - A COMPLETED payment references the POSTED journal entry that moved the
      cash (journal_entry_id).
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.db.types import enum_column
from ledger_kernel.models.invoice import Invoice
from ledger_kernel.models.journal import JournalEntry


class PaymentDirection(str, Enum):
    """RECEIVED settles a sales invoice, DISBURSED a purchase invoice."""

    RECEIVED = "received"
    DISBURSED = "disbursed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CHECK = "check"
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    ONLINE = "online"
    OTHER = "other"


class Payment(TenantScopedBase):
    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("tenant_id", "payment_number", name="uq_payment_tenant_number"),
        UniqueConstraint(
            "tenant_id", "idempotency_key", name="uq_payment_tenant_idempotency",
        ),
    )

    payment_number: Mapped[str] = mapped_column(String(50), nullable=False)

    direction: Mapped[PaymentDirection] = mapped_column(
        enum_column(PaymentDirection, length=10),
        nullable=False,
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=False,
        index=True,
    )

    # Counterparty copied from the invoice
    party_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    payment_method: Mapped[PaymentMethod] = mapped_column(
        enum_column(PaymentMethod),
        default=PaymentMethod.BANK_TRANSFER,
        nullable=False,
    )

    # Cash or bank account the money moved through
    cash_account_code: Mapped[str] = mapped_column(String(50), nullable=False)

    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    status: Mapped[PaymentStatus] = mapped_column(
        enum_column(PaymentStatus, length=10),
        default=PaymentStatus.PENDING,
        nullable=False,
    )

    idempotency_key: Mapped[str | None] = mapped_column(String(300), nullable=True)

    invoice: Mapped[Invoice] = relationship()

    journal_entry: Mapped[JournalEntry | None] = relationship()

    def __repr__(self) -> str:
        return f"<Payment {self.payment_number} {self.amount} {self.status.value}>"

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED
