"""
Module: ledger_kernel.models.invoice
Responsibility: ORM persistence for invoices: receivable (SALES) invoices
    raised from confirmed sales orders and payable (PURCHASE) invoices raised
    from goods receipts.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (tenant_id, invoice_number) is unique (uq_invoice_tenant_number).
    - (tenant_id, idempotency_key) is unique (uq_invoice_tenant_idempotency);
      a re-delivered OrderConfirmed event finds the invoice it already made.
    - amount_due == total_amount - amount_paid at all times; apply_payment()
      is the only code path that moves either.
    - SALES invoices name a customer, PURCHASE invoices a supplier.

Invoices carry no journal entry of their own.  PaymentService posts the
cash movement and applies it here.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.db.types import ZERO, enum_column


class InvoiceType(str, Enum):
    SALES = "sales"
    PURCHASE = "purchase"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    WRITTEN_OFF = "written_off"


PAYABLE_STATUSES = frozenset({
    InvoiceStatus.DRAFT,
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
})


class Invoice(TenantScopedBase):
    """Invoice header, receivable or payable by ``invoice_type``."""

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_invoice_tenant_number"),
        UniqueConstraint(
            "tenant_id", "idempotency_key", name="uq_invoice_tenant_idempotency",
        ),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)

    invoice_type: Mapped[InvoiceType] = mapped_column(
        enum_column(InvoiceType, length=10),
        default=InvoiceType.SALES,
        nullable=False,
    )

    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    supplier_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)

    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Originating document, e.g. ("sales_order", order id, order number)
    # or ("goods_receipt", receipt id, receipt number)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=ZERO, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=ZERO, nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=ZERO, nullable=False,
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=ZERO, nullable=False,
    )
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=ZERO, nullable=False)
    amount_due: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=ZERO, nullable=False)

    status: Mapped[InvoiceStatus] = mapped_column(
        enum_column(InvoiceStatus),
        default=InvoiceStatus.DRAFT,
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    idempotency_key: Mapped[str | None] = mapped_column(String(300), nullable=True)

    lines: Mapped[list["InvoiceLine"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceLine.line_seq",
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} {self.status.value} {self.total_amount}>"

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

    @property
    def is_payable(self) -> bool:
        return self.status in PAYABLE_STATUSES

    def apply_payment(self, amount: Decimal) -> None:
        """Add ``amount`` to amount_paid and move to PARTIALLY_PAID or PAID."""
        self.amount_paid = self.amount_paid + amount
        self.amount_due = self.total_amount - self.amount_paid
        if self.amount_due <= ZERO:
            self.status = InvoiceStatus.PAID
        elif self.amount_paid > ZERO:
            self.status = InvoiceStatus.PARTIALLY_PAID


class InvoiceLine(TenantScopedBase):
    """One product line of an invoice, copied from the order line."""

    __tablename__ = "invoice_lines"

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=False,
        index=True,
    )

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    discount_percentage: Mapped[Decimal] = mapped_column(
        Numeric(9, 4), default=ZERO, nullable=False,
    )

    tax_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), default=ZERO, nullable=False)

    line_total: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    invoice: Mapped["Invoice"] = relationship(back_populates="lines")
