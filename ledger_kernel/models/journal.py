"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines -- the
    authoritative financial record.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (tenant_id, entry_number) is unique (uq_journal_tenant_number).
    - (tenant_id, idempotency_key) is unique (uq_journal_tenant_idempotency);
      re-delivered events resolve to the entry they already produced.
    - Posted and reversed entries balance: total_debit == total_credit at
      2 decimal places (checked by JournalService before the header is
      written as posted; is_balanced is the read-side check).
    - Posted lines are immutable (db/immutability.py listeners).

Failure modes:
    - IntegrityError on duplicate entry number or idempotency key.
    - ImmutabilityViolationError on UPDATE/DELETE of posted entries or lines.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.db.types import ZERO, enum_column, money_equal
from ledger_kernel.models.account import Account
from ledger_kernel.models.fiscal_period import FiscalPeriod


class JournalEntryStatus(str, Enum):
    """Lifecycle status of a journal entry.

    Contract: DRAFT -> POSTED -> REVERSED, one way.  REVERSED is terminal.
    """

    DRAFT = "draft"
    POSTED = "posted"
    REVERSED = "reversed"


class PostingSource(str, Enum):
    """Who asked for the posting.

    SYSTEM postings come from integrators and may target accounts that
    refuse manual entries.
    """

    MANUAL = "manual"
    SYSTEM = "system"


class JournalEntry(TenantScopedBase):
    """
    Journal entry header -- the atomic unit of financial change.

    Contract:
        Lines are written together with the header in one transaction.
        Once POSTED, neither the header's financial fields nor its lines
        change; a correction is a new reversing entry linked through
        ``reversal_of_id`` / ``reversed_by_id``.

    Guarantees:
        - total_debit / total_credit are the sums of the lines at post time.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("tenant_id", "entry_number", name="uq_journal_tenant_number"),
        UniqueConstraint(
            "tenant_id", "idempotency_key", name="uq_journal_tenant_idempotency",
        ),
        Index("idx_journal_tenant_date", "tenant_id", "entry_date"),
        Index("idx_journal_tenant_status", "tenant_id", "status"),
        Index("idx_journal_reference", "tenant_id", "reference_type", "reference_id"),
    )

    entry_number: Mapped[str] = mapped_column(String(50), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    fiscal_period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_periods.id"),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Free-text reference (cheque number, memo)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Originating document in another subsystem
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[JournalEntryStatus] = mapped_column(
        enum_column(JournalEntryStatus, length=10),
        default=JournalEntryStatus.DRAFT,
        nullable=False,
    )

    source: Mapped[PostingSource] = mapped_column(
        enum_column(PostingSource, length=10),
        default=PostingSource.MANUAL,
        nullable=False,
    )

    total_debit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=ZERO, nullable=False,
    )

    total_credit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=ZERO, nullable=False,
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Set on a reversing entry: the entry it mirrors
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    # Set on a reversed entry: the entry that mirrors it
    reversed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # {handler}:{event_type}:{event_id} for integrator postings
    idempotency_key: Mapped[str | None] = mapped_column(String(300), nullable=True)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalLine.line_seq",
    )

    fiscal_period: Mapped[FiscalPeriod] = relationship()

    reversal_of: Mapped["JournalEntry | None"] = relationship(
        remote_side="JournalEntry.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number} status={self.status.value}>"

    @property
    def is_posted(self) -> bool:
        return self.status == JournalEntryStatus.POSTED

    @property
    def is_draft(self) -> bool:
        return self.status == JournalEntryStatus.DRAFT

    @property
    def is_reversed(self) -> bool:
        return self.status == JournalEntryStatus.REVERSED

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    @property
    def line_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def line_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        """Line debits equal line credits to the cent."""
        return money_equal(self.line_debits, self.line_credits)


class JournalLine(TenantScopedBase):
    """
    One debit-or-credit leg of a journal entry.

    Contract:
        By convention exactly one of ``debit``/``credit`` is non-zero.
        JournalService enforces that on every write path.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    # Position within the entry
    line_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    debit: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=ZERO, nullable=False)

    credit: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=ZERO, nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    exchange_rate: Mapped[Decimal] = mapped_column(
        Numeric(38, 18),
        default=Decimal("1"),
        nullable=False,
    )

    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")

    account: Mapped[Account] = relationship()

    def __repr__(self) -> str:
        return f"<JournalLine {self.line_seq} dr={self.debit} cr={self.credit}>"

    @property
    def is_debit(self) -> bool:
        return self.debit > ZERO

    @property
    def is_credit(self) -> bool:
        return self.credit > ZERO

    @property
    def amount(self) -> Decimal:
        return self.debit if self.is_debit else self.credit
