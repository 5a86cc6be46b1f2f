"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the Chart of Accounts -- the target of
    every journal line and the holder of the cached balance.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (tenant_id, code) is unique (uq_account_tenant_code).  Account
      Provisioning relies on this constraint to resolve creation races.
    - account_class is immutable after creation (enforced by AccountService).
    - balance changes only as a derived effect of posted journal lines
      (JournalService is the only writer).
    - System accounts are never deleted; other accounts are soft-deleted.

Failure modes:
    - IntegrityError on duplicate (tenant_id, code).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.db.types import enum_column


class NormalBalance(str, Enum):
    """Side on which an account's balance increases."""

    DEBIT = "debit"
    CREDIT = "credit"


class AccountClass(str, Enum):
    """The five fundamental account classes."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"

    @property
    def normal_balance(self) -> NormalBalance:
        if self in (AccountClass.ASSET, AccountClass.EXPENSE):
            return NormalBalance.DEBIT
        return NormalBalance.CREDIT

    @property
    def code_prefix(self) -> str:
        """Leading digit for generated account codes."""
        return {
            AccountClass.ASSET: "1",
            AccountClass.LIABILITY: "2",
            AccountClass.EQUITY: "3",
            AccountClass.REVENUE: "4",
            AccountClass.EXPENSE: "5",
        }[self]

    @property
    def is_balance_sheet(self) -> bool:
        return self in (AccountClass.ASSET, AccountClass.LIABILITY, AccountClass.EQUITY)


class Account(TenantScopedBase):
    """
    Ledger account.

    Contract:
        Identified within its tenant by ``code``.  Forms a tree through
        ``parent_id``.  ``balance`` is a cache of the net signed effect of
        every posted line against the account, in its normal-balance sign.

    Guarantees:
        - ``balance_effect()`` is the single definition of how a line moves
          the cached balance.

    Non-goals:
        - Does not validate tree cycles or class immutability; AccountService
          does.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_account_tenant_code"),
        Index("idx_account_tenant_class", "tenant_id", "account_class"),
        Index("idx_account_parent", "parent_id"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    account_class: Mapped[AccountClass] = mapped_column(
        enum_column(AccountClass),
        nullable=False,
    )

    # Free-form refinement: current_asset, operating_expense, cost_of_sales, ...
    sub_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    allow_manual_entries: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        default=Decimal("0"),
        nullable=False,
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    parent: Mapped["Account | None"] = relationship(
        remote_side="Account.id",
        back_populates="children",
    )

    children: Mapped[list["Account"]] = relationship(
        back_populates="parent",
        order_by="Account.code",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code} {self.name}>"

    @property
    def normal_balance(self) -> NormalBalance:
        return AccountClass(self.account_class).normal_balance

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_postable(self) -> bool:
        return self.is_active and not self.is_deleted

    def balance_effect(self, debit: Decimal, credit: Decimal) -> Decimal:
        """Signed change to ``balance`` for a line with these amounts."""
        if self.normal_balance == NormalBalance.DEBIT:
            return debit - credit
        return credit - debit
