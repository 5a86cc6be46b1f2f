"""
DTOs -- immutable data crossing the ledger service boundary.

Responsibility:
    Input shapes for posting (EntryLine) and account creation
    (AccountSpec, ChartAccount), and the read-side records returned by
    selectors and the account tree (AccountNode, AccountBalance,
    JournalEntryInfo, JournalLineInfo).

Architecture position:
    Kernel > Domain.  Free of database access.  ``from_model()`` class
    methods are boundary converters invoked by services and selectors.

Invariants enforced:
    - Amounts are Decimal.  Floats are converted through ``str``.
    - EntryLine does not validate its own shape: a line with both sides
      zero must reach JournalService so the rejection carries its index.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from ledger_kernel.db.types import ZERO, to_decimal
from ledger_kernel.models.account import AccountClass, NormalBalance
from ledger_kernel.models.journal import JournalEntryStatus, PostingSource

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account as AccountModel
    from ledger_kernel.models.journal import (
        JournalEntry as JournalEntryModel,
        JournalLine as JournalLineModel,
    )


@dataclass(frozen=True)
class EntryLine:
    """
    One requested journal line.

    The account is named either by ``account_code`` or ``account_id``;
    the id wins when both are given.  ``currency`` defaults to the entry
    currency when None.
    """

    account_code: str | None = None
    account_id: UUID | None = None
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None
    currency: str | None = None
    exchange_rate: Decimal = Decimal("1")
    reference: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "debit", to_decimal(self.debit))
        object.__setattr__(self, "credit", to_decimal(self.credit))
        object.__setattr__(self, "exchange_rate", to_decimal(self.exchange_rate))

    @classmethod
    def debit_line(
        cls,
        account_code: str,
        amount: Decimal | str | int,
        description: str | None = None,
        **kwargs: Any,
    ) -> EntryLine:
        return cls(account_code=account_code, debit=amount, description=description, **kwargs)

    @classmethod
    def credit_line(
        cls,
        account_code: str,
        amount: Decimal | str | int,
        description: str | None = None,
        **kwargs: Any,
    ) -> EntryLine:
        return cls(account_code=account_code, credit=amount, description=description, **kwargs)

    @property
    def account_ref(self) -> str:
        return str(self.account_id) if self.account_id is not None else str(self.account_code)

    def mirrored(self) -> EntryLine:
        """Same line with debit and credit swapped."""
        return EntryLine(
            account_code=self.account_code,
            account_id=self.account_id,
            debit=self.credit,
            credit=self.debit,
            description=self.description,
            currency=self.currency,
            exchange_rate=self.exchange_rate,
            reference=self.reference,
        )


@dataclass(frozen=True)
class AccountSpec:
    """Everything needed to create one account."""

    tenant_id: UUID
    name: str
    account_class: AccountClass
    code: str | None = None
    sub_type: str | None = None
    parent_code: str | None = None
    description: str | None = None
    currency: str = "USD"
    is_system: bool = False
    is_active: bool = True
    allow_manual_entries: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.account_class, AccountClass):
            object.__setattr__(self, "account_class", AccountClass(self.account_class))


@dataclass(frozen=True)
class ChartAccount:
    """
    One row of a standard chart of accounts.

    ``AccountService.seed_standard_chart`` accepts any object with these
    attributes, including the configuration's account definitions.
    """

    code: str
    name: str
    account_class: str
    sub_type: str | None = None
    parent_code: str | None = None


@dataclass(frozen=True)
class AccountNode:
    """An account with its children attached, for the chart tree."""

    id: UUID
    code: str
    name: str
    account_class: AccountClass
    sub_type: str | None
    balance: Decimal
    is_active: bool
    is_system: bool
    children: tuple[AccountNode, ...] = field(default_factory=tuple)

    @classmethod
    def from_model(
        cls,
        account: AccountModel,
        children: tuple[AccountNode, ...] = (),
    ) -> AccountNode:
        return cls(
            id=account.id,
            code=account.code,
            name=account.name,
            account_class=account.account_class,
            sub_type=account.sub_type,
            balance=account.balance,
            is_active=account.is_active,
            is_system=account.is_system,
            children=children,
        )

    def walk(self):
        """Yield this node and every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class AccountBalance:
    """Cached balance of one account."""

    account_id: UUID
    code: str
    name: str
    account_class: AccountClass
    normal_balance: NormalBalance
    balance: Decimal
    is_active: bool

    @classmethod
    def from_model(cls, account: AccountModel) -> AccountBalance:
        return cls(
            account_id=account.id,
            code=account.code,
            name=account.name,
            account_class=account.account_class,
            normal_balance=account.normal_balance,
            balance=account.balance,
            is_active=account.is_active,
        )


@dataclass(frozen=True)
class JournalLineInfo:
    line_id: UUID
    journal_entry_id: UUID
    account_id: UUID
    account_code: str
    line_seq: int
    debit: Decimal
    credit: Decimal
    currency: str
    exchange_rate: Decimal
    description: str | None
    reference: str | None

    @classmethod
    def from_model(cls, line: JournalLineModel) -> JournalLineInfo:
        return cls(
            line_id=line.id,
            journal_entry_id=line.journal_entry_id,
            account_id=line.account_id,
            account_code=line.account.code,
            line_seq=line.line_seq,
            debit=line.debit,
            credit=line.credit,
            currency=line.currency,
            exchange_rate=line.exchange_rate,
            description=line.description,
            reference=line.reference,
        )


@dataclass(frozen=True)
class JournalEntryInfo:
    """Read-only view of a journal entry and its lines."""

    entry_id: UUID
    tenant_id: UUID
    entry_number: str
    entry_date: date
    fiscal_period_id: UUID
    status: JournalEntryStatus
    source: PostingSource
    description: str | None
    reference: str | None
    reference_type: str | None
    reference_id: str | None
    reference_number: str | None
    total_debit: Decimal
    total_credit: Decimal
    currency: str
    posted_at: datetime | None
    posted_by_id: UUID | None
    reversal_of_id: UUID | None
    reversed_by_id: UUID | None
    idempotency_key: str | None
    lines: tuple[JournalLineInfo, ...]

    @classmethod
    def from_model(cls, entry: JournalEntryModel) -> JournalEntryInfo:
        return cls(
            entry_id=entry.id,
            tenant_id=entry.tenant_id,
            entry_number=entry.entry_number,
            entry_date=entry.entry_date,
            fiscal_period_id=entry.fiscal_period_id,
            status=entry.status,
            source=entry.source,
            description=entry.description,
            reference=entry.reference,
            reference_type=entry.reference_type,
            reference_id=entry.reference_id,
            reference_number=entry.reference_number,
            total_debit=entry.total_debit,
            total_credit=entry.total_credit,
            currency=entry.currency,
            posted_at=entry.posted_at,
            posted_by_id=entry.posted_by_id,
            reversal_of_id=entry.reversal_of_id,
            reversed_by_id=entry.reversed_by_id,
            idempotency_key=entry.idempotency_key,
            lines=tuple(JournalLineInfo.from_model(line) for line in entry.lines),
        )

    @property
    def line_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def line_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)
