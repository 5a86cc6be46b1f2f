"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountClass, NormalBalance
from ledger_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus, PeriodType
from ledger_kernel.models.invoice import (
    Invoice,
    InvoiceLine,
    InvoiceStatus,
    InvoiceType,
)
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    PostingSource,
)
from ledger_kernel.models.payment import (
    Payment,
    PaymentDirection,
    PaymentMethod,
    PaymentStatus,
)
from ledger_kernel.models.sequence import SequenceCounter

__all__ = [
    "Account",
    "AccountClass",
    "NormalBalance",
    "FiscalPeriod",
    "PeriodStatus",
    "PeriodType",
    "JournalEntry",
    "JournalLine",
    "JournalEntryStatus",
    "PostingSource",
    "Invoice",
    "InvoiceLine",
    "InvoiceStatus",
    "InvoiceType",
    "Payment",
    "PaymentDirection",
    "PaymentMethod",
    "PaymentStatus",
    "SequenceCounter",
]
