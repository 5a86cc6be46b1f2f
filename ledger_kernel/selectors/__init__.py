"""Read-only selectors for the ledger kernel."""

from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.journal_selector import JournalSelector

__all__ = ["AccountSelector", "JournalSelector"]
