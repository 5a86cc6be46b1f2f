"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.invoice_service import InvoiceService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.payment_service import PaymentService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.provisioning_service import AccountProvisioningService
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "AccountProvisioningService",
    "AccountService",
    "InvoiceService",
    "JournalService",
    "PaymentService",
    "PeriodService",
    "SequenceService",
]
