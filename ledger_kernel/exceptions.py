"""
Typed exception hierarchy for the ledger kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers react to ledger failures by type and by machine-readable code, never
by parsing messages:

    try:
        journal.post_entry(...)
    except PeriodNotOpenError as e:
        api_response(code=e.code, period=e.period_name)

Every class carries a ``code`` class attribute and stores its context as
attributes, so structured logging (``exc_code``, ``exc_<attr>``) and API
layers can use them without string matching.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError                 rejected before any write
    |   +-- EmptyEntryError
    |   +-- InvalidLineError
    |   +-- UnbalancedEntryError
    |   +-- MissingFieldError
    |   +-- InvalidCurrencyError
    |   +-- InvalidAmountError
    |
    +-- InvalidReferenceError           unknown or unusable referenced row
    |   +-- AccountNotFoundError
    |   +-- AccountInactiveError
    |   +-- ManualEntryNotAllowedError
    |   +-- PeriodNotFoundError
    |   +-- PeriodNotOpenError
    |   +-- EntryNotFoundError
    |   +-- InvoiceNotFoundError
    |
    +-- AccountError
    |   +-- DuplicateAccountCodeError
    |   +-- ProtectedAccountError
    |   +-- AccountInUseError
    |   +-- AccountCycleError
    |   +-- AccountClassImmutableError
    |
    +-- PeriodError
    |   +-- PeriodOverlapError
    |   +-- InvalidPeriodTransitionError
    |
    +-- JournalStateError
    |   +-- EntryNotPostedError
    |   +-- EntryNotDraftError
    |
    +-- InvoiceStateError
    |   +-- InvoiceNotPayableError
    |   +-- PaymentExceedsBalanceError
    |
    +-- ConcurrencyError                unique-constraint races
    |   +-- EntryNumberCollisionError
    |   +-- ProvisioningConflictError
    |
    +-- TransientInfrastructureError    store unavailable; retry later
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- IntegrationError                event bus
        +-- HandlerNotFoundError
        +-- DuplicateHandlerError
        +-- FailedEventNotFoundError
        +-- EventPermanentlyFailedError

The taxonomy's "ReferenceError" is named ``InvalidReferenceError`` so the
Python builtin is not shadowed.

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                        | When Raised
--------------|-----------------------------|---------------------------------
Validation    | EMPTY_ENTRY                 | Entry has no lines
              | INVALID_LINE                | Line is not exactly one positive side
              | UNBALANCED_ENTRY            | Debits != credits at 0.01
              | MISSING_FIELD               | Required event/entry field absent
              | INVALID_CURRENCY            | Not an ISO 4217 code
              | INVALID_AMOUNT              | Payment amount not positive
--------------|-----------------------------|---------------------------------
Reference     | ACCOUNT_NOT_FOUND           | Unknown account in tenant
              | ACCOUNT_INACTIVE            | Account deactivated or deleted
              | MANUAL_ENTRY_NOT_ALLOWED    | User posting to integrator-only account
              | PERIOD_NOT_FOUND            | No period covers the date
              | PERIOD_NOT_OPEN             | Period is closed or locked
              | ENTRY_NOT_FOUND             | Unknown journal entry
              | INVOICE_NOT_FOUND           | Unknown invoice
--------------|-----------------------------|---------------------------------
Account       | DUPLICATE_ACCOUNT_CODE      | (tenant, code) already exists
              | PROTECTED_ACCOUNT           | System account delete/restrict
              | ACCOUNT_IN_USE              | Has lines or children
              | ACCOUNT_CYCLE               | Parent change would form a loop
              | ACCOUNT_CLASS_IMMUTABLE     | Class change attempted
--------------|-----------------------------|---------------------------------
Period        | PERIOD_OVERLAP              | Date range conflicts
              | INVALID_PERIOD_TRANSITION   | Not open -> closed -> locked
--------------|-----------------------------|---------------------------------
Journal state | NOT_POSTED                  | Reverse of a non-posted entry
              | ENTRY_NOT_DRAFT             | Draft operation on non-draft
--------------|-----------------------------|---------------------------------
Invoice state | INVOICE_NOT_PAYABLE         | Paid, cancelled or written off
              | PAYMENT_EXCEEDS_BALANCE     | Payment larger than amount due
--------------|-----------------------------|---------------------------------
Concurrency   | ENTRY_NUMBER_COLLISION      | Number taken twice in a row
              | PROVISIONING_CONFLICT       | Insert lost race, row not found
--------------|-----------------------------|---------------------------------
Infra         | TRANSIENT_INFRASTRUCTURE    | Connection/operational failure
--------------|-----------------------------|---------------------------------
Immutability  | IMMUTABILITY_VIOLATION      | Posted entry or line modified
--------------|-----------------------------|---------------------------------
Integration   | HANDLER_NOT_FOUND           | No handler for event type
              | DUPLICATE_HANDLER           | Second handler for a type
              | FAILED_EVENT_NOT_FOUND      | Unknown parked event
              | EVENT_PERMANENTLY_FAILED    | Retry budget exhausted

===============================================================================
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger errors.

    All subclasses have a ``code`` class attribute.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Validation


class ValidationError(LedgerKernelError):
    """Input rejected before any write."""

    code: str = "VALIDATION_ERROR"


class EmptyEntryError(ValidationError):
    """Journal entry has no lines."""

    code: str = "EMPTY_ENTRY"

    def __init__(self):
        super().__init__("Journal entry must have at least one line")


class InvalidLineError(ValidationError):
    """Line does not carry exactly one positive amount."""

    code: str = "INVALID_LINE"

    def __init__(self, line_index: int, reason: str):
        self.line_index = line_index
        self.reason = reason
        super().__init__(f"Invalid journal line {line_index}: {reason}")


class UnbalancedEntryError(ValidationError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str, currency: str):
        self.debits = debits
        self.credits = credits
        self.currency = currency
        super().__init__(
            f"Unbalanced entry in {currency}: debits={debits}, credits={credits}"
        )


class MissingFieldError(ValidationError):
    """A required field is absent or empty."""

    code: str = "MISSING_FIELD"

    def __init__(self, field_name: str, context: str = ""):
        self.field_name = field_name
        self.context = context
        where = f" on {context}" if context else ""
        super().__init__(f"Missing required field '{field_name}'{where}")


class InvalidCurrencyError(ValidationError):
    """Invalid ISO 4217 currency code provided."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


class InvalidAmountError(ValidationError):
    """Amount is out of range, e.g. a non-positive payment."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field_name: str, amount: str, requirement: str = "positive"):
        self.field_name = field_name
        self.amount = amount
        super().__init__(f"{field_name} must be {requirement}, got {amount}")


# References


class InvalidReferenceError(LedgerKernelError):
    """A referenced account, period, or entry is unknown or unusable."""

    code: str = "REFERENCE_ERROR"


class AccountNotFoundError(InvalidReferenceError):
    """Account was not found in the tenant."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_ref: str):
        self.account_ref = account_ref
        super().__init__(f"Account not found: {account_ref}")


class AccountInactiveError(InvalidReferenceError):
    """Account is not active for posting."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account is inactive: {account_code}")


class ManualEntryNotAllowedError(InvalidReferenceError):
    """Account only accepts postings from system integrators."""

    code: str = "MANUAL_ENTRY_NOT_ALLOWED"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(
            f"Account {account_code} does not allow manual journal entries"
        )


class PeriodNotFoundError(InvalidReferenceError):
    """No fiscal period covers the date."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, effective_date: str):
        self.effective_date = effective_date
        super().__init__(f"No fiscal period found for date: {effective_date}")


class PeriodNotOpenError(InvalidReferenceError):
    """Posting attempted into a closed or locked period."""

    code: str = "PERIOD_NOT_OPEN"

    def __init__(self, period_name: str, status: str, effective_date: str = ""):
        self.period_name = period_name
        self.status = status
        self.effective_date = effective_date
        super().__init__(
            f"Cannot post to period {period_name}: status is {status}"
            + (f" (entry_date: {effective_date})" if effective_date else "")
        )


class EntryNotFoundError(InvalidReferenceError):
    """Journal entry was not found in the tenant."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Journal entry not found: {journal_entry_id}")


class InvoiceNotFoundError(InvalidReferenceError):
    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


# Chart of accounts


class AccountError(LedgerKernelError):
    """Base exception for chart-of-accounts maintenance errors."""

    code: str = "ACCOUNT_ERROR"


class DuplicateAccountCodeError(AccountError):
    """Account code already exists in the tenant."""

    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, tenant_id: str, account_code: str):
        self.tenant_id = tenant_id
        self.account_code = account_code
        super().__init__(
            f"Account code {account_code} already exists for tenant {tenant_id}"
        )


class ProtectedAccountError(AccountError):
    """Operation is not permitted on a system account."""

    code: str = "PROTECTED_ACCOUNT"

    def __init__(self, account_code: str, operation: str):
        self.account_code = account_code
        self.operation = operation
        super().__init__(f"Cannot {operation} system account {account_code}")


class AccountInUseError(AccountError):
    """Account has journal lines or child accounts."""

    code: str = "ACCOUNT_IN_USE"

    def __init__(self, account_code: str, reason: str):
        self.account_code = account_code
        self.reason = reason
        super().__init__(f"Account {account_code} cannot be deleted: {reason}")


class AccountCycleError(AccountError):
    """Re-parenting would create a cycle in the account tree."""

    code: str = "ACCOUNT_CYCLE"

    def __init__(self, account_code: str, parent_code: str):
        self.account_code = account_code
        self.parent_code = parent_code
        super().__init__(
            f"Setting parent of {account_code} to {parent_code} creates a cycle"
        )


class AccountClassImmutableError(AccountError):
    """Account class cannot change after creation."""

    code: str = "ACCOUNT_CLASS_IMMUTABLE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account class of {account_code} is immutable")


# Fiscal periods


class PeriodError(LedgerKernelError):
    """Base exception for fiscal period maintenance errors."""

    code: str = "PERIOD_ERROR"


class PeriodOverlapError(PeriodError):
    """New period date range overlaps an existing period."""

    code: str = "PERIOD_OVERLAP"

    def __init__(
        self,
        new_period_name: str,
        existing_period_name: str,
        overlap_start: str,
        overlap_end: str,
    ):
        self.new_period_name = new_period_name
        self.existing_period_name = existing_period_name
        self.overlap_start = overlap_start
        self.overlap_end = overlap_end
        super().__init__(
            f"Period {new_period_name} overlaps with {existing_period_name} "
            f"({overlap_start} to {overlap_end})"
        )


class InvalidPeriodTransitionError(PeriodError):
    """Period status change is not open -> closed -> locked."""

    code: str = "INVALID_PERIOD_TRANSITION"

    def __init__(self, period_name: str, from_status: str, to_status: str):
        self.period_name = period_name
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Period {period_name} cannot move from {from_status} to {to_status}"
        )


# Journal entry state


class JournalStateError(LedgerKernelError):
    """Operation does not fit the entry's lifecycle status."""

    code: str = "JOURNAL_STATE_ERROR"


class EntryNotPostedError(JournalStateError):
    """Only posted entries can be reversed."""

    code: str = "NOT_POSTED"

    def __init__(self, journal_entry_id: str, status: str):
        self.journal_entry_id = journal_entry_id
        self.status = status
        super().__init__(
            f"Cannot reverse entry {journal_entry_id}: status is {status}, not posted"
        )


class EntryNotDraftError(JournalStateError):
    """Draft-only operation on a posted or reversed entry."""

    code: str = "ENTRY_NOT_DRAFT"

    def __init__(self, journal_entry_id: str, status: str, operation: str):
        self.journal_entry_id = journal_entry_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} entry {journal_entry_id}: status is {status}"
        )


# Invoice state


class InvoiceStateError(LedgerKernelError):
    """Payment does not fit the invoice's status or balance."""

    code: str = "INVOICE_STATE_ERROR"


class InvoiceNotPayableError(InvoiceStateError):
    code: str = "INVOICE_NOT_PAYABLE"

    def __init__(self, invoice_number: str, status: str):
        self.invoice_number = invoice_number
        self.status = status
        super().__init__(f"Invoice {invoice_number} cannot take payments: status is {status}")


class PaymentExceedsBalanceError(InvoiceStateError):
    code: str = "PAYMENT_EXCEEDS_BALANCE"

    def __init__(self, invoice_number: str, amount: str, amount_due: str):
        self.invoice_number = invoice_number
        self.amount = amount
        self.amount_due = amount_due
        super().__init__(
            f"Payment {amount} exceeds amount due {amount_due} on invoice {invoice_number}"
        )


# Concurrency


class ConcurrencyError(LedgerKernelError):
    """A unique-constraint race was lost and could not be resolved."""

    code: str = "CONCURRENCY_ERROR"


class EntryNumberCollisionError(ConcurrencyError):
    """Entry number was taken on the first attempt and on the retry."""

    code: str = "ENTRY_NUMBER_COLLISION"

    def __init__(self, tenant_id: str, entry_number: str):
        self.tenant_id = tenant_id
        self.entry_number = entry_number
        super().__init__(
            f"Entry number {entry_number} collided for tenant {tenant_id} after retry"
        )


class ProvisioningConflictError(ConcurrencyError):
    """Account insert lost a race but the winning row is not visible."""

    code: str = "PROVISIONING_CONFLICT"

    def __init__(self, tenant_id: str, account_code: str):
        self.tenant_id = tenant_id
        self.account_code = account_code
        super().__init__(
            f"Could not provision account {account_code} for tenant {tenant_id}"
        )


# Infrastructure


class TransientInfrastructureError(LedgerKernelError):
    """The store was unavailable.  Safe to retry the whole operation."""

    code: str = "TRANSIENT_INFRASTRUCTURE"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Transient failure during {operation}: {detail}")


# Immutability


class ImmutabilityError(LedgerKernelError):
    """Base exception for writes to records that are frozen."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """A posted journal entry or one of its lines was modified."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id} is immutable: {reason}")


# Event integration


class IntegrationError(LedgerKernelError):
    """Base exception for event bus errors."""

    code: str = "INTEGRATION_ERROR"


class HandlerNotFoundError(IntegrationError):
    """No handler is registered for the event type."""

    code: str = "HANDLER_NOT_FOUND"

    def __init__(self, event_type: str, available: tuple[str, ...] = ()):
        self.event_type = event_type
        self.available = available
        super().__init__(
            f"No handler registered for event type '{event_type}'. "
            f"Available: {list(available)}"
        )


class DuplicateHandlerError(IntegrationError):
    """A handler is already registered for the event type."""

    code: str = "DUPLICATE_HANDLER"

    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"Handler for event type '{event_type}' is already registered")


class FailedEventNotFoundError(IntegrationError):
    """No parked event with the given id."""

    code: str = "FAILED_EVENT_NOT_FOUND"

    def __init__(self, failed_event_id: str):
        self.failed_event_id = failed_event_id
        super().__init__(f"Failed event not found: {failed_event_id}")


class EventPermanentlyFailedError(IntegrationError):
    """Retry budget exhausted; the event needs manual remediation."""

    code: str = "EVENT_PERMANENTLY_FAILED"

    def __init__(self, event_type: str, event_id: str, attempts: int, last_error: str):
        self.event_type = event_type
        self.event_id = event_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Event {event_type} {event_id} failed permanently after "
            f"{attempts} attempts: {last_error}"
        )
