"""
Ledger configuration schema.

Frozen dataclasses parsed from ``defaults/ledger.yaml`` (or the file named by
``LEDGER_CONFIG_PATH``) by ``ledger_config.loader``.  Nothing here touches the
database; the integrators and services receive plain values taken from a
``LedgerConfig`` instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountDefinition:
    """A well-known account: the code and shape used when provisioning it."""

    code: str
    name: str
    account_class: str  # asset, liability, equity, revenue, expense
    sub_type: str | None = None
    parent_code: str | None = None


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-backoff retry budget for one event delivery."""

    max_attempts: int = 3
    backoff_seconds: float = 10.0
    non_retryable_codes: tuple[str, ...] = ()

    def is_retryable(self, error: BaseException) -> bool:
        code = getattr(error, "code", None)
        return code not in self.non_retryable_codes


@dataclass(frozen=True)
class EventBusConfig:
    max_workers: int = 4


# ---------------------------------------------------------------------------
# Numbering
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NumberingConfig:
    """Entry number prefixes per posting source."""

    manual: str = "JE"
    payroll: str = "JE-PAY"
    inventory: str = "JE-INV"
    reversal: str = "JE-REV"
    payment: str = "JE-PMT"


@dataclass(frozen=True)
class InvoiceConfig:
    prefix: str = "INV"
    purchase_prefix: str = "APINV"
    payment_terms_days: int = 30


@dataclass(frozen=True)
class PaymentConfig:
    """Payment numbering and the standard-chart accounts cash moves through."""

    prefix: str = "PAY"
    cash_account: str = "1110"
    receivable_account: str = "1130"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    """
    The full, validated ledger configuration.

    ``accounts`` maps a role name (e.g. ``"inventory_asset"``) to the account
    the integrators provision for it.  ``inventory_contra`` maps a stock
    movement type to one of those roles.
    """

    config_id: str
    version: int
    default_currency: str
    system_actor_id: UUID
    database_url: str | None = None
    accounts: dict[str, AccountDefinition] = field(default_factory=dict)
    inventory_contra: dict[str, str] = field(default_factory=dict)
    inventory_default_contra: str = "inventory_adjustment"
    inventory_movement_types: tuple[str, ...] = ()
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    invoices: InvoiceConfig = field(default_factory=InvoiceConfig)
    payments: PaymentConfig = field(default_factory=PaymentConfig)
    event_bus: EventBusConfig = field(default_factory=EventBusConfig)
    standard_chart: tuple[AccountDefinition, ...] = ()
    checksum: str = ""

    def account(self, role: str) -> AccountDefinition:
        """The account bound to ``role``; ``KeyError`` if the role is unknown."""
        try:
            return self.accounts[role]
        except KeyError:
            raise KeyError(
                f"No account configured for role '{role}'. "
                f"Known roles: {', '.join(sorted(self.accounts))}"
            ) from None

    def contra_role_for(self, movement_type: str) -> str:
        return self.inventory_contra.get(movement_type, self.inventory_default_contra)
