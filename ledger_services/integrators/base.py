"""
EventIntegrator -- shared transaction and provisioning plumbing.

Responsibility:
    Each integrator turns one inbound event type into ledger writes.  This
    base class gives every one of them the same shape:

        handle(event)
          -> open session                      (one per attempt)
          -> process(session, event)            (subclass)
               -> provision accounts by role
               -> post_entry / create invoice, keyed by idempotency key
          -> commit, or roll back and re-raise

Invariants enforced:
    - One transaction per attempt.  Nothing from a failed attempt survives.
    - Postings use the configured system actor and ``PostingSource.SYSTEM``.
    - Idempotency keys are ``{handler}:{event_type}:{event_id}``.

Failure modes:
    - TransientInfrastructureError wraps OperationalError,
      DisconnectionError and InterfaceError, with the original as
      ``__cause__``.
    - Everything else propagates unchanged to the bus retry policy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, ClassVar
from uuid import UUID

from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import TransientInfrastructureError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account, AccountClass
from ledger_kernel.services.invoice_service import InvoiceService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.provisioning_service import AccountProvisioningService
from ledger_kernel.utils.idempotency import generate_idempotency_key

logger = get_logger("integrators")

_TRANSIENT_ERRORS = (OperationalError, DisconnectionError, InterfaceError)


@dataclass(frozen=True)
class IntegrationResult:
    """What one successful delivery wrote (or why it wrote nothing)."""

    record_id: UUID | None
    record_number: str | None
    amount: Decimal | None = None
    skipped: bool = False
    reason: str | None = None

    @classmethod
    def skip(cls, reason: str) -> IntegrationResult:
        return cls(record_id=None, record_number=None, skipped=True, reason=reason)


class EventIntegrator(ABC):
    """Base class for the event handlers registered on the bus."""

    name: ClassVar[str]
    event_type: ClassVar[str]

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: LedgerConfig,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self.config = config
        self._clock = clock or SystemClock()

    @property
    def actor_id(self) -> UUID:
        return self.config.system_actor_id

    def handle(self, event: Any) -> IntegrationResult:
        with LogContext.bind(
            tenant_id=event.tenant_id,
            event_id=event.event_id,
            event_type=event.event_type,
            handler=self.name,
        ):
            session = self._session_factory()
            try:
                result = self.process(session, event)
                session.commit()
            except _TRANSIENT_ERRORS as exc:
                session.rollback()
                logger.warning("integrator_transient_failure", exc_info=True)
                raise TransientInfrastructureError(self.name, str(exc)) from exc
            except Exception:
                session.rollback()
                logger.error("integrator_failed", exc_info=True)
                raise
            finally:
                session.close()
            return result

    @abstractmethod
    def process(self, session: Session, event: Any) -> IntegrationResult:
        """Do the ledger work for ``event`` inside ``session``; do not commit."""

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def idempotency_key(self, event: Any) -> str:
        return generate_idempotency_key(self.name, event.event_type, str(event.event_id))

    def provision(self, session: Session, tenant_id: UUID, role: str) -> Account:
        definition = self.config.account(role)
        return AccountProvisioningService(
            session, default_currency=self.config.default_currency,
        ).ensure_account(
            tenant_id,
            definition.code,
            definition.name,
            AccountClass(definition.account_class),
            definition.sub_type,
            actor_id=self.actor_id,
        )

    def journal(self, session: Session) -> JournalService:
        return JournalService(
            session,
            self._clock,
            entry_prefix=self.config.numbering.manual,
            reversal_prefix=self.config.numbering.reversal,
        )

    def invoices(self, session: Session) -> InvoiceService:
        return InvoiceService(
            session,
            self._clock,
            invoice_prefix=self.config.invoices.prefix,
            purchase_prefix=self.config.invoices.purchase_prefix,
            payment_terms_days=self.config.invoices.payment_terms_days,
            default_currency=self.config.default_currency,
        )
