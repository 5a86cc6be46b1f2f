"""
AccountProvisioningService -- race-safe lookup-or-create of system accounts.

Responsibility:
    Guarantees that a well-known account (e.g. "1400 Inventory Asset") exists
    in a tenant before an integrator posts to it.

Architecture position:
    Kernel > Services.  Used by the event integrators only.

Invariants enforced:
    - Idempotent by (tenant_id, code): calling twice returns the same row and
      creates exactly one.
    - Insert-if-absent, not check-then-create: the insert runs in a
      savepoint and the uq_account_tenant_code constraint decides the race.
      The loser rolls back its savepoint and reads the winner's row.
    - Provisioned accounts are is_system=True, is_active=True and refuse
      manual postings.

Failure modes:
    - ProvisioningConflictError if the insert lost the race but the winning
      row is still not visible (it was rolled back by its writer).
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import ProvisioningConflictError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountClass
from ledger_kernel.services.base import BaseService

logger = get_logger("services.provisioning")


class AccountProvisioningService(BaseService[Account]):
    """Insert-if-absent for integrator accounts."""

    def __init__(self, session: Session, default_currency: str = "USD"):
        super().__init__(session)
        self._default_currency = default_currency

    def _select(self, tenant_id: UUID, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.code == code,
            )
        ).scalar_one_or_none()

    def ensure_account(
        self,
        tenant_id: UUID,
        code: str,
        name: str,
        account_class: AccountClass,
        sub_type: str | None = None,
        *,
        actor_id: UUID,
    ) -> Account:
        """
        Return the tenant's account with ``code``, creating it if absent.

        An existing account is returned as is: its name, class and flags are
        not reconciled with the arguments.
        """
        account = self._select(tenant_id, code)
        if account is not None:
            return account

        savepoint = self.session.begin_nested()
        try:
            account = Account(
                tenant_id=tenant_id,
                code=code,
                name=name,
                account_class=AccountClass(account_class),
                sub_type=sub_type,
                currency=self._default_currency,
                is_system=True,
                is_active=True,
                allow_manual_entries=False,
                created_by_id=actor_id,
            )
            self.session.add(account)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.info(
                "account_provisioning_race",
                extra={"tenant_id": str(tenant_id), "account_code": code},
            )
            account = self._select(tenant_id, code)
            if account is None:
                raise ProvisioningConflictError(str(tenant_id), code)
            return account

        logger.info(
            "account_provisioned",
            extra={
                "tenant_id": str(tenant_id),
                "account_id": str(account.id),
                "account_code": code,
                "account_class": account.account_class.value,
            },
        )
        return account
