"""
Module: ledger_kernel.selectors.account_selector
Responsibility: Read-only access to cached account balances.
Architecture position: Kernel > Selectors.

The balances returned are the cached ``Account.balance`` values maintained
by JournalService, signed by each account's normal balance.  Report
generation on top of them is out of scope.
"""

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import AccountBalance
from ledger_kernel.models.account import Account, AccountClass
from ledger_kernel.selectors.base import BaseSelector


class AccountSelector(BaseSelector[Account]):
    """Balance summaries per account."""

    def balances(
        self,
        tenant_id: UUID,
        account_class: AccountClass | None = None,
        include_zero: bool = True,
    ) -> list[AccountBalance]:
        """Cached balance of every live account, ordered by code."""
        query = select(Account).where(
            Account.tenant_id == tenant_id,
            Account.deleted_at.is_(None),
        )
        if account_class is not None:
            query = query.where(Account.account_class == account_class)

        results = [
            AccountBalance.from_model(account)
            for account in self.session.execute(query.order_by(Account.code)).scalars()
        ]
        if not include_zero:
            results = [row for row in results if row.balance != ZERO]
        return results

    def balance_of(self, tenant_id: UUID, code: str) -> AccountBalance | None:
        account = self.session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.code == code,
            )
        ).scalar_one_or_none()
        return AccountBalance.from_model(account) if account is not None else None
