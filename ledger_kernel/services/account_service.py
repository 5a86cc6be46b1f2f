"""
AccountService -- the Chart of Accounts.

Responsibility:
    Lookup, creation, maintenance and tree assembly for ledger accounts.
    Every query is filtered on an explicit tenant_id.

Architecture position:
    Kernel > Services.  Leaf dependency of JournalService and
    AccountProvisioningService.

Invariants enforced:
    - (tenant_id, code) is unique.  Checked up front for a clean error and
      backed by uq_account_tenant_code for races.
    - account_class never changes after creation.
    - The parent chain never forms a cycle.
    - System accounts are never deleted and never lose the right to
      receive integrator postings.
    - ``balance`` is not writable here.  JournalService owns it.

Failure modes:
    - AccountNotFoundError, DuplicateAccountCodeError, ProtectedAccountError,
      AccountInUseError, AccountCycleError, AccountClassImmutableError.
"""

from collections import defaultdict
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import exists, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import validate_currency
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AccountNode, AccountSpec
from ledger_kernel.exceptions import (
    AccountClassImmutableError,
    AccountCycleError,
    AccountInUseError,
    AccountNotFoundError,
    DuplicateAccountCodeError,
    ProtectedAccountError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountClass
from ledger_kernel.models.journal import JournalLine
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")

_UPDATABLE_FIELDS = frozenset({
    "name",
    "description",
    "sub_type",
    "parent_code",
    "is_active",
    "allow_manual_entries",
    "account_class",
})


class AccountService(BaseService[Account]):
    """
    Chart of Accounts maintenance.

    Non-goals:
        - Does NOT post or adjust balances.
        - Does NOT commit.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, tenant_id: UUID, account_id: UUID) -> Account:
        account = self.session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.id == account_id,
            )
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def find_by_code(self, tenant_id: UUID, code: str) -> Account:
        """
        Account with this code in the tenant.

        Soft-deleted accounts are still found; posting rejects them as
        inactive.

        Raises:
            AccountNotFoundError: No such code in the tenant.
        """
        account = self.get_by_code(tenant_id, code)
        if account is None:
            raise AccountNotFoundError(code)
        return account

    def get_by_code(self, tenant_id: UUID, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.code == code,
            )
        ).scalar_one_or_none()

    def list_by_class(self, tenant_id: UUID, account_class: AccountClass) -> list[Account]:
        return list(
            self.session.execute(
                select(Account)
                .where(
                    Account.tenant_id == tenant_id,
                    Account.account_class == account_class,
                    Account.deleted_at.is_(None),
                )
                .order_by(Account.code)
            ).scalars()
        )

    def list_active(self, tenant_id: UUID) -> list[Account]:
        return list(
            self.session.execute(
                select(Account)
                .where(
                    Account.tenant_id == tenant_id,
                    Account.is_active.is_(True),
                    Account.deleted_at.is_(None),
                )
                .order_by(Account.code)
            ).scalars()
        )

    def children(self, tenant_id: UUID, parent_id: UUID) -> list[Account]:
        return list(
            self.session.execute(
                select(Account)
                .where(
                    Account.tenant_id == tenant_id,
                    Account.parent_id == parent_id,
                    Account.deleted_at.is_(None),
                )
                .order_by(Account.code)
            ).scalars()
        )

    def search(self, tenant_id: UUID, text: str) -> list[Account]:
        """Case-insensitive substring match on code or name."""
        pattern = f"%{text.strip().lower()}%"
        return list(
            self.session.execute(
                select(Account)
                .where(
                    Account.tenant_id == tenant_id,
                    Account.deleted_at.is_(None),
                    or_(
                        Account.code.ilike(pattern),
                        Account.name.ilike(pattern),
                    ),
                )
                .order_by(Account.code)
            ).scalars()
        )

    def tree(self, tenant_id: UUID) -> list[AccountNode]:
        """
        The tenant's chart as a forest.

        Roots are ordered by code; children are attached recursively, also
        ordered by code.  Built from one query.  Soft-deleted accounts are
        left out.
        """
        accounts = list(
            self.session.execute(
                select(Account)
                .where(
                    Account.tenant_id == tenant_id,
                    Account.deleted_at.is_(None),
                )
                .order_by(Account.code)
            ).scalars()
        )

        known = {account.id for account in accounts}
        by_parent: dict[UUID | None, list[Account]] = defaultdict(list)
        for account in accounts:
            parent = account.parent_id if account.parent_id in known else None
            by_parent[parent].append(account)

        def build(account: Account) -> AccountNode:
            return AccountNode.from_model(
                account,
                children=tuple(build(child) for child in by_parent.get(account.id, [])),
            )

        return [build(root) for root in by_parent.get(None, [])]

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def next_code(self, tenant_id: UUID, account_class: AccountClass) -> str:
        """
        Next free numeric code for the class.

        Codes start with the class digit (1 asset ... 5 expense).  The first
        generated code is ``<digit>1000``; after that, the highest numeric
        code with that leading digit plus one.
        """
        prefix = AccountClass(account_class).code_prefix
        codes = self.session.execute(
            select(Account.code).where(
                Account.tenant_id == tenant_id,
                Account.code.like(f"{prefix}%"),
            )
        ).scalars()

        numeric = [int(code) for code in codes if code.isdigit()]
        if not numeric:
            return f"{prefix}1000"
        return str(max(numeric) + 1)

    def create(self, spec: AccountSpec, actor_id: UUID) -> Account:
        """
        Create an account.

        A spec without a code gets ``next_code()``.

        Raises:
            DuplicateAccountCodeError: The code exists in the tenant.
            AccountNotFoundError: ``parent_code`` is unknown.
            InvalidCurrencyError: ``currency`` is not ISO 4217.
        """
        code = spec.code or self.next_code(spec.tenant_id, spec.account_class)
        currency = validate_currency(spec.currency)

        if self.get_by_code(spec.tenant_id, code) is not None:
            raise DuplicateAccountCodeError(str(spec.tenant_id), code)

        parent_id = None
        if spec.parent_code:
            parent_id = self.find_by_code(spec.tenant_id, spec.parent_code).id

        account = Account(
            tenant_id=spec.tenant_id,
            code=code,
            name=spec.name,
            description=spec.description,
            account_class=spec.account_class,
            sub_type=spec.sub_type,
            parent_id=parent_id,
            currency=currency,
            is_active=spec.is_active,
            is_system=spec.is_system,
            allow_manual_entries=spec.allow_manual_entries,
            created_by_id=actor_id,
        )

        savepoint = self.session.begin_nested()
        try:
            self.session.add(account)
            self.session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            raise DuplicateAccountCodeError(str(spec.tenant_id), code) from exc

        logger.info(
            "account_created",
            extra={
                "tenant_id": str(spec.tenant_id),
                "account_id": str(account.id),
                "account_code": code,
                "account_class": account.account_class.value,
                "is_system": account.is_system,
            },
        )
        return account

    def seed_standard_chart(
        self,
        tenant_id: UUID,
        chart: Iterable[Any],
        actor_id: UUID,
    ) -> list[Account]:
        """
        Create every chart row whose code does not exist yet.

        ``chart`` items need ``code``, ``name``, ``account_class``,
        ``sub_type`` and ``parent_code`` attributes.  Parents are created
        before children regardless of input order.  Running it twice
        creates nothing the second time.

        Returns:
            The accounts created by this call.
        """
        pending = {item.code: item for item in chart}
        created: list[Account] = []

        def ensure(code: str, visiting: frozenset[str]) -> None:
            item = pending.pop(code, None)
            if item is None:
                return
            if item.parent_code and item.parent_code in visiting:
                raise AccountCycleError(item.code, item.parent_code)
            if item.parent_code:
                ensure(item.parent_code, visiting | {code})
            if self.get_by_code(tenant_id, item.code) is not None:
                return
            created.append(
                self.create(
                    AccountSpec(
                        tenant_id=tenant_id,
                        code=item.code,
                        name=item.name,
                        account_class=AccountClass(item.account_class),
                        sub_type=item.sub_type,
                        parent_code=item.parent_code,
                    ),
                    actor_id=actor_id,
                )
            )

        for code in list(pending):
            ensure(code, frozenset())

        logger.info(
            "standard_chart_seeded",
            extra={"tenant_id": str(tenant_id), "created_count": len(created)},
        )
        return created

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def update(
        self,
        tenant_id: UUID,
        account_id: UUID,
        actor_id: UUID,
        **changes: Any,
    ) -> Account:
        """
        Change name, description, sub_type, parent_code, is_active or
        allow_manual_entries.

        Raises:
            AccountClassImmutableError: ``account_class`` differs from the
                stored class.
            AccountCycleError: The new parent is the account or one of its
                descendants.
            ProtectedAccountError: Deactivating a system account or changing
                its manual-entry permission.
            ValueError: Unknown field name.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update account fields: {sorted(unknown)}")

        account = self.get(tenant_id, account_id)

        if "account_class" in changes:
            if AccountClass(changes.pop("account_class")) != account.account_class:
                raise AccountClassImmutableError(account.code)

        if account.is_system:
            if changes.get("is_active") is False:
                raise ProtectedAccountError(account.code, "deactivate")
            if changes.get("allow_manual_entries", account.allow_manual_entries) != account.allow_manual_entries:
                raise ProtectedAccountError(account.code, "change manual-entry permission of")

        if "parent_code" in changes:
            parent_code = changes.pop("parent_code")
            if parent_code is None:
                account.parent_id = None
            else:
                parent = self.find_by_code(tenant_id, parent_code)
                self._assert_no_cycle(account, parent)
                account.parent_id = parent.id

        for key, value in changes.items():
            setattr(account, key, value)

        account.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "account_updated",
            extra={
                "tenant_id": str(tenant_id),
                "account_id": str(account.id),
                "account_code": account.code,
                "fields": sorted(changes),
            },
        )
        return account

    def _assert_no_cycle(self, account: Account, new_parent: Account) -> None:
        current: Account | None = new_parent
        seen: set[UUID] = set()
        while current is not None and current.id not in seen:
            if current.id == account.id:
                raise AccountCycleError(account.code, new_parent.code)
            seen.add(current.id)
            current = current.parent

    def delete(self, tenant_id: UUID, account_id: UUID, actor_id: UUID) -> Account:
        """
        Soft-delete an account.

        Raises:
            ProtectedAccountError: System account.
            AccountInUseError: The account has journal lines or children.
        """
        account = self.get(tenant_id, account_id)

        if account.is_system:
            raise ProtectedAccountError(account.code, "delete")

        has_lines = self.session.execute(
            select(exists().where(JournalLine.account_id == account.id))
        ).scalar()
        if has_lines:
            raise AccountInUseError(account.code, "account has journal lines")

        if self.children(tenant_id, account.id):
            raise AccountInUseError(account.code, "account has child accounts")

        account.deleted_at = self._clock.now_utc()
        account.is_active = False
        account.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "account_deleted",
            extra={
                "tenant_id": str(tenant_id),
                "account_id": str(account.id),
                "account_code": account.code,
            },
        )
        return account
