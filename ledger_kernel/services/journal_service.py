"""
JournalService -- the Journal Engine.

Responsibility:
    The only sanctioned way to mutate the ledger.  Validates, numbers,
    persists and posts balanced journal entries, applies their effect to
    the cached account balances, and reverses posted entries by mirror.

Architecture position:
    Kernel > Services.  Depends on AccountService (lookups),
    PeriodService (the gate) and SequenceService (entry numbers).
    Called by manual callers through ``session_scope()`` and by the
    event integrators inside their own transaction.

Invariants enforced:
    - Every line carries exactly one positive amount.
    - Line amounts are rounded to cents before anything else; a line that
      rounds to 0.00 is a zero line.  Totals, lines and balance deltas are
      all built from the rounded amounts, so sum(debit) == sum(credit) holds
      exactly.
    - Every referenced account exists in the tenant and is active.
      Accounts with ``allow_manual_entries == False`` accept SYSTEM
      postings only.
    - The entry date falls in an OPEN period of the tenant.  The period row
      is read under a shared lock, so a concurrent close_period waits for
      the posting (PostgreSQL).
    - Header, lines and balance updates are written inside one savepoint:
      all of them or none of them.
    - (tenant_id, idempotency_key) resolves to at most one entry.  A
      repeated key returns the existing entry and writes nothing.
    - Entry numbers come from a per-tenant sequence; a collision is retried
      once with the next number.

Failure modes:
    - ValidationError subclasses before anything is written.
    - InvalidReferenceError subclasses before anything is written.
    - EntryNotPostedError / EntryNotDraftError on lifecycle misuse.
    - EntryNumberCollisionError if the retry collides too.

Concurrency:
    Balance updates are single-statement ``balance = balance + :delta``
    UPDATEs issued in account-id order, so concurrent postings to the same
    account serialize on the row lock without deadlocking each other.
"""

from collections import defaultdict
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money, validate_currency
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntryLine
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    EmptyEntryError,
    EntryNotDraftError,
    EntryNotFoundError,
    EntryNotPostedError,
    EntryNumberCollisionError,
    InvalidLineError,
    ManualEntryNotAllowedError,
    MissingFieldError,
    PeriodNotFoundError,
    UnbalancedEntryError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.fiscal_period import FiscalPeriod
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    PostingSource,
)
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal")

_ResolvedLine = tuple[EntryLine, Account]


class JournalService(BaseService[JournalEntry]):
    """
    Posting, drafts and reversal.

    Contract:
        Flush-only.  The caller commits; if the caller rolls back, nothing
        from any call survives, including consumed entry numbers.

    Non-goals:
        - Does NOT convert currencies.  ``exchange_rate`` is stored as given.
    """

    DEFAULT_PREFIX = "JE"
    REVERSAL_PREFIX = "JE-REV"

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        period_service: PeriodService | None = None,
        sequence_service: SequenceService | None = None,
        entry_prefix: str = DEFAULT_PREFIX,
        reversal_prefix: str = REVERSAL_PREFIX,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._periods = period_service or PeriodService(session, self._clock)
        self._sequences = sequence_service or SequenceService(session)
        self._entry_prefix = entry_prefix
        self._reversal_prefix = reversal_prefix

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post_entry(
        self,
        tenant_id: UUID,
        entry_date: date,
        description: str | None,
        lines: Sequence[EntryLine],
        period_hint: FiscalPeriod | UUID | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        reference_number: str | None = None,
        *,
        actor_id: UUID,
        reference: str | None = None,
        currency: str = "USD",
        source: PostingSource = PostingSource.MANUAL,
        idempotency_key: str | None = None,
        number_prefix: str | None = None,
    ) -> JournalEntry:
        """
        Validate and post a journal entry in one step.

        Preconditions:
            - ``lines`` is non-empty; each line has exactly one of debit or
              credit positive and the other zero.
            - Debits equal credits at 2 decimal places.
            - Every account exists in the tenant, is active, and accepts
              postings from ``source``.
            - ``entry_date`` lies in an OPEN period (``period_hint`` when
              given, otherwise the period covering the date).

        Postconditions:
            - The entry is POSTED with total_debit == total_credit.
            - Each account's cached balance moved by its lines' net effect.
            - With an ``idempotency_key`` already used in the tenant, the
              existing entry is returned and nothing is written.

        Raises:
            ValidationError: Empty entry, bad line, unbalanced, bad currency.
            InvalidReferenceError: Unknown/inactive account, manual posting
                to a system-only account, missing or non-open period.
            EntryNumberCollisionError: Entry number collided twice.
        """
        return self._post(
            tenant_id=tenant_id,
            entry_date=entry_date,
            description=description,
            lines=lines,
            period_hint=period_hint,
            reference=reference,
            reference_type=reference_type,
            reference_id=reference_id,
            reference_number=reference_number,
            actor_id=actor_id,
            currency=currency,
            source=source,
            idempotency_key=idempotency_key,
            number_prefix=number_prefix or self._entry_prefix,
            reversal_of_id=None,
        )

    def _post(
        self,
        *,
        tenant_id: UUID,
        entry_date: date,
        description: str | None,
        lines: Sequence[EntryLine],
        period_hint: FiscalPeriod | UUID | None,
        reference: str | None,
        reference_type: str | None,
        reference_id: str | None,
        reference_number: str | None,
        actor_id: UUID,
        currency: str,
        source: PostingSource,
        idempotency_key: str | None,
        number_prefix: str,
        reversal_of_id: UUID | None,
    ) -> JournalEntry:
        if idempotency_key:
            existing = self.find_by_idempotency_key(tenant_id, idempotency_key)
            if existing is not None:
                self._log_idempotent(existing, idempotency_key)
                return existing

        currency = validate_currency(currency)
        lines = self._validate_lines(lines, currency, require_balance=True)
        resolved = self._resolve_accounts(tenant_id, lines, source)
        period = self._resolve_period(tenant_id, entry_date, period_hint)
        self._periods.assert_postable(period, entry_date)

        entry: JournalEntry | None = None
        for attempt in (1, 2):
            entry_number = self._next_entry_number(tenant_id, number_prefix, entry_date)
            try:
                with self.session.begin_nested():
                    entry = self._build_entry(
                        tenant_id=tenant_id,
                        entry_number=entry_number,
                        entry_date=entry_date,
                        period=period,
                        description=description,
                        reference=reference,
                        reference_type=reference_type,
                        reference_id=reference_id,
                        reference_number=reference_number,
                        currency=currency,
                        source=source,
                        actor_id=actor_id,
                        idempotency_key=idempotency_key,
                        reversal_of_id=reversal_of_id,
                        resolved=resolved,
                    )
                    entry.status = JournalEntryStatus.POSTED
                    entry.posted_at = self._clock.now_utc()
                    entry.posted_by_id = actor_id
                    self.session.add(entry)
                    self.session.flush()
                    self._apply_balances(resolved)
                break
            except IntegrityError as exc:
                if idempotency_key:
                    existing = self.find_by_idempotency_key(tenant_id, idempotency_key)
                    if existing is not None:
                        self._log_idempotent(existing, idempotency_key)
                        return existing
                if attempt == 2:
                    logger.error(
                        "entry_number_collision",
                        extra={"tenant_id": str(tenant_id), "entry_number": entry_number},
                    )
                    raise EntryNumberCollisionError(str(tenant_id), entry_number) from exc
                logger.warning(
                    "entry_number_collision_retry",
                    extra={"tenant_id": str(tenant_id), "entry_number": entry_number},
                )

        logger.info(
            "journal_entry_posted",
            extra={
                "tenant_id": str(tenant_id),
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "entry_date": str(entry_date),
                "total_debit": str(entry.total_debit),
                "total_credit": str(entry.total_credit),
                "line_count": len(resolved),
                "source": source.value,
            },
        )
        return entry

    def _log_idempotent(self, entry: JournalEntry, idempotency_key: str) -> None:
        logger.info(
            "journal_post_idempotent",
            extra={
                "tenant_id": str(entry.tenant_id),
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "idempotency_key": idempotency_key,
            },
        )

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def create_draft(
        self,
        tenant_id: UUID,
        entry_date: date,
        description: str | None,
        lines: Sequence[EntryLine],
        *,
        actor_id: UUID,
        reference: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        reference_number: str | None = None,
        currency: str = "USD",
        source: PostingSource = PostingSource.MANUAL,
    ) -> JournalEntry:
        """
        Save an entry as DRAFT without touching balances.

        Line shape, currency and accounts are validated; balance is not.
        The entry date must be covered by some period, open or not.
        """
        currency = validate_currency(currency)
        lines = self._validate_lines(lines, currency, require_balance=False)
        resolved = self._resolve_accounts(tenant_id, lines, source)
        period = self._periods.period_for(tenant_id, entry_date)

        entry = self._build_entry(
            tenant_id=tenant_id,
            entry_number=self._next_entry_number(tenant_id, self._entry_prefix, entry_date),
            entry_date=entry_date,
            period=period,
            description=description,
            reference=reference,
            reference_type=reference_type,
            reference_id=reference_id,
            reference_number=reference_number,
            currency=currency,
            source=source,
            actor_id=actor_id,
            idempotency_key=None,
            reversal_of_id=None,
            resolved=resolved,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "journal_draft_created",
            extra={
                "tenant_id": str(tenant_id),
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "line_count": len(resolved),
            },
        )
        return entry

    def post_draft(self, tenant_id: UUID, entry_id: UUID, *, actor_id: UUID) -> JournalEntry:
        """
        DRAFT -> POSTED, re-running every posting check against the
        stored lines.

        Raises:
            EntryNotDraftError: The entry is already posted or reversed.
        """
        entry = self._get_for_update(tenant_id, entry_id)
        if entry.status != JournalEntryStatus.DRAFT:
            raise EntryNotDraftError(str(entry_id), entry.status.value, "post")

        lines = [
            EntryLine(
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
                currency=line.currency,
                exchange_rate=line.exchange_rate,
                reference=line.reference,
            )
            for line in entry.lines
        ]
        lines = self._validate_lines(lines, entry.currency, require_balance=True)
        resolved = self._resolve_accounts(tenant_id, lines, entry.source)
        period = self._periods.period_for(tenant_id, entry.entry_date, lock=True)
        self._periods.assert_postable(period, entry.entry_date)

        with self.session.begin_nested():
            entry.fiscal_period_id = period.id
            entry.status = JournalEntryStatus.POSTED
            entry.posted_at = self._clock.now_utc()
            entry.posted_by_id = actor_id
            entry.updated_by_id = actor_id
            self.session.flush()
            self._apply_balances(resolved)

        logger.info(
            "journal_draft_posted",
            extra={
                "tenant_id": str(tenant_id),
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "total_debit": str(entry.total_debit),
            },
        )
        return entry

    def delete_draft(self, tenant_id: UUID, entry_id: UUID) -> None:
        """Delete a DRAFT entry together with its lines."""
        entry = self._get_for_update(tenant_id, entry_id)
        if entry.status != JournalEntryStatus.DRAFT:
            raise EntryNotDraftError(str(entry_id), entry.status.value, "delete")

        entry_number = entry.entry_number
        self.session.delete(entry)
        self.session.flush()

        logger.info(
            "journal_draft_deleted",
            extra={
                "tenant_id": str(tenant_id),
                "entry_id": str(entry_id),
                "entry_number": entry_number,
            },
        )

    # ------------------------------------------------------------------
    # Reversal
    # ------------------------------------------------------------------

    def reverse_entry(
        self,
        tenant_id: UUID,
        entry_id: UUID,
        *,
        actor_id: UUID,
        reversal_date: date | None = None,
        description: str | None = None,
    ) -> JournalEntry:
        """
        Post the debit/credit mirror of a POSTED entry and mark the original
        REVERSED.

        The mirror is dated ``reversal_date`` (default: the clock's today),
        goes through the same validation and period gate as ``post_entry``,
        and keeps the original's posting source.  Both writes share one
        savepoint.

        Raises:
            EntryNotFoundError: Unknown entry in the tenant.
            EntryNotPostedError: The entry is DRAFT or already REVERSED.
        """
        original = self._get_for_update(tenant_id, entry_id)
        if original.status != JournalEntryStatus.POSTED:
            raise EntryNotPostedError(str(entry_id), original.status.value)

        mirror = [
            EntryLine(
                account_id=line.account_id,
                debit=line.credit,
                credit=line.debit,
                description=line.description,
                currency=line.currency,
                exchange_rate=line.exchange_rate,
                reference=line.reference,
            )
            for line in original.lines
        ]

        with self.session.begin_nested():
            reversal = self._post(
                tenant_id=tenant_id,
                entry_date=reversal_date or self._clock.today(),
                description=description or f"Reversal of {original.entry_number}",
                lines=mirror,
                period_hint=None,
                reference=original.entry_number,
                reference_type=original.reference_type,
                reference_id=original.reference_id,
                reference_number=original.reference_number,
                actor_id=actor_id,
                currency=original.currency,
                source=original.source,
                idempotency_key=None,
                number_prefix=self._reversal_prefix,
                reversal_of_id=original.id,
            )
            original.status = JournalEntryStatus.REVERSED
            original.reversed_by_id = reversal.id
            original.updated_by_id = actor_id
            self.session.flush()

        logger.info(
            "journal_entry_reversed",
            extra={
                "tenant_id": str(tenant_id),
                "entry_id": str(original.id),
                "entry_number": original.entry_number,
                "reversal_entry_id": str(reversal.id),
                "reversal_entry_number": reversal.entry_number,
            },
        )
        return reversal

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_entry(self, tenant_id: UUID, entry_id: UUID) -> JournalEntry:
        entry = self.session.execute(
            select(JournalEntry).where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.id == entry_id,
            )
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry

    def find_by_idempotency_key(
        self, tenant_id: UUID, idempotency_key: str,
    ) -> JournalEntry | None:
        return self.session.execute(
            select(JournalEntry).where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()

    def _get_for_update(self, tenant_id: UUID, entry_id: UUID) -> JournalEntry:
        entry = self.session.execute(
            select(JournalEntry)
            .where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.id == entry_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_lines(
        self,
        lines: Sequence[EntryLine],
        currency: str,
        require_balance: bool,
    ) -> list[EntryLine]:
        """Check line shape and return the lines with amounts rounded to cents."""
        if not lines:
            raise EmptyEntryError()

        rounded: list[EntryLine] = []
        for index, line in enumerate(lines):
            if line.account_id is None and not line.account_code:
                raise MissingFieldError("account", f"journal line {index}")
            if line.debit < ZERO or line.credit < ZERO:
                raise InvalidLineError(index, "amounts must not be negative")
            line = replace(line, debit=round_money(line.debit), credit=round_money(line.credit))
            if line.debit == ZERO and line.credit == ZERO:
                raise InvalidLineError(index, "debit and credit are both zero")
            if line.debit != ZERO and line.credit != ZERO:
                raise InvalidLineError(index, "debit and credit are both non-zero")
            if line.currency is not None:
                validate_currency(line.currency)
            rounded.append(line)

        if require_balance:
            debits = sum((line.debit for line in rounded), ZERO)
            credits = sum((line.credit for line in rounded), ZERO)
            if debits != credits:
                logger.warning(
                    "journal_entry_unbalanced",
                    extra={"debits": str(debits), "credits": str(credits), "currency": currency},
                )
                raise UnbalancedEntryError(str(debits), str(credits), currency)

        return rounded

    def _resolve_accounts(
        self,
        tenant_id: UUID,
        lines: Sequence[EntryLine],
        source: PostingSource,
    ) -> list[_ResolvedLine]:
        by_id: dict[UUID, Account] = {}
        by_code: dict[str, Account] = {}
        resolved: list[_ResolvedLine] = []

        for line in lines:
            if line.account_id is not None:
                account = by_id.get(line.account_id)
                if account is None:
                    account = self.session.execute(
                        select(Account).where(
                            Account.tenant_id == tenant_id,
                            Account.id == line.account_id,
                        )
                    ).scalar_one_or_none()
            else:
                account = by_code.get(line.account_code)
                if account is None:
                    account = self.session.execute(
                        select(Account).where(
                            Account.tenant_id == tenant_id,
                            Account.code == line.account_code,
                        )
                    ).scalar_one_or_none()

            if account is None:
                raise AccountNotFoundError(line.account_ref)
            if not account.is_postable:
                raise AccountInactiveError(account.code)
            if not account.allow_manual_entries and source != PostingSource.SYSTEM:
                raise ManualEntryNotAllowedError(account.code)

            by_id[account.id] = account
            by_code[account.code] = account
            resolved.append((line, account))

        return resolved

    def _resolve_period(
        self,
        tenant_id: UUID,
        entry_date: date,
        period_hint: FiscalPeriod | UUID | None,
    ) -> FiscalPeriod:
        if period_hint is None:
            return self._periods.period_for(tenant_id, entry_date, lock=True)

        hint_id = period_hint.id if isinstance(period_hint, FiscalPeriod) else period_hint
        period = self._periods.get(tenant_id, hint_id, lock=True)

        if period.tenant_id != tenant_id or not period.contains_date(entry_date):
            raise PeriodNotFoundError(str(entry_date))
        return period

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def _next_entry_number(self, tenant_id: UUID, prefix: str, entry_date: date) -> str:
        seq = self._sequences.next_value(tenant_id, SequenceService.JOURNAL_ENTRY)
        return f"{prefix}-{entry_date:%Y%m%d}-{seq:06d}"

    def _build_entry(
        self,
        *,
        tenant_id: UUID,
        entry_number: str,
        entry_date: date,
        period: FiscalPeriod,
        description: str | None,
        reference: str | None,
        reference_type: str | None,
        reference_id: str | None,
        reference_number: str | None,
        currency: str,
        source: PostingSource,
        actor_id: UUID,
        idempotency_key: str | None,
        reversal_of_id: UUID | None,
        resolved: list[_ResolvedLine],
    ) -> JournalEntry:
        entry = JournalEntry(
            tenant_id=tenant_id,
            entry_number=entry_number,
            entry_date=entry_date,
            fiscal_period_id=period.id,
            description=description,
            reference=reference,
            reference_type=reference_type,
            reference_id=reference_id,
            reference_number=reference_number,
            status=JournalEntryStatus.DRAFT,
            source=source,
            total_debit=sum((line.debit for line, _ in resolved), ZERO),
            total_credit=sum((line.credit for line, _ in resolved), ZERO),
            currency=currency,
            idempotency_key=idempotency_key,
            reversal_of_id=reversal_of_id,
            created_by_id=actor_id,
        )
        for seq, (line, account) in enumerate(resolved):
            entry.lines.append(
                JournalLine(
                    tenant_id=tenant_id,
                    account_id=account.id,
                    line_seq=seq,
                    description=line.description,
                    debit=line.debit,
                    credit=line.credit,
                    currency=line.currency or currency,
                    exchange_rate=line.exchange_rate,
                    reference=line.reference,
                    created_by_id=actor_id,
                )
            )
        return entry

    def _apply_balances(self, resolved: list[_ResolvedLine]) -> None:
        deltas: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        accounts: dict[UUID, Account] = {}
        for line, account in resolved:
            deltas[account.id] += account.balance_effect(line.debit, line.credit)
            accounts[account.id] = account

        for account_id in sorted(deltas, key=str):
            self.session.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(balance=Account.balance + deltas[account_id])
                .execution_options(synchronize_session=False)
            )
            self.session.expire(accounts[account_id], ["balance"])
