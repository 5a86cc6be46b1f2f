"""
Module: ledger_kernel.selectors.journal_selector
Responsibility: Read-only query access to journal entries and their lines.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only.
    - Results are JournalEntryInfo / JournalLineInfo DTOs with lines in
      line_seq order.

Failure modes:
    - Returns None or an empty list when nothing matches.  Never raises on
      absence of data.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from ledger_kernel.db.types import money_equal, to_decimal
from ledger_kernel.domain.dtos import JournalEntryInfo, JournalLineInfo
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine
from ledger_kernel.selectors.base import BaseSelector


class JournalSelector(BaseSelector[JournalEntry]):
    """
    Selector for journal entry queries.

    Guarantees:
        - Multi-entry results are ordered by entry_date, then entry_number.
        - Lines and their accounts are eager-loaded.
    """

    def _entries(self, *criteria) -> list[JournalEntryInfo]:
        query = (
            select(JournalEntry)
            .where(*criteria)
            .options(selectinload(JournalEntry.lines).selectinload(JournalLine.account))
            .order_by(JournalEntry.entry_date, JournalEntry.entry_number)
        )
        return [
            JournalEntryInfo.from_model(entry)
            for entry in self.session.execute(query).scalars()
        ]

    def get_entry(self, tenant_id: UUID, entry_id: UUID) -> JournalEntryInfo | None:
        rows = self._entries(
            JournalEntry.tenant_id == tenant_id,
            JournalEntry.id == entry_id,
        )
        return rows[0] if rows else None

    def find_by_number(self, tenant_id: UUID, entry_number: str) -> JournalEntryInfo | None:
        rows = self._entries(
            JournalEntry.tenant_id == tenant_id,
            JournalEntry.entry_number == entry_number,
        )
        return rows[0] if rows else None

    def entries_by_status(
        self, tenant_id: UUID, status: JournalEntryStatus,
    ) -> list[JournalEntryInfo]:
        return self._entries(
            JournalEntry.tenant_id == tenant_id,
            JournalEntry.status == status,
        )

    def entries_for_period(self, tenant_id: UUID, fiscal_period_id: UUID) -> list[JournalEntryInfo]:
        return self._entries(
            JournalEntry.tenant_id == tenant_id,
            JournalEntry.fiscal_period_id == fiscal_period_id,
        )

    def entries_between(
        self,
        tenant_id: UUID,
        start_date: date,
        end_date: date,
        status: JournalEntryStatus | None = None,
    ) -> list[JournalEntryInfo]:
        """Entries with start_date <= entry_date <= end_date."""
        criteria = [
            JournalEntry.tenant_id == tenant_id,
            JournalEntry.entry_date >= start_date,
            JournalEntry.entry_date <= end_date,
        ]
        if status is not None:
            criteria.append(JournalEntry.status == status)
        return self._entries(*criteria)

    def entries_for_reference(
        self,
        tenant_id: UUID,
        reference_type: str,
        reference_id: str,
    ) -> list[JournalEntryInfo]:
        """Entries produced for one originating document, reversals included."""
        return self._entries(
            JournalEntry.tenant_id == tenant_id,
            JournalEntry.reference_type == reference_type,
            JournalEntry.reference_id == str(reference_id),
        )

    def lines_for_account(
        self,
        tenant_id: UUID,
        account_id: UUID,
        posted_only: bool = True,
    ) -> list[JournalLineInfo]:
        query = (
            select(JournalLine)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.tenant_id == tenant_id,
                JournalLine.account_id == account_id,
            )
            .options(selectinload(JournalLine.account))
            .order_by(JournalEntry.entry_date, JournalEntry.entry_number, JournalLine.line_seq)
        )
        if posted_only:
            query = query.where(JournalEntry.status != JournalEntryStatus.DRAFT)
        return [JournalLineInfo.from_model(line) for line in self.session.execute(query).scalars()]

    def unbalanced_entries(self, tenant_id: UUID) -> list[JournalEntryInfo]:
        """
        Posted or reversed entries that fail the balance check: header totals
        differ from each other, or the line sums do.

        Should always be empty.  Anything returned means data was written
        around JournalService.
        """
        sums = (
            select(
                JournalLine.journal_entry_id.label("entry_id"),
                func.coalesce(func.sum(JournalLine.debit), 0).label("debits"),
                func.coalesce(func.sum(JournalLine.credit), 0).label("credits"),
            )
            .group_by(JournalLine.journal_entry_id)
            .subquery()
        )
        rows = self.session.execute(
            select(
                JournalEntry.id,
                JournalEntry.total_debit,
                JournalEntry.total_credit,
                sums.c.debits,
                sums.c.credits,
            )
            .outerjoin(sums, sums.c.entry_id == JournalEntry.id)
            .where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.status != JournalEntryStatus.DRAFT,
            )
        ).all()

        bad_ids = [
            row.id
            for row in rows
            if not money_equal(row.total_debit, row.total_credit)
            or not money_equal(to_decimal(row.debits), to_decimal(row.credits))
        ]
        if not bad_ids:
            return []
        return self._entries(
            JournalEntry.tenant_id == tenant_id,
            JournalEntry.id.in_(bad_ids),
        )

