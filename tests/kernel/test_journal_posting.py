"""
Journal Engine posting path.

Verifies:
- A balanced entry posts with its lines, totals, number and audit fields
- Cached balances move by the signed effect of the lines
- Every validation failure is raised before anything is written
- Manual postings to system accounts are refused; system postings pass
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from ledger_kernel.domain.dtos import AccountSpec, EntryLine
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    EmptyEntryError,
    InvalidCurrencyError,
    InvalidLineError,
    ManualEntryNotAllowedError,
    MissingFieldError,
    UnbalancedEntryError,
    ValidationError,
)
from ledger_kernel.models.account import Account, AccountClass
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    PostingSource,
)


def _cash_sale(amount="100.00"):
    return [EntryLine.debit_line("1110", amount), EntryLine.credit_line("4100", amount)]


def _row_counts(session, tenant_id):
    entries = session.scalar(
        select(func.count()).select_from(JournalEntry).where(JournalEntry.tenant_id == tenant_id)
    )
    lines = session.scalar(
        select(func.count()).select_from(JournalLine).where(JournalLine.tenant_id == tenant_id)
    )
    return entries, lines


class TestScenarioCashSale:
    """Cash 100 debit / Sales 100 credit posts and moves both balances."""

    def test_balanced_entry_posts(
        self,
        session,
        journal_service,
        standard_accounts,
        open_period,
        tenant_id,
        test_actor_id,
        deterministic_clock,
    ):
        entry = journal_service.post_entry(
            tenant_id,
            date(2024, 1, 1),
            "Cash sale",
            _cash_sale(),
            reference_type="sales_receipt",
            reference_id="R-1",
            reference_number="RCPT-0001",
            actor_id=test_actor_id,
        )

        assert entry.status == JournalEntryStatus.POSTED
        assert entry.entry_number == "JE-20240101-000001"
        assert entry.fiscal_period_id == open_period.id
        assert entry.total_debit == Decimal("100.00")
        assert entry.total_credit == Decimal("100.00")
        assert entry.posted_by_id == test_actor_id
        assert entry.posted_at is not None
        assert entry.source == PostingSource.MANUAL
        assert entry.reference_number == "RCPT-0001"
        assert [line.line_seq for line in entry.lines] == [0, 1]
        assert all(line.currency == "USD" for line in entry.lines)
        assert all(line.exchange_rate == Decimal("1") for line in entry.lines)
        assert entry.is_balanced

        cash = session.get(Account, standard_accounts["1110"].id)
        sales = session.get(Account, standard_accounts["4100"].id)
        assert cash.balance == Decimal("100.00")
        assert sales.balance == Decimal("100.00")

    def test_entry_numbers_are_sequential(
        self, journal_service, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        first = journal_service.post_entry(
            tenant_id, date(2024, 1, 1), "one", _cash_sale(), actor_id=test_actor_id,
        )
        second = journal_service.post_entry(
            tenant_id, date(2024, 2, 3), "two", _cash_sale(), actor_id=test_actor_id,
        )
        assert first.entry_number == "JE-20240101-000001"
        assert second.entry_number == "JE-20240203-000002"

    def test_posted_log_record(
        self, journal_service, standard_accounts, open_period, tenant_id, test_actor_id, captured_logs,
    ):
        entry = journal_service.post_entry(
            tenant_id, date(2024, 1, 1), "Cash sale", _cash_sale(), actor_id=test_actor_id,
        )

        posted = [r for r in captured_logs() if r["message"] == "journal_entry_posted"]
        assert len(posted) == 1
        assert posted[0]["entry_id"] == str(entry.id)
        assert posted[0]["total_debit"] == str(entry.total_debit)


class TestBalanceEffects:
    def test_credit_normal_balance_decreases_on_debit(
        self, session, journal_service, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        journal_service.post_entry(
            tenant_id,
            date(2024, 1, 5),
            "Pay supplier",
            [EntryLine.debit_line("2110", "40"), EntryLine.credit_line("1110", "40")],
            actor_id=test_actor_id,
        )

        payable = session.get(Account, standard_accounts["2110"].id)
        cash = session.get(Account, standard_accounts["1110"].id)
        assert payable.balance == Decimal("-40")
        assert cash.balance == Decimal("-40")

    def test_multi_line_same_account_nets(
        self, session, journal_service, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        journal_service.post_entry(
            tenant_id,
            date(2024, 1, 5),
            "Split",
            [
                EntryLine.debit_line("1110", "70"),
                EntryLine.debit_line("1110", "30"),
                EntryLine.credit_line("4100", "60"),
                EntryLine.credit_line("3100", "40"),
            ],
            actor_id=test_actor_id,
        )

        assert session.get(Account, standard_accounts["1110"].id).balance == Decimal("100")
        assert session.get(Account, standard_accounts["4100"].id).balance == Decimal("60")
        assert session.get(Account, standard_accounts["3100"].id).balance == Decimal("40")

    def test_lines_by_account_id(
        self, session, journal_service, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        entry = journal_service.post_entry(
            tenant_id,
            date(2024, 1, 5),
            "By id",
            [
                EntryLine(account_id=standard_accounts["5210"].id, debit="12.50"),
                EntryLine(account_id=standard_accounts["1110"].id, credit="12.50"),
            ],
            actor_id=test_actor_id,
        )
        assert {line.account_id for line in entry.lines} == {
            standard_accounts["5210"].id,
            standard_accounts["1110"].id,
        }


class TestValidation:
    """Scenario: 100 debit / 90 credit raises ValidationError and writes nothing."""

    def test_unbalanced_entry_rejected_without_writes(
        self, session, journal_service, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        with pytest.raises(UnbalancedEntryError) as exc_info:
            journal_service.post_entry(
                tenant_id,
                date(2024, 1, 1),
                "Bad",
                [EntryLine.debit_line("1110", "100"), EntryLine.credit_line("4100", "90")],
                actor_id=test_actor_id,
            )

        assert isinstance(exc_info.value, ValidationError)
        assert _row_counts(session, tenant_id) == (0, 0)
        assert session.get(Account, standard_accounts["1110"].id).balance == Decimal("0")

    def test_amounts_rounded_to_cents(
        self, session, journal_service, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        entry = journal_service.post_entry(
            tenant_id,
            date(2024, 1, 1),
            "Rounding",
            [EntryLine.debit_line("1110", "100.001"), EntryLine.credit_line("4100", "100.004")],
            actor_id=test_actor_id,
        )

        assert entry.total_debit == entry.total_credit == Decimal("100.00")
        assert [(l.debit, l.credit) for l in entry.lines] == [
            (Decimal("100.00"), Decimal("0")),
            (Decimal("0"), Decimal("100.00")),
        ]
        session.expire_all()
        assert session.get(Account, standard_accounts["1110"].id).balance == Decimal("100.00")
        assert session.get(Account, standard_accounts["4100"].id).balance == Decimal("100.00")

    def test_difference_after_rounding_rejected(
        self, session, journal_service, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        with pytest.raises(UnbalancedEntryError):
            journal_service.post_entry(
                tenant_id,
                date(2024, 1, 1),
                "Half cent",
                [EntryLine.debit_line("1110", "100.005"), EntryLine.credit_line("4100", "100.004")],
                actor_id=test_actor_id,
            )
        assert _row_counts(session, tenant_id) == (0, 0)

    def test_empty_entry_rejected(self, journal_service, open_period, tenant_id, test_actor_id):
        with pytest.raises(EmptyEntryError):
            journal_service.post_entry(
                tenant_id, date(2024, 1, 1), "Empty", [], actor_id=test_actor_id,
            )

    @pytest.mark.parametrize(
        "line",
        [
            EntryLine(account_code="1110"),
            EntryLine(account_code="1110", debit="5", credit="5"),
            EntryLine(account_code="1110", debit="-5"),
            EntryLine(account_code="1110", debit="0.004"),
        ],
        ids=["both_zero", "both_set", "negative", "sub_cent"],
    )
    def test_malformed_line_rejected(
        self, session, journal_service, standard_accounts, open_period, tenant_id, test_actor_id, line,
    ):
        with pytest.raises(InvalidLineError) as exc_info:
            journal_service.post_entry(
                tenant_id,
                date(2024, 1, 1),
                "Bad line",
                [EntryLine.credit_line("4100", "5"), line],
                actor_id=test_actor_id,
            )
        assert exc_info.value.line_index == 1
        assert _row_counts(session, tenant_id) == (0, 0)

    def test_line_without_account_rejected(
        self, journal_service, open_period, tenant_id, test_actor_id,
    ):
        with pytest.raises(MissingFieldError):
            journal_service.post_entry(
                tenant_id,
                date(2024, 1, 1),
                "No account",
                [EntryLine(debit="5"), EntryLine.credit_line("4100", "5")],
                actor_id=test_actor_id,
            )

    def test_unknown_currency_rejected(
        self, journal_service, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        with pytest.raises(InvalidCurrencyError):
            journal_service.post_entry(
                tenant_id, date(2024, 1, 1), "FX", _cash_sale(), actor_id=test_actor_id,
                currency="ZZZ",
            )


class TestAccountChecks:
    def test_unknown_account_rejected(
        self, session, journal_service, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        with pytest.raises(AccountNotFoundError):
            journal_service.post_entry(
                tenant_id,
                date(2024, 1, 1),
                "Missing",
                [EntryLine.debit_line("1999", "5"), EntryLine.credit_line("4100", "5")],
                actor_id=test_actor_id,
            )
        assert _row_counts(session, tenant_id) == (0, 0)

    def test_account_of_other_tenant_not_visible(
        self, account_service, journal_service, open_period, tenant_id, test_actor_id,
    ):
        from uuid import uuid4

        foreign = account_service.create(
            AccountSpec(tenant_id=uuid4(), code="1110", name="Cash", account_class=AccountClass.ASSET),
            actor_id=test_actor_id,
        )
        with pytest.raises(AccountNotFoundError):
            journal_service.post_entry(
                tenant_id,
                date(2024, 1, 1),
                "Cross tenant",
                [EntryLine(account_id=foreign.id, debit="5"), EntryLine(account_id=foreign.id, credit="5")],
                actor_id=test_actor_id,
            )

    def test_inactive_account_rejected(
        self, account_service, journal_service, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        account_service.update(tenant_id, standard_accounts["4100"].id, test_actor_id, is_active=False)
        with pytest.raises(AccountInactiveError):
            journal_service.post_entry(
                tenant_id, date(2024, 1, 1), "Inactive", _cash_sale(), actor_id=test_actor_id,
            )

    def test_manual_posting_to_system_account_rejected(
        self, account_service, journal_service, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        account_service.create(
            AccountSpec(
                tenant_id=tenant_id,
                code="1400",
                name="Inventory Asset",
                account_class=AccountClass.ASSET,
                is_system=True,
                allow_manual_entries=False,
            ),
            actor_id=test_actor_id,
        )
        lines = [EntryLine.debit_line("1400", "5"), EntryLine.credit_line("1110", "5")]

        with pytest.raises(ManualEntryNotAllowedError):
            journal_service.post_entry(
                tenant_id, date(2024, 1, 1), "Manual", lines, actor_id=test_actor_id,
            )

        entry = journal_service.post_entry(
            tenant_id, date(2024, 1, 1), "System", lines, actor_id=test_actor_id,
            source=PostingSource.SYSTEM,
        )
        assert entry.source == PostingSource.SYSTEM
