"""
Read-side selectors: journal queries and cached balances.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from ledger_kernel.domain.dtos import EntryLine
from ledger_kernel.models.account import AccountClass, NormalBalance
from ledger_kernel.models.journal import JournalEntryStatus


def _post(journal_service, tenant_id, actor_id, entry_date, amount, **kw):
    return journal_service.post_entry(
        tenant_id,
        entry_date,
        "Sale",
        [EntryLine.debit_line("1110", amount), EntryLine.credit_line("4100", amount)],
        actor_id=actor_id,
        **kw,
    )


class TestJournalSelector:
    def test_get_entry_returns_dto_with_lines(
        self, journal_service, journal_selector, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        entry = _post(journal_service, tenant_id, test_actor_id, date(2024, 1, 1), "10")

        info = journal_selector.get_entry(tenant_id, entry.id)

        assert info.entry_number == entry.entry_number
        assert info.status == JournalEntryStatus.POSTED
        assert [line.account_code for line in info.lines] == ["1110", "4100"]
        assert info.line_debits == info.line_credits == Decimal("10")
        assert journal_selector.get_entry(uuid4(), entry.id) is None

    def test_find_by_number(
        self, journal_service, journal_selector, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        entry = _post(journal_service, tenant_id, test_actor_id, date(2024, 1, 1), "10")
        assert journal_selector.find_by_number(tenant_id, entry.entry_number).entry_id == entry.id
        assert journal_selector.find_by_number(tenant_id, "JE-19990101-000001") is None

    def test_entries_between_ordered_by_date(
        self, journal_service, journal_selector, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        late = _post(journal_service, tenant_id, test_actor_id, date(2024, 3, 1), "5")
        early = _post(journal_service, tenant_id, test_actor_id, date(2024, 2, 1), "5")
        _post(journal_service, tenant_id, test_actor_id, date(2024, 6, 1), "5")

        rows = journal_selector.entries_between(tenant_id, date(2024, 2, 1), date(2024, 3, 31))

        assert [r.entry_id for r in rows] == [early.id, late.id]

    def test_entries_by_status_and_period(
        self, journal_service, journal_selector, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        entry = _post(journal_service, tenant_id, test_actor_id, date(2024, 1, 1), "5")
        journal_service.reverse_entry(tenant_id, entry.id, actor_id=test_actor_id)

        reversed_rows = journal_selector.entries_by_status(tenant_id, JournalEntryStatus.REVERSED)
        assert [r.entry_id for r in reversed_rows] == [entry.id]
        assert len(journal_selector.entries_for_period(tenant_id, open_period.id)) == 2

    def test_entries_for_reference_include_reversal(
        self, journal_service, journal_selector, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        entry = _post(
            journal_service, tenant_id, test_actor_id, date(2024, 1, 1), "5",
            reference_type="payroll", reference_id="PR-1",
        )
        reversal = journal_service.reverse_entry(tenant_id, entry.id, actor_id=test_actor_id)

        rows = journal_selector.entries_for_reference(tenant_id, "payroll", "PR-1")
        assert {r.entry_id for r in rows} == {entry.id, reversal.id}

    def test_lines_for_account_excludes_drafts(
        self, journal_service, journal_selector, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        _post(journal_service, tenant_id, test_actor_id, date(2024, 1, 1), "5")
        journal_service.create_draft(
            tenant_id,
            date(2024, 1, 2),
            "Pending",
            [EntryLine.debit_line("1110", "7"), EntryLine.credit_line("4100", "7")],
            actor_id=test_actor_id,
        )
        cash_id = standard_accounts["1110"].id

        assert [l.debit for l in journal_selector.lines_for_account(tenant_id, cash_id)] == [Decimal("5")]
        assert len(journal_selector.lines_for_account(tenant_id, cash_id, posted_only=False)) == 2

    def test_unbalanced_entries_empty_after_normal_posting(
        self, journal_service, journal_selector, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        _post(journal_service, tenant_id, test_actor_id, date(2024, 1, 1), "5")
        assert journal_selector.unbalanced_entries(tenant_id) == []


class TestAccountSelector:
    def test_balances_signed_by_normal_balance(
        self, journal_service, account_selector, standard_accounts, open_period, tenant_id, test_actor_id,
    ):
        _post(journal_service, tenant_id, test_actor_id, date(2024, 1, 1), "80")

        balances = {b.code: b for b in account_selector.balances(tenant_id, include_zero=False)}

        assert set(balances) == {"1110", "4100"}
        assert balances["1110"].balance == Decimal("80")
        assert balances["4100"].balance == Decimal("80")
        assert balances["4100"].normal_balance == NormalBalance.CREDIT

    def test_filter_by_class(self, account_selector, standard_accounts, tenant_id):
        rows = account_selector.balances(tenant_id, account_class=AccountClass.LIABILITY)
        assert [r.code for r in rows] == ["2110"]

    def test_balance_of(self, account_selector, standard_accounts, tenant_id):
        assert account_selector.balance_of(tenant_id, "1130").name == "Accounts Receivable"
        assert account_selector.balance_of(tenant_id, "9999") is None
