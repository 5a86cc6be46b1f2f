"""
Concurrent deliveries and period closes against PostgreSQL.

SQLite serializes writers on the whole file and ignores row locks, so these
run only when DATABASE_URL points at PostgreSQL.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.dtos import AccountSpec, EntryLine
from ledger_kernel.models.account import Account, AccountClass
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.period_service import PeriodService
from ledger_services.events import StockMovement, StockMovementRecorded

pytestmark = pytest.mark.postgres


def _receipt(tenant_id, n):
    return StockMovementRecorded(
        tenant_id=tenant_id,
        movement=StockMovement(
            movement_id=f"MV-{n}",
            movement_type="RECEIPT",
            product_id="P-1",
            product_name="Widget",
            quantity=Decimal("1"),
            unit_cost=Decimal("10.00"),
            movement_date=date(2024, 3, 1),
        ),
    )


class TestConcurrentPostings:
    def test_parallel_receipts_keep_balance_and_numbers(
        self, event_bus, committed_period, read_session, tenant_id,
    ):
        events = [_receipt(tenant_id, n) for n in range(20)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(event_bus.publish, events))

        assert all(r.succeeded for r in results)
        numbers = {r.value.record_number for r in results}
        assert len(numbers) == 20

        s = read_session()
        try:
            inventory = s.scalars(
                select(Account).where(Account.tenant_id == tenant_id, Account.code == "1400")
            ).one()
            assert inventory.balance == Decimal("200.00")
            count = s.scalar(
                select(func.count()).select_from(JournalEntry).where(JournalEntry.tenant_id == tenant_id)
            )
            assert count == 20
        finally:
            s.close()

    def test_same_event_delivered_twice_in_parallel(
        self, event_bus, committed_period, read_session, tenant_id,
    ):
        event = _receipt(tenant_id, 1)

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(event_bus.publish, [event, event]))

        assert all(r.succeeded for r in results)
        assert len({r.value.record_id for r in results}) == 1

        s = read_session()
        try:
            count = s.scalar(
                select(func.count()).select_from(JournalEntry).where(JournalEntry.tenant_id == tenant_id)
            )
            assert count == 1
        finally:
            s.close()


class TestCloseWaitsForPosting:
    def test_close_blocks_until_open_posting_commits(
        self, session_factory, committed_period, tenant_id, test_actor_id, deterministic_clock,
    ):
        with session_scope(session_factory) as s:
            accounts = AccountService(s, deterministic_clock)
            for code, name, cls in (
                ("1110", "Cash", AccountClass.ASSET),
                ("4100", "Sales Revenue", AccountClass.REVENUE),
            ):
                accounts.create(
                    AccountSpec(tenant_id=tenant_id, code=code, name=name, account_class=cls),
                    actor_id=test_actor_id,
                )

        posting = session_factory()
        JournalService(posting, deterministic_clock).post_entry(
            tenant_id,
            date(2024, 3, 1),
            "Cash sale",
            [EntryLine.debit_line("1110", "10"), EntryLine.credit_line("4100", "10")],
            actor_id=test_actor_id,
        )

        closed = threading.Event()

        def close():
            with session_scope(session_factory) as s:
                PeriodService(s, deterministic_clock).close_period(
                    tenant_id, committed_period.id, test_actor_id,
                )
            closed.set()

        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(close)
            assert not closed.wait(timeout=0.5)
            posting.commit()
            future.result(timeout=10)
        posting.close()

        assert closed.is_set()
