"""
Sequence counters and insert-if-absent account provisioning.
"""

from uuid import uuid4

from ledger_kernel.models.account import AccountClass
from ledger_kernel.services.sequence_service import SequenceService


class TestSequenceService:
    def test_first_value_is_one(self, sequence_service, tenant_id):
        assert sequence_service.current_value(tenant_id, "invoice") is None
        assert sequence_service.next_value(tenant_id, "invoice") == 1
        assert sequence_service.current_value(tenant_id, "invoice") == 1

    def test_values_increase(self, sequence_service, tenant_id):
        values = [sequence_service.next_value(tenant_id, SequenceService.JOURNAL_ENTRY) for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]

    def test_counters_are_independent(self, sequence_service, tenant_id):
        sequence_service.next_value(tenant_id, "invoice")
        sequence_service.next_value(tenant_id, "invoice")
        assert sequence_service.next_value(tenant_id, "journal_entry") == 1
        assert sequence_service.next_value(uuid4(), "invoice") == 1

    def test_reset(self, sequence_service, tenant_id):
        sequence_service.next_value(tenant_id, "invoice")
        sequence_service.reset(tenant_id, "invoice", 41)
        assert sequence_service.next_value(tenant_id, "invoice") == 42


class TestProvisioning:
    def test_creates_system_account(self, provisioning_service, tenant_id, test_actor_id):
        account = provisioning_service.ensure_account(
            tenant_id, "1400", "Inventory Asset", AccountClass.ASSET, "current_asset",
            actor_id=test_actor_id,
        )

        assert account.code == "1400"
        assert account.is_system
        assert account.is_active
        assert not account.allow_manual_entries
        assert account.sub_type == "current_asset"
        assert account.created_by_id == test_actor_id

    def test_second_call_returns_same_row(
        self, provisioning_service, account_service, tenant_id, test_actor_id, captured_logs,
    ):
        first = provisioning_service.ensure_account(
            tenant_id, "2200", "Employee Tax Payable", "liability", actor_id=test_actor_id,
        )
        second = provisioning_service.ensure_account(
            tenant_id, "2200", "Renamed", AccountClass.LIABILITY, actor_id=test_actor_id,
        )

        assert second.id == first.id
        assert second.name == "Employee Tax Payable"
        assert len(account_service.list_active(tenant_id)) == 1
        provisioned = [r for r in captured_logs() if r["message"] == "account_provisioned"]
        assert len(provisioned) == 1

    def test_existing_manual_account_is_reused(
        self, provisioning_service, standard_accounts, tenant_id, test_actor_id,
    ):
        account = provisioning_service.ensure_account(
            tenant_id, "1110", "Cash", AccountClass.ASSET, actor_id=test_actor_id,
        )
        assert account.id == standard_accounts["1110"].id
        assert not account.is_system
