"""
InventoryIntegrator -- values stock movements in the general ledger.

A stock increase debits the inventory asset and credits the contra account
configured for the movement type; a decrease posts the same pair swapped.
Movement types outside the configured list, and movements with no value,
are acknowledged without a posting.  A redelivered event is logged as
inventory_journal_already_posted and writes nothing.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.dtos import EntryLine
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import PostingSource
from ledger_services.events import StockMovementRecorded
from ledger_services.integrators.base import EventIntegrator, IntegrationResult

logger = get_logger("integrators.inventory")


class InventoryIntegrator(EventIntegrator):
    name = "inventory_valuation"
    event_type = StockMovementRecorded.event_type

    def process(self, session: Session, event: StockMovementRecorded) -> IntegrationResult:
        movement = event.movement
        tenant_id = event.tenant_id

        if movement.movement_type not in self.config.inventory_movement_types:
            return self._skip(movement, "movement_type_not_valued")

        value = round_money(movement.total_value)
        if value == ZERO:
            return self._skip(movement, "zero_value")

        journal = self.journal(session)
        key = self.idempotency_key(event)
        existing = journal.find_by_idempotency_key(tenant_id, key)
        if existing is not None:
            logger.info(
                "inventory_journal_already_posted",
                extra={
                    "movement_id": movement.movement_id,
                    "movement_type": movement.movement_type,
                    "entry_id": str(existing.id),
                    "entry_number": existing.entry_number,
                },
            )
            return IntegrationResult(
                record_id=existing.id,
                record_number=existing.entry_number,
                amount=existing.total_debit,
            )

        inventory = self.provision(session, tenant_id, "inventory_asset")
        contra = self.provision(
            session, tenant_id, self.config.contra_role_for(movement.movement_type),
        )

        if movement.is_increase:
            description = f"Inventory increase - {movement.product_name}"
            debit_account, credit_account = inventory, contra
        else:
            description = f"Inventory decrease - {movement.product_name}"
            debit_account, credit_account = contra, inventory

        entry = journal.post_entry(
            tenant_id,
            movement.movement_date or self._clock.today(),
            f"Inventory valuation for {movement.movement_type}: {movement.reference_number}",
            [
                EntryLine(account_id=debit_account.id, debit=value, description=description),
                EntryLine(account_id=credit_account.id, credit=value, description=description),
            ],
            reference_type="stock_movement",
            reference_id=movement.movement_id,
            reference_number=movement.reference_number,
            actor_id=self.actor_id,
            currency=movement.currency or self.config.default_currency,
            source=PostingSource.SYSTEM,
            idempotency_key=key,
            number_prefix=self.config.numbering.inventory,
        )

        logger.info(
            "inventory_journal_posted",
            extra={
                "movement_id": movement.movement_id,
                "movement_type": movement.movement_type,
                "product_id": movement.product_id,
                "quantity": str(movement.quantity),
                "total_value": str(value),
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
            },
        )
        return IntegrationResult(
            record_id=entry.id, record_number=entry.entry_number, amount=value,
        )

    def _skip(self, movement, reason: str) -> IntegrationResult:
        logger.info(
            "stock_movement_skipped",
            extra={
                "movement_id": movement.movement_id,
                "movement_type": movement.movement_type,
                "reason": reason,
            },
        )
        return IntegrationResult.skip(reason)
