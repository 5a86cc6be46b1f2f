"""
ledger_services -- event-driven posting on top of ledger_kernel.

``build_event_bus`` wires the four integrators onto one bus from a
``LedgerConfig``; ``build_payment_service`` gives callers a PaymentService
numbered and pointed at accounts the same way.
"""

import time
from typing import Callable

from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_kernel.domain.clock import Clock
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.payment_service import PaymentService
from ledger_services.event_bus import DeliveryResult, EventBus, FailedEventInfo
from ledger_services.events import (
    GoodsReceipt,
    GoodsReceiptLine,
    GoodsReceived,
    OrderConfirmed,
    PayrollProcessed,
    PayrollRecord,
    SalesOrder,
    SalesOrderLine,
    StockMovement,
    StockMovementRecorded,
)
from ledger_services.integrators import (
    InventoryIntegrator,
    PayrollIntegrator,
    PurchaseIntegrator,
    SalesIntegrator,
)
from ledger_services.orm import FailedEventModel, FailedEventStatus
from ledger_services.registry import HandlerRegistry


def build_event_bus(
    config: LedgerConfig,
    session_factory: Callable[[], Session],
    clock: Clock | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> EventBus:
    """An EventBus with the sales, purchase, payroll and inventory integrators registered."""
    registry = HandlerRegistry()
    for integrator_cls in (
        SalesIntegrator, PurchaseIntegrator, PayrollIntegrator, InventoryIntegrator,
    ):
        registry.register(integrator_cls(session_factory, config, clock))
    return EventBus.from_config(config, registry, session_factory, clock=clock, sleep=sleep)


def build_payment_service(
    config: LedgerConfig,
    session: Session,
    clock: Clock | None = None,
) -> PaymentService:
    """A PaymentService bound to ``session`` with configured numbering and accounts."""
    journal = JournalService(
        session,
        clock,
        entry_prefix=config.numbering.manual,
        reversal_prefix=config.numbering.reversal,
    )
    return PaymentService(
        session,
        clock,
        journal_service=journal,
        payment_prefix=config.payments.prefix,
        number_prefix=config.numbering.payment,
        cash_account_code=config.payments.cash_account,
        receivable_account_code=config.payments.receivable_account,
        payable_account_code=config.account("accounts_payable").code,
    )


__all__ = [
    "DeliveryResult",
    "EventBus",
    "FailedEventInfo",
    "FailedEventModel",
    "FailedEventStatus",
    "GoodsReceipt",
    "GoodsReceiptLine",
    "GoodsReceived",
    "HandlerRegistry",
    "InventoryIntegrator",
    "OrderConfirmed",
    "PayrollIntegrator",
    "PayrollProcessed",
    "PayrollRecord",
    "PurchaseIntegrator",
    "SalesIntegrator",
    "SalesOrder",
    "SalesOrderLine",
    "StockMovement",
    "StockMovementRecorded",
    "build_event_bus",
    "build_payment_service",
]
