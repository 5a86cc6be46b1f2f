"""Event integrators: one handler per inbound event type."""

from ledger_services.integrators.base import EventIntegrator, IntegrationResult
from ledger_services.integrators.inventory import InventoryIntegrator
from ledger_services.integrators.payroll import PayrollIntegrator
from ledger_services.integrators.purchase import PurchaseIntegrator
from ledger_services.integrators.sales import SalesIntegrator

__all__ = [
    "EventIntegrator",
    "IntegrationResult",
    "InventoryIntegrator",
    "PayrollIntegrator",
    "PurchaseIntegrator",
    "SalesIntegrator",
]
