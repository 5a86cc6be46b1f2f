"""
Inbound domain events (``ledger_services.events``).

Responsibility
--------------
Frozen dataclasses for the events other subsystems publish and the ledger
consumes: ``OrderConfirmed``, ``PayrollProcessed``,
``StockMovementRecorded`` and ``GoodsReceived``.  Each carries the complete
aggregate the integrator needs; nothing is re-fetched from the producing
subsystem.

Invariants enforced
-------------------
* Events are immutable and identified by ``event_id``.  Redelivery of the
  same event carries the same id, which is what the integrators' idempotency
  keys are built from.
* All monetary fields are ``Decimal``.
* ``to_payload()`` produces JSON-safe dicts and ``event_from_payload``
  rebuilds an equal event, so parked events can be replayed.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID, uuid4

from ledger_kernel.db.types import ZERO, to_decimal


def _coerce_decimals(obj: Any, *names: str) -> None:
    for name in names:
        value = getattr(obj, name)
        if value is not None and not isinstance(value, Decimal):
            object.__setattr__(obj, name, to_decimal(value))


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _opt_date(value: Any) -> date | None:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SalesOrderLine:
    product_id: str | None
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal
    discount_percentage: Decimal = ZERO
    tax_rate: Decimal = ZERO

    def __post_init__(self) -> None:
        _coerce_decimals(
            self, "quantity", "unit_price", "line_total", "discount_percentage", "tax_rate"
        )


@dataclass(frozen=True)
class SalesOrder:
    """A confirmed sales order as the sales subsystem reports it."""

    order_id: str
    order_number: str
    customer_id: str | None
    total_amount: Decimal
    subtotal: Decimal = ZERO
    tax_amount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    currency: str | None = None
    lines: tuple[SalesOrderLine, ...] = ()

    def __post_init__(self) -> None:
        _coerce_decimals(self, "total_amount", "subtotal", "tax_amount", "discount_amount")
        object.__setattr__(self, "lines", tuple(self.lines))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SalesOrder:
        values = dict(data)
        values["lines"] = tuple(SalesOrderLine(**line) for line in data.get("lines", ()))
        return cls(**values)


@dataclass(frozen=True)
class PayrollRecord:
    """
    One processed payroll run.

    ``gross_salary`` is expected to equal ``employee_tax_amount +
    other_deductions_amount + net_salary``; the journal engine rejects the
    posting otherwise.
    """

    payroll_id: str
    payroll_number: str
    period_start: date
    period_end: date
    gross_salary: Decimal
    net_salary: Decimal
    employee_tax_amount: Decimal = ZERO
    other_deductions_amount: Decimal = ZERO
    employer_tax_amount: Decimal = ZERO
    employer_benefits_amount: Decimal = ZERO
    payment_date: date | None = None
    currency: str | None = None

    def __post_init__(self) -> None:
        _coerce_decimals(
            self,
            "gross_salary",
            "net_salary",
            "employee_tax_amount",
            "other_deductions_amount",
            "employer_tax_amount",
            "employer_benefits_amount",
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PayrollRecord:
        values = dict(data)
        for key in ("period_start", "period_end", "payment_date"):
            values[key] = _opt_date(values.get(key))
        return cls(**values)


@dataclass(frozen=True)
class StockMovement:
    """
    A recorded stock movement.

    ``quantity`` is signed: positive for stock in, negative for stock out.
    ``unit_cost`` falls back to ``product_cost_price`` when absent.
    """

    movement_id: str
    movement_type: str
    product_id: str
    product_name: str
    quantity: Decimal
    unit_cost: Decimal | None = None
    product_cost_price: Decimal | None = None
    reference_number: str | None = None
    movement_date: date | None = None
    currency: str | None = None

    def __post_init__(self) -> None:
        _coerce_decimals(self, "quantity", "unit_cost", "product_cost_price")
        object.__setattr__(self, "movement_type", self.movement_type.upper())

    @property
    def effective_unit_cost(self) -> Decimal:
        if self.unit_cost is not None:
            return self.unit_cost
        if self.product_cost_price is not None:
            return self.product_cost_price
        return ZERO

    @property
    def total_value(self) -> Decimal:
        return abs(self.quantity) * self.effective_unit_cost

    @property
    def is_increase(self) -> bool:
        return self.quantity > 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StockMovement:
        values = dict(data)
        values["movement_date"] = _opt_date(values.get("movement_date"))
        return cls(**values)


@dataclass(frozen=True)
class GoodsReceiptLine:
    product_id: str | None
    description: str
    received_quantity: Decimal
    unit_price: Decimal
    discount_percentage: Decimal = ZERO
    tax_rate: Decimal = ZERO

    def __post_init__(self) -> None:
        _coerce_decimals(
            self, "received_quantity", "unit_price", "discount_percentage", "tax_rate"
        )


@dataclass(frozen=True)
class GoodsReceipt:
    """
    Goods received against a purchase order.

    ``payment_terms_days`` comes from the purchase order; when absent the
    configured invoice terms apply.
    """

    receipt_id: str
    receipt_number: str
    supplier_id: str | None
    receipt_date: date | None = None
    purchase_order_number: str | None = None
    payment_terms_days: int | None = None
    currency: str | None = None
    lines: tuple[GoodsReceiptLine, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GoodsReceipt:
        values = dict(data)
        values["receipt_date"] = _opt_date(values.get("receipt_date"))
        values["lines"] = tuple(GoodsReceiptLine(**line) for line in data.get("lines", ()))
        return cls(**values)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class _PayloadMixin:
    """Serialization shared by the event dataclasses."""

    event_type: ClassVar[str]
    _aggregate_field: ClassVar[str]
    _aggregate_type: ClassVar[type]

    def to_payload(self) -> dict[str, Any]:
        return _jsonable(asdict(self))  # type: ignore[call-overload]

    @classmethod
    def from_payload(cls, payload: dict[str, Any]):
        occurred_at = payload.get("occurred_at")
        return cls(  # type: ignore[call-arg]
            tenant_id=UUID(str(payload["tenant_id"])),
            event_id=UUID(str(payload["event_id"])),
            occurred_at=datetime.fromisoformat(occurred_at) if occurred_at else None,
            **{
                cls._aggregate_field: cls._aggregate_type.from_dict(
                    payload[cls._aggregate_field]
                )
            },
        )


@dataclass(frozen=True)
class OrderConfirmed(_PayloadMixin):
    event_type: ClassVar[str] = "sales.order_confirmed"
    _aggregate_field: ClassVar[str] = "order"
    _aggregate_type: ClassVar[type] = SalesOrder

    tenant_id: UUID
    order: SalesOrder
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime | None = None


@dataclass(frozen=True)
class PayrollProcessed(_PayloadMixin):
    event_type: ClassVar[str] = "hr.payroll_processed"
    _aggregate_field: ClassVar[str] = "payroll"
    _aggregate_type: ClassVar[type] = PayrollRecord

    tenant_id: UUID
    payroll: PayrollRecord
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime | None = None


@dataclass(frozen=True)
class StockMovementRecorded(_PayloadMixin):
    event_type: ClassVar[str] = "inventory.stock_movement_recorded"
    _aggregate_field: ClassVar[str] = "movement"
    _aggregate_type: ClassVar[type] = StockMovement

    tenant_id: UUID
    movement: StockMovement
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime | None = None


@dataclass(frozen=True)
class GoodsReceived(_PayloadMixin):
    event_type: ClassVar[str] = "procurement.goods_received"
    _aggregate_field: ClassVar[str] = "receipt"
    _aggregate_type: ClassVar[type] = GoodsReceipt

    tenant_id: UUID
    receipt: GoodsReceipt
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime | None = None


EVENT_TYPES: dict[str, type] = {
    cls.event_type: cls
    for cls in (OrderConfirmed, PayrollProcessed, StockMovementRecorded, GoodsReceived)
}


def event_from_payload(event_type: str, payload: dict[str, Any]):
    """Rebuild a parked event.  ``KeyError`` for an unknown event type."""
    try:
        cls = EVENT_TYPES[event_type]
    except KeyError:
        raise KeyError(
            f"Unknown event type '{event_type}'. Known: {sorted(EVENT_TYPES)}"
        ) from None
    return cls.from_payload(payload)

