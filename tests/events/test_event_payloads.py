"""Event dataclasses and their JSON payloads."""

import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_services.events import (
    EVENT_TYPES,
    GoodsReceipt,
    GoodsReceived,
    OrderConfirmed,
    PayrollProcessed,
    PayrollRecord,
    SalesOrder,
    StockMovement,
    StockMovementRecorded,
    event_from_payload,
)


class TestAggregates:
    def test_amounts_coerced_to_decimal(self):
        record = PayrollRecord(
            payroll_id="PR-1",
            payroll_number="PAY-1",
            period_start=date(2024, 1, 1),
            period_end=date(2024, 1, 31),
            gross_salary=1000.1,
            net_salary="900",
        )
        assert record.gross_salary == Decimal("1000.1")
        assert record.employer_tax_amount == Decimal("0")

    def test_movement_type_upper_cased(self):
        movement = StockMovement("MV-1", "receipt", "P-1", "Widget", Decimal("3"))
        assert movement.movement_type == "RECEIPT"
        assert movement.is_increase

    @pytest.mark.parametrize(
        "unit_cost, cost_price, expected",
        [("2.00", "9.00", "10.00"), (None, "3.00", "15.00"), (None, None, "0")],
    )
    def test_total_value_uses_cost_fallbacks(self, unit_cost, cost_price, expected):
        movement = StockMovement(
            "MV-1", "ISSUE", "P-1", "Widget", Decimal("-5"),
            unit_cost=unit_cost, product_cost_price=cost_price,
        )
        assert movement.total_value == Decimal(expected)
        assert not movement.is_increase


class TestPayloads:
    def test_payload_is_json_safe_and_rebuilds(self):
        event = PayrollProcessed(
            tenant_id=uuid4(),
            payroll=PayrollRecord(
                payroll_id="PR-1",
                payroll_number="PAY-1",
                period_start=date(2024, 1, 1),
                period_end=date(2024, 1, 31),
                gross_salary=Decimal("5000.00"),
                net_salary=Decimal("5000.00"),
                payment_date=date(2024, 1, 31),
            ),
        )

        payload = json.loads(json.dumps(event.to_payload()))
        rebuilt = event_from_payload(PayrollProcessed.event_type, payload)

        assert rebuilt == event
        assert payload["payroll"]["gross_salary"] == "5000.00"

    def test_order_lines_survive(self):
        order = SalesOrder.from_dict(
            {
                "order_id": "SO-1",
                "order_number": "SO-1",
                "customer_id": "C-1",
                "total_amount": "10",
                "lines": [
                    {"product_id": "P", "description": "x", "quantity": "1",
                     "unit_price": "10", "line_total": "10"},
                ],
            }
        )
        event = OrderConfirmed(tenant_id=uuid4(), order=order)

        rebuilt = event_from_payload(OrderConfirmed.event_type, event.to_payload())

        assert rebuilt.order.lines[0].line_total == Decimal("10")
        assert rebuilt.event_id == event.event_id

    def test_receipt_lines_and_date_survive(self):
        receipt = GoodsReceipt.from_dict(
            {
                "receipt_id": "GR-1",
                "receipt_number": "GR-1",
                "supplier_id": "S-1",
                "receipt_date": "2024-03-05",
                "payment_terms_days": 60,
                "lines": [
                    {"product_id": "P", "description": "x", "received_quantity": "2",
                     "unit_price": "7.5", "tax_rate": "10"},
                ],
            }
        )
        event = GoodsReceived(tenant_id=uuid4(), receipt=receipt)

        payload = json.loads(json.dumps(event.to_payload()))
        rebuilt = event_from_payload(GoodsReceived.event_type, payload)

        assert rebuilt == event
        assert rebuilt.receipt.receipt_date == date(2024, 3, 5)
        assert rebuilt.receipt.lines[0].unit_price == Decimal("7.5")
        assert payload["receipt"]["lines"][0]["tax_rate"] == "10"

    def test_unknown_type_rejected(self):
        with pytest.raises(KeyError):
            event_from_payload("crm.lead_created", {})

    def test_registered_types(self):
        assert set(EVENT_TYPES) == {
            "sales.order_confirmed",
            "hr.payroll_processed",
            "inventory.stock_movement_recorded",
            "procurement.goods_received",
        }
        assert EVENT_TYPES["inventory.stock_movement_recorded"] is StockMovementRecorded

    def test_events_are_frozen(self):
        event = StockMovementRecorded(
            tenant_id=uuid4(),
            movement=StockMovement("MV-1", "RECEIPT", "P-1", "Widget", Decimal("1")),
        )
        with pytest.raises(AttributeError):
            event.tenant_id = uuid4()
