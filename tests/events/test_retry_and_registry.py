"""RetryRunner and HandlerRegistry, without a database."""

import pytest

from ledger_config import RetryPolicy
from ledger_kernel.exceptions import (
    DuplicateHandlerError,
    HandlerNotFoundError,
    UnbalancedEntryError,
)
from ledger_services.registry import HandlerRegistry
from ledger_services.retry import RetryRunner


class _Handler:
    def __init__(self, name, event_type):
        self.name = name
        self.event_type = event_type

    def handle(self, event):
        return event


class TestRetryRunner:
    def test_success_first_try(self):
        outcome = RetryRunner(sleep=lambda _: None).run(lambda: 42)
        assert outcome.succeeded
        assert (outcome.value, outcome.attempts) == (42, 1)

    def test_budget_exhausted(self, captured_logs):
        sleeps = []

        def boom():
            raise RuntimeError("nope")

        outcome = RetryRunner(RetryPolicy(max_attempts=3, backoff_seconds=2), sleep=sleeps.append).run(boom)

        assert not outcome.succeeded
        assert outcome.attempts == 3
        assert isinstance(outcome.error, RuntimeError)
        assert sleeps == [2, 2]
        records = [r for r in captured_logs() if r["message"] == "delivery_attempt_failed"]
        assert [r["will_retry"] for r in records] == [True, True, False]

    def test_non_retryable_stops_immediately(self):
        calls = []

        def unbalanced():
            calls.append(1)
            raise UnbalancedEntryError("100", "90", "USD")

        policy = RetryPolicy(max_attempts=5, non_retryable_codes=("UNBALANCED_ENTRY",))
        outcome = RetryRunner(policy, sleep=lambda _: None).run(unbalanced)

        assert outcome.attempts == 1
        assert len(calls) == 1

    def test_policy_retryability(self):
        policy = RetryPolicy(non_retryable_codes=("UNBALANCED_ENTRY",))
        assert policy.is_retryable(RuntimeError("x"))
        assert not policy.is_retryable(UnbalancedEntryError("1", "2", "USD"))


class TestHandlerRegistry:
    def test_register_and_get(self):
        registry = HandlerRegistry()
        handler = _Handler("payroll_journal", "hr.payroll_processed")
        registry.register(handler)

        assert registry.get("hr.payroll_processed") is handler
        assert "hr.payroll_processed" in registry
        assert len(registry) == 1

    def test_duplicate_rejected(self):
        registry = HandlerRegistry()
        registry.register(_Handler("a", "hr.payroll_processed"))
        with pytest.raises(DuplicateHandlerError):
            registry.register(_Handler("b", "hr.payroll_processed"))

    def test_missing_lists_available(self):
        registry = HandlerRegistry()
        registry.register(_Handler("b", "sales.order_confirmed"))
        registry.register(_Handler("a", "hr.payroll_processed"))

        with pytest.raises(HandlerNotFoundError) as exc_info:
            registry.get("crm.lead_created")

        assert exc_info.value.code == "HANDLER_NOT_FOUND"
        assert exc_info.value.available == ("hr.payroll_processed", "sales.order_confirmed")
