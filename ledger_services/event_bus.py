"""
EventBus -- typed, in-process delivery of domain events to integrators.

Responsibility:
    Routes each event to the single handler registered for its type, runs
    the handler under the retry policy, and parks events whose retry budget
    runs out in ``failed_events`` for manual replay.

Architecture position:
    Services layer.  Handlers (``ledger_services.integrators``) own their
    transactions; the bus only opens sessions of its own to park and to
    resolve failed events.

Invariants enforced:
    - Delivery is at-least-once.  A redelivered event is a no-op for the
      handler because its idempotency key is derived from the event id.
    - Every delivery runs with tenant_id, event_id, event_type and handler
      bound in ``LogContext``.
    - A permanent failure is logged as ``event_permanently_failed`` before
      the event is persisted.

Failure modes:
    - HandlerNotFoundError: ``publish``/``submit`` of an event type with no
      handler.  Raised to the caller, not parked.
    - FailedEventNotFoundError: ``replay_failed`` with an unknown id.
    - Errors while parking propagate; the event is then lost to the bus and
      the error log line is the only record.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig, RetryPolicy
from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import EventPermanentlyFailedError, FailedEventNotFoundError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_services.events import event_from_payload
from ledger_services.orm import FailedEventModel, FailedEventStatus
from ledger_services.registry import EventHandler, HandlerRegistry
from ledger_services.retry import RetryOutcome, RetryRunner

logger = get_logger("services.event_bus")


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one ``publish`` (or one replay)."""

    event_id: UUID
    event_type: str
    handler: str
    succeeded: bool
    attempts: int
    value: Any = None
    error: str | None = None
    error_code: str | None = None
    failed_event_id: UUID | None = None

    def raise_for_failure(self) -> None:
        if not self.succeeded:
            raise EventPermanentlyFailedError(
                self.event_type, str(self.event_id), self.attempts, self.error or "",
            )


@dataclass(frozen=True)
class FailedEventInfo:
    id: UUID
    tenant_id: UUID
    event_id: UUID
    event_type: str
    handler_name: str
    attempts: int
    error_code: str | None
    last_error: str | None
    status: FailedEventStatus
    failed_at: datetime
    replay_count: int
    resolved_at: datetime | None

    @classmethod
    def from_model(cls, row: FailedEventModel) -> FailedEventInfo:
        return cls(
            id=row.id,
            tenant_id=row.tenant_id,
            event_id=row.event_id,
            event_type=row.event_type,
            handler_name=row.handler_name,
            attempts=row.attempts,
            error_code=row.error_code,
            last_error=row.last_error,
            status=row.status,
            failed_at=row.failed_at,
            replay_count=row.replay_count,
            resolved_at=row.resolved_at,
        )


class EventBus:
    """
    Synchronous ``publish`` plus a worker pool for ``submit``.

    Non-goals:
        - No cross-process queue.  Durability of in-flight events is the
          producer's concern; only permanently failed events are stored.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        session_factory: Callable[[], Session],
        *,
        system_actor_id: UUID,
        retry_policy: RetryPolicy | None = None,
        clock: Clock | None = None,
        max_workers: int = 4,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.registry = registry
        self._session_factory = session_factory
        self._system_actor_id = system_actor_id
        self._clock = clock or SystemClock()
        self._runner = RetryRunner(retry_policy, sleep=sleep)
        self._max_workers = max_workers
        self._pool: ThreadPoolExecutor | None = None
        self._pool_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig,
        registry: HandlerRegistry,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> EventBus:
        return cls(
            registry,
            session_factory,
            system_actor_id=config.system_actor_id,
            retry_policy=config.retry,
            clock=clock,
            max_workers=config.event_bus.max_workers,
            sleep=sleep,
        )

    def register(self, handler: EventHandler) -> None:
        self.registry.register(handler)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def publish(self, event: Any) -> DeliveryResult:
        """
        Deliver ``event`` now, in the calling thread.

        Returns a failed ``DeliveryResult`` (with ``failed_event_id`` set)
        when the retry budget is exhausted; call ``raise_for_failure()`` to
        turn that into an exception.
        """
        handler = self.registry.get(event.event_type)
        with LogContext.bind(
            tenant_id=event.tenant_id,
            event_id=event.event_id,
            event_type=event.event_type,
            handler=handler.name,
        ):
            outcome = self._runner.run(lambda: handler.handle(event))
            if outcome.succeeded:
                logger.info("event_delivered", extra={"attempts": outcome.attempts})
                return DeliveryResult(
                    event_id=event.event_id,
                    event_type=event.event_type,
                    handler=handler.name,
                    succeeded=True,
                    attempts=outcome.attempts,
                    value=outcome.value,
                )
            failed_event_id = self._park(event, handler, outcome)
            return self._failed_result(event, handler, outcome, failed_event_id)

    def submit(self, event: Any) -> Future[DeliveryResult]:
        """Deliver ``event`` on the worker pool."""
        self.registry.get(event.event_type)
        return self._executor().submit(self.publish, event)

    def shutdown(self, wait: bool = True) -> None:
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=wait)
            logger.info("event_bus_shutdown", extra={"wait": wait})

    def _executor(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="ledger-bus",
                )
            return self._pool

    # ------------------------------------------------------------------
    # Permanent failures
    # ------------------------------------------------------------------

    def _park(self, event: Any, handler: EventHandler, outcome: RetryOutcome) -> UUID:
        error = outcome.error
        error_code = getattr(error, "code", None)
        logger.error(
            "event_permanently_failed",
            extra={
                "attempts": outcome.attempts,
                "error": str(error),
                "error_code": error_code,
                "error_type": type(error).__name__,
            },
        )
        with session_scope(self._session_factory) as session:
            row = FailedEventModel(
                tenant_id=event.tenant_id,
                event_id=event.event_id,
                event_type=event.event_type,
                handler_name=handler.name,
                payload=event.to_payload(),
                attempts=outcome.attempts,
                error_code=error_code,
                last_error=str(error),
                status=FailedEventStatus.FAILED,
                failed_at=self._clock.now_utc(),
                created_by_id=self._system_actor_id,
            )
            session.add(row)
            session.flush()
            failed_event_id = row.id
        logger.info("failed_event_parked", extra={"failed_event_id": str(failed_event_id)})
        return failed_event_id

    @staticmethod
    def _failed_result(
        event: Any, handler: EventHandler, outcome: RetryOutcome, failed_event_id: UUID,
    ) -> DeliveryResult:
        return DeliveryResult(
            event_id=event.event_id,
            event_type=event.event_type,
            handler=handler.name,
            succeeded=False,
            attempts=outcome.attempts,
            error=str(outcome.error),
            error_code=getattr(outcome.error, "code", None),
            failed_event_id=failed_event_id,
        )

    def failed_events(
        self, tenant_id: UUID | None = None, include_resolved: bool = False,
    ) -> list[FailedEventInfo]:
        with session_scope(self._session_factory) as session:
            stmt = select(FailedEventModel).order_by(FailedEventModel.failed_at)
            if tenant_id is not None:
                stmt = stmt.where(FailedEventModel.tenant_id == tenant_id)
            if not include_resolved:
                stmt = stmt.where(FailedEventModel.status == FailedEventStatus.FAILED)
            return [FailedEventInfo.from_model(row) for row in session.scalars(stmt)]

    def replay_failed(self, failed_event_id: UUID) -> DeliveryResult:
        """
        Redeliver a parked event under the same retry policy.

        On success the row is marked resolved.  On failure it stays parked
        with its attempt count, replay count and last error updated; no new
        row is written.

        Raises:
            FailedEventNotFoundError: No parked event with this id.
        """
        with session_scope(self._session_factory) as session:
            row = session.get(FailedEventModel, failed_event_id)
            if row is None:
                raise FailedEventNotFoundError(str(failed_event_id))
            event_type = row.event_type
            already_resolved = row.is_resolved
            event = event_from_payload(event_type, row.payload)

        handler = self.registry.get(event_type)
        if already_resolved:
            logger.info(
                "failed_event_already_resolved",
                extra={"failed_event_id": str(failed_event_id)},
            )
            return DeliveryResult(
                event_id=event.event_id,
                event_type=event_type,
                handler=handler.name,
                succeeded=True,
                attempts=0,
                failed_event_id=failed_event_id,
            )

        with LogContext.bind(
            tenant_id=event.tenant_id,
            event_id=event.event_id,
            event_type=event_type,
            handler=handler.name,
        ):
            outcome = self._runner.run(lambda: handler.handle(event))

            with session_scope(self._session_factory) as session:
                row = session.get(FailedEventModel, failed_event_id)
                row.replay_count += 1
                row.attempts += outcome.attempts
                row.updated_by_id = self._system_actor_id
                if outcome.succeeded:
                    row.status = FailedEventStatus.RESOLVED
                    row.resolved_at = self._clock.now_utc()
                else:
                    row.error_code = getattr(outcome.error, "code", None)
                    row.last_error = str(outcome.error)

            if outcome.succeeded:
                logger.info(
                    "failed_event_replayed",
                    extra={"failed_event_id": str(failed_event_id), "attempts": outcome.attempts},
                )
                return DeliveryResult(
                    event_id=event.event_id,
                    event_type=event_type,
                    handler=handler.name,
                    succeeded=True,
                    attempts=outcome.attempts,
                    value=outcome.value,
                    failed_event_id=failed_event_id,
                )

            logger.error(
                "failed_event_replay_failed",
                extra={
                    "failed_event_id": str(failed_event_id),
                    "attempts": outcome.attempts,
                    "error": str(outcome.error),
                },
            )
            return self._failed_result(event, handler, outcome, failed_event_id)
