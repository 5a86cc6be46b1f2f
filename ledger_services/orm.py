"""
ORM model for parked event deliveries.

Contract:
    FailedEventModel keeps every event whose retry budget ran out, with the
    full payload, so ``EventBus.replay_failed`` can rebuild and redeliver it.
    Rows are resolved, never deleted.

Architecture: ledger_services.  Imports from ledger_kernel.db only.  The
table is registered on the shared metadata as soon as ``ledger_services``
is imported, so ``create_tables()`` picks it up.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.db.types import enum_column


class FailedEventStatus(str, Enum):
    FAILED = "failed"
    RESOLVED = "resolved"


class FailedEventModel(TenantScopedBase):
    __tablename__ = "failed_events"

    __table_args__ = (
        Index("ix_failed_events_status", "status"),
        Index("ix_failed_events_event_id", "event_id"),
    )

    event_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    handler_name: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[FailedEventStatus] = mapped_column(
        enum_column(FailedEventStatus, length=10),
        default=FailedEventStatus.FAILED,
        nullable=False,
    )
    failed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    replay_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    @property
    def is_resolved(self) -> bool:
        return self.status == FailedEventStatus.RESOLVED

    def __repr__(self) -> str:
        return (
            f"<FailedEvent {self.event_type} {self.event_id} "
            f"{self.status.value if self.status else None} attempts={self.attempts}>"
        )
