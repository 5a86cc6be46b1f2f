"""
Module: ledger_kernel.models.fiscal_period
Responsibility: ORM persistence for fiscal periods -- the calendar windows
    that decide which dates may receive postings.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Periods of one tenant never overlap (PeriodService.create_period).
    - Status moves open -> closed -> locked and never back.
    - Only an OPEN period accepts postings.  There is no database constraint
      for this; PeriodService.assert_postable is the sole gate and every
      posting path calls it.

Failure modes:
    - PeriodNotOpenError raised by the gate for closed or locked periods.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.db.types import enum_column


class PeriodStatus(str, Enum):
    """Fiscal period lifecycle.

    Contract: OPEN -> CLOSED -> LOCKED, one way.
    """

    OPEN = "open"
    CLOSED = "closed"
    LOCKED = "locked"


class PeriodType(str, Enum):
    YEAR = "year"
    QUARTER = "quarter"
    MONTH = "month"


class FiscalPeriod(TenantScopedBase):
    """
    A fiscal window with a posting status.

    Contract:
        ``contains_date`` is inclusive on both ends.  ``can_accept_entries``
        is true only for OPEN periods.
    """

    __tablename__ = "fiscal_periods"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_period_tenant_name"),
        Index("idx_period_tenant_dates", "tenant_id", "start_date", "end_date"),
    )

    # e.g. "FY2024", "2024-Q1", "2024-01"
    name: Mapped[str] = mapped_column(String(50), nullable=False)

    period_type: Mapped[PeriodType] = mapped_column(
        enum_column(PeriodType, length=10),
        nullable=False,
        default=PeriodType.MONTH,
    )

    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        enum_column(PeriodStatus, length=10),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<FiscalPeriod {self.name} {self.start_date}..{self.end_date} {self.status.value}>"

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED

    @property
    def is_locked(self) -> bool:
        return self.status == PeriodStatus.LOCKED

    @property
    def can_accept_entries(self) -> bool:
        return self.is_open

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date
