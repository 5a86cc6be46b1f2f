"""
PeriodService -- the Fiscal Period Gate.

Responsibility:
    Owns the fiscal period lifecycle (OPEN -> CLOSED -> LOCKED) and decides
    whether a date may receive postings.

Architecture position:
    Kernel > Services.  JournalService calls ``period_for`` and
    ``assert_postable`` on every posting path, before anything is written.

Invariants enforced:
    - A posting needs an OPEN period covering its entry date.  There is no
      database constraint behind this; ``assert_postable`` is the only
      enforcement point.
    - Periods of one tenant never overlap.
    - Status transitions are one-way.

Concurrency:
    Posting paths read the period with a shared row lock (``lock=True``);
    close_period and lock_period take an exclusive one.  On PostgreSQL a
    close therefore waits for in-flight postings to the period, and a
    posting queued behind a close sees the CLOSED status.  SQLite ignores
    row locks; its single writer serializes the two instead.

Failure modes:
    - PeriodNotFoundError: No period covers the date.
    - PeriodNotOpenError: Period is CLOSED or LOCKED.
    - PeriodOverlapError: New range overlaps an existing period.
    - InvalidPeriodTransitionError: close of a non-open period, lock of a
      non-closed period.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    InvalidPeriodTransitionError,
    PeriodNotFoundError,
    PeriodNotOpenError,
    PeriodOverlapError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus, PeriodType
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period")


class PeriodService(BaseService[FiscalPeriod]):
    """
    Fiscal period lifecycle and the posting gate.

    Non-goals:
        - Reopening a closed period is an out-of-band administrative
          operation and is not offered here.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    def period_for(self, tenant_id: UUID, entry_date: date, *, lock: bool = False) -> FiscalPeriod:
        """
        The period whose window contains ``entry_date``.

        With ``lock`` the row is read with a shared lock (FOR SHARE on
        PostgreSQL) held until the transaction ends, and its status is
        re-read from the database.

        Raises:
            PeriodNotFoundError: No period of the tenant covers the date.
        """
        stmt = select(FiscalPeriod).where(
            FiscalPeriod.tenant_id == tenant_id,
            FiscalPeriod.start_date <= entry_date,
            FiscalPeriod.end_date >= entry_date,
        )
        period = self.session.execute(self._shared(stmt) if lock else stmt).scalar_one_or_none()

        if period is None:
            raise PeriodNotFoundError(str(entry_date))
        return period

    def assert_postable(self, period: FiscalPeriod, entry_date: date | None = None) -> None:
        """
        Raises:
            PeriodNotOpenError: Unless the period is OPEN.
        """
        if not period.can_accept_entries:
            logger.warning(
                "period_closed_violation",
                extra={
                    "tenant_id": str(period.tenant_id),
                    "period_name": period.name,
                    "period_status": period.status.value,
                    "entry_date": str(entry_date) if entry_date else None,
                },
            )
            raise PeriodNotOpenError(
                period.name,
                period.status.value,
                str(entry_date) if entry_date else "",
            )

    def is_date_open(self, tenant_id: UUID, entry_date: date) -> bool:
        try:
            period = self.period_for(tenant_id, entry_date)
        except PeriodNotFoundError:
            return False
        return period.can_accept_entries

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_period(
        self,
        tenant_id: UUID,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        period_type: PeriodType = PeriodType.MONTH,
        fiscal_year: int | None = None,
    ) -> FiscalPeriod:
        """
        Create an OPEN period.

        ``fiscal_year`` defaults to the year of ``start_date``.

        Raises:
            ValueError: start_date is after end_date.
            PeriodOverlapError: The range overlaps another period of the
                tenant.
        """
        if start_date > end_date:
            raise ValueError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})"
            )

        self._validate_no_overlap(tenant_id, name, start_date, end_date)

        period = FiscalPeriod(
            tenant_id=tenant_id,
            name=name,
            period_type=period_type,
            fiscal_year=fiscal_year if fiscal_year is not None else start_date.year,
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.OPEN,
            created_by_id=actor_id,
        )
        self.session.add(period)
        self.session.flush()

        logger.info(
            "period_created",
            extra={
                "tenant_id": str(tenant_id),
                "period_name": name,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return period

    def _validate_no_overlap(
        self,
        tenant_id: UUID,
        new_period_name: str,
        start_date: date,
        end_date: date,
    ) -> None:
        # Two ranges overlap if start1 <= end2 and start2 <= end1
        overlapping = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.start_date <= end_date,
                FiscalPeriod.end_date >= start_date,
            )
            .order_by(FiscalPeriod.start_date)
            .limit(1)
        ).scalar_one_or_none()

        if overlapping is not None:
            raise PeriodOverlapError(
                new_period_name=new_period_name,
                existing_period_name=overlapping.name,
                overlap_start=str(max(start_date, overlapping.start_date)),
                overlap_end=str(min(end_date, overlapping.end_date)),
            )

    def close_period(self, tenant_id: UUID, period_id: UUID, actor_id: UUID) -> FiscalPeriod:
        """
        OPEN -> CLOSED.

        The row is locked first so two concurrent closes serialize and the
        second sees CLOSED.
        """
        period = self._get_for_update(tenant_id, period_id)

        if not period.is_open:
            raise InvalidPeriodTransitionError(
                period.name, period.status.value, PeriodStatus.CLOSED.value,
            )

        period.status = PeriodStatus.CLOSED
        period.closed_at = self._clock.now_utc()
        period.closed_by_id = actor_id
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "period_closed",
            extra={"tenant_id": str(tenant_id), "period_name": period.name},
        )
        return period

    def lock_period(self, tenant_id: UUID, period_id: UUID, actor_id: UUID) -> FiscalPeriod:
        """CLOSED -> LOCKED.  Terminal."""
        period = self._get_for_update(tenant_id, period_id)

        if not period.is_closed:
            raise InvalidPeriodTransitionError(
                period.name, period.status.value, PeriodStatus.LOCKED.value,
            )

        period.status = PeriodStatus.LOCKED
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "period_locked",
            extra={"tenant_id": str(tenant_id), "period_name": period.name},
        )
        return period

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, tenant_id: UUID, period_id: UUID, *, lock: bool = False) -> FiscalPeriod:
        stmt = select(FiscalPeriod).where(
            FiscalPeriod.tenant_id == tenant_id,
            FiscalPeriod.id == period_id,
        )
        period = self.session.execute(self._shared(stmt) if lock else stmt).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    @staticmethod
    def _shared(stmt: Select) -> Select:
        return stmt.with_for_update(read=True).execution_options(populate_existing=True)

    def _get_for_update(self, tenant_id: UUID, period_id: UUID) -> FiscalPeriod:
        period = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.id == period_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    def open_periods(self, tenant_id: UUID) -> list[FiscalPeriod]:
        return list(
            self.session.execute(
                select(FiscalPeriod)
                .where(
                    FiscalPeriod.tenant_id == tenant_id,
                    FiscalPeriod.status == PeriodStatus.OPEN,
                )
                .order_by(FiscalPeriod.start_date)
            ).scalars()
        )

    def current_period(self, tenant_id: UUID, as_of: date | None = None) -> FiscalPeriod | None:
        """Period containing ``as_of`` (default: the clock's today), if any."""
        try:
            return self.period_for(tenant_id, as_of or self._clock.today())
        except PeriodNotFoundError:
            return None

    def periods_for_year(self, tenant_id: UUID, fiscal_year: int) -> list[FiscalPeriod]:
        return list(
            self.session.execute(
                select(FiscalPeriod)
                .where(
                    FiscalPeriod.tenant_id == tenant_id,
                    FiscalPeriod.fiscal_year == fiscal_year,
                )
                .order_by(FiscalPeriod.start_date)
            ).scalars()
        )
