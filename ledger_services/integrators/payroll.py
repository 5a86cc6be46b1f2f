"""
PayrollIntegrator -- posts a processed payroll run to the general ledger.

Debits (each only when positive):
    salary_expense             gross salary
    employer_tax_expense       employer tax
    employer_benefits_expense  employer benefits

Credits (each only when positive):
    employee_tax_payable       employee tax withheld
    other_deductions_payable   other deductions
    salaries_payable           net salary
    employer_tax_payable       employer tax
    employer_benefits_payable  employer benefits

The employer tax and benefits pairs balance each other; the employee side
balances only when gross == tax + deductions + net, which the journal
engine enforces.

A redelivered event finds its entry by idempotency key and is logged as
payroll_journal_already_posted without touching the ledger.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import EntryLine
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import PostingSource
from ledger_services.events import PayrollProcessed
from ledger_services.integrators.base import EventIntegrator, IntegrationResult

logger = get_logger("integrators.payroll")

# (role, side, amount attribute, line description)
_PAYROLL_LINES: tuple[tuple[str, str, str, str], ...] = (
    ("salary_expense", "debit", "gross_salary", "Gross salary expense"),
    ("employer_tax_expense", "debit", "employer_tax_amount", "Employer tax expense"),
    ("employer_benefits_expense", "debit", "employer_benefits_amount", "Employer benefits expense"),
    ("employee_tax_payable", "credit", "employee_tax_amount", "Employee tax withholding"),
    ("other_deductions_payable", "credit", "other_deductions_amount", "Other deductions"),
    ("salaries_payable", "credit", "net_salary", "Net salary payable to employees"),
    ("employer_tax_payable", "credit", "employer_tax_amount", "Employer tax payable"),
    ("employer_benefits_payable", "credit", "employer_benefits_amount", "Employer benefits payable"),
)


class PayrollIntegrator(EventIntegrator):
    name = "payroll_journal"
    event_type = PayrollProcessed.event_type

    def process(self, session: Session, event: PayrollProcessed) -> IntegrationResult:
        payroll = event.payroll
        tenant_id = event.tenant_id
        journal = self.journal(session)
        key = self.idempotency_key(event)

        existing = journal.find_by_idempotency_key(tenant_id, key)
        if existing is not None:
            logger.info(
                "payroll_journal_already_posted",
                extra={
                    "payroll_id": payroll.payroll_id,
                    "payroll_number": payroll.payroll_number,
                    "entry_id": str(existing.id),
                    "entry_number": existing.entry_number,
                },
            )
            return IntegrationResult(
                record_id=existing.id,
                record_number=existing.entry_number,
                amount=existing.total_debit,
            )

        lines: list[EntryLine] = []
        for role, side, attr, description in _PAYROLL_LINES:
            amount: Decimal = getattr(payroll, attr)
            if amount <= ZERO:
                continue
            account = self.provision(session, tenant_id, role)
            lines.append(
                EntryLine(
                    account_id=account.id,
                    debit=amount if side == "debit" else ZERO,
                    credit=amount if side == "credit" else ZERO,
                    description=description,
                )
            )

        if not lines:
            logger.info(
                "payroll_journal_skipped",
                extra={"payroll_id": payroll.payroll_id, "reason": "no_amounts"},
            )
            return IntegrationResult.skip("no_amounts")

        entry = journal.post_entry(
            tenant_id,
            payroll.payment_date or self._clock.today(),
            f"Payroll for period {payroll.period_start} to {payroll.period_end}",
            lines,
            reference_type="payroll",
            reference_id=payroll.payroll_id,
            reference_number=payroll.payroll_number,
            actor_id=self.actor_id,
            currency=payroll.currency or self.config.default_currency,
            source=PostingSource.SYSTEM,
            idempotency_key=key,
            number_prefix=self.config.numbering.payroll,
        )

        logger.info(
            "payroll_journal_posted",
            extra={
                "payroll_id": payroll.payroll_id,
                "payroll_number": payroll.payroll_number,
                "period_start": str(payroll.period_start),
                "period_end": str(payroll.period_end),
                "gross_salary": str(payroll.gross_salary),
                "net_salary": str(payroll.net_salary),
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
            },
        )
        return IntegrationResult(
            record_id=entry.id,
            record_number=entry.entry_number,
            amount=entry.total_debit,
        )
