"""
ORM-level immutability enforcement for posted journal data.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements for ORM
objects reach the database.  The listeners below inspect attribute history
and raise ImmutabilityViolationError, which aborts the flush and with it the
surrounding transaction:

    session.flush()
         |
         v
    [before_update] --> _check_journal_entry_update()  --> ImmutabilityViolationError
    [before_delete] --> _check_journal_entry_delete()  -/
    [before_update] --> _check_journal_line_update()   -/
    [before_delete] --> _check_journal_line_delete()   -/
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When immutable               | Still writable
----------------|------------------------------|------------------------------
JournalEntry    | status is POSTED or REVERSED | POSTED -> REVERSED, together
                |                              | with reversed_by_id, and the
                |                              | updated_at / updated_by_id
                |                              | audit columns
JournalLine     | parent entry is not DRAFT    | nothing

Bulk ``UPDATE``/``DELETE`` statements bypass mapper events.  The journal
service never issues them against journal tables; the cached account
balance is the only column it updates in bulk.

===============================================================================
USAGE
===============================================================================

Registered by ``init_engine_from_url``.  Tests that need to corrupt posted
data on purpose call ``unregister_immutability_listeners()`` and register
again afterwards.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})
_REVERSAL_FIELDS = frozenset({"status", "reversed_by_id"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_journal_entry_update(mapper, connection, target):
    """
    Block changes to an entry that was already posted or reversed.

    DRAFT -> POSTED is the posting itself and passes.  POSTED -> REVERSED
    passes when nothing but the reversal link and audit columns change.
    """
    from ledger_kernel.models.journal import JournalEntryStatus

    status_history = get_history(target, "status")
    if status_history.deleted:
        old_status = status_history.deleted[0]
    else:
        old_status = target.status

    if old_status == JournalEntryStatus.DRAFT:
        return

    reversing = (
        old_status == JournalEntryStatus.POSTED
        and target.status == JournalEntryStatus.REVERSED
    )
    allowed = _AUDIT_FIELDS | _REVERSAL_FIELDS if reversing else _AUDIT_FIELDS

    insp = inspect(target)
    for attr in insp.mapper.column_attrs:
        if attr.key in allowed:
            continue
        if insp.attrs[attr.key].history.has_changes():
            _blocked(
                "JournalEntry",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on {old_status.value} journal entry",
                field=attr.key,
            )

    if not reversing and status_history.has_changes():
        _blocked(
            "JournalEntry",
            target.id,
            "UPDATE",
            f"Cannot move journal entry from {old_status.value} to {target.status.value}",
            field="status",
        )


def _check_journal_entry_delete(mapper, connection, target):
    from ledger_kernel.models.journal import JournalEntryStatus

    if target.status != JournalEntryStatus.DRAFT:
        _blocked(
            "JournalEntry",
            target.id,
            "DELETE",
            f"{target.status.value.capitalize()} journal entries cannot be deleted",
        )


def _check_journal_line_update(mapper, connection, target):
    from ledger_kernel.models.journal import JournalEntryStatus

    if target.entry is not None and target.entry.status != JournalEntryStatus.DRAFT:
        _blocked(
            "JournalLine",
            target.id,
            "UPDATE",
            "Journal lines cannot be modified after the entry is posted",
        )


def _check_journal_line_delete(mapper, connection, target):
    from ledger_kernel.models.journal import JournalEntryStatus

    if target.entry is not None and target.entry.status != JournalEntryStatus.DRAFT:
        _blocked(
            "JournalLine",
            target.id,
            "DELETE",
            "Journal lines cannot be deleted after the entry is posted",
        )


_LISTENERS = (
    ("JournalEntry", "before_update", _check_journal_entry_update),
    ("JournalEntry", "before_delete", _check_journal_entry_delete),
    ("JournalLine", "before_update", _check_journal_line_update),
    ("JournalLine", "before_delete", _check_journal_line_delete),
)


def _targets():
    from ledger_kernel.models.journal import JournalEntry, JournalLine

    return {"JournalEntry": JournalEntry, "JournalLine": JournalLine}


def register_immutability_listeners() -> None:
    """Install the listeners.  Safe to call more than once."""
    targets = _targets()
    for model_name, identifier, fn in _LISTENERS:
        model = targets[model_name]
        if not event.contains(model, identifier, fn):
            event.listen(model, identifier, fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """Remove the listeners.  FOR TESTING ONLY."""
    targets = _targets()
    for model_name, identifier, fn in _LISTENERS:
        model = targets[model_name]
        if event.contains(model, identifier, fn):
            event.remove(model, identifier, fn)
    logger.debug("immutability_listeners_unregistered")
