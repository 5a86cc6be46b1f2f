"""
Idempotency key generation utilities.

An integrator posting is keyed on the handler that consumed the event, the
event type and the originating event id.  The key is stored on the
JournalEntry (or Invoice) under a (tenant_id, idempotency_key) unique
constraint, so a re-delivered event resolves to the row it already produced.
"""

from uuid import UUID


def generate_idempotency_key(
    handler: str,
    event_type: str,
    event_id: UUID | str,
) -> str:
    """
    Build the idempotency key for one handler's reaction to one event.

    Format: handler:event_type:event_id

    Example:
        >>> generate_idempotency_key("payroll", "hr.payroll_processed", uuid)
        "payroll:hr.payroll_processed:550e8400-e29b-41d4-a716-446655440000"
    """
    return f"{handler}:{event_type}:{event_id}"


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Split an idempotency key into (handler, event_type, event_id).

    Raises:
        ValueError: If the key does not have three parts.
    """
    parts = key.split(":", 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]
