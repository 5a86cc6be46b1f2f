"""Small helpers shared by the ledger kernel and its integrators."""

from ledger_kernel.utils.idempotency import (
    generate_idempotency_key,
    parse_idempotency_key,
)

__all__ = ["generate_idempotency_key", "parse_idempotency_key"]
