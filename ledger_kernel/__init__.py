"""
Ledger Kernel

A multi-tenant double-entry ledger with:
- Balanced, atomic journal posting
- Fiscal period gating
- Idempotent posting keyed on originating events
- Race-safe provisioning of well-known system accounts
- Mirror-entry reversals
"""

__version__ = "0.1.0"
