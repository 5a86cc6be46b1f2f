"""
Configuration loader (``ledger_config.loader``).

Responsibility
--------------
Reads the ledger YAML file and parses it into the frozen dataclasses of
``ledger_config.schema``.  Runtime callers go through
``ledger_config.get_active_config()``; the functions here are its building
blocks and are used directly by tests.

Invariants enforced
-------------------
* Parse and validation errors raise ``ValueError`` or ``KeyError`` naming the
  offending key.  Required keys have no silent defaults.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from ledger_config.schema import (
    AccountDefinition,
    EventBusConfig,
    InvoiceConfig,
    LedgerConfig,
    NumberingConfig,
    PaymentConfig,
    RetryPolicy,
)

ACCOUNT_CLASSES = frozenset({"asset", "liability", "equity", "revenue", "expense"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_account(data: dict[str, Any]) -> AccountDefinition:
    account_class = str(data["class"]).lower()
    if account_class not in ACCOUNT_CLASSES:
        raise ValueError(
            f"Account {data.get('code')!r}: unknown account class '{account_class}'"
        )
    return AccountDefinition(
        code=str(data["code"]),
        name=data["name"],
        account_class=account_class,
        sub_type=data.get("sub_type"),
        parent_code=str(data["parent"]) if data.get("parent") is not None else None,
    )


def parse_retry_policy(data: dict[str, Any]) -> RetryPolicy:
    policy = RetryPolicy(
        max_attempts=int(data.get("max_attempts", 3)),
        backoff_seconds=float(data.get("backoff_seconds", 10.0)),
        non_retryable_codes=tuple(data.get("non_retryable_codes") or ()),
    )
    if policy.max_attempts < 1:
        raise ValueError(f"retry.max_attempts must be >= 1, got {policy.max_attempts}")
    if policy.backoff_seconds < 0:
        raise ValueError(
            f"retry.backoff_seconds must be >= 0, got {policy.backoff_seconds}"
        )
    return policy


def parse_numbering(data: dict[str, Any]) -> NumberingConfig:
    return NumberingConfig(**{k: str(v) for k, v in data.items()})


def parse_invoices(data: dict[str, Any]) -> InvoiceConfig:
    return InvoiceConfig(
        prefix=str(data.get("prefix", "INV")),
        purchase_prefix=str(data.get("purchase_prefix", "APINV")),
        payment_terms_days=int(data.get("payment_terms_days", 30)),
    )


def parse_payments(data: dict[str, Any]) -> PaymentConfig:
    return PaymentConfig(**{k: str(v) for k, v in data.items()})


def parse_event_bus(data: dict[str, Any]) -> EventBusConfig:
    workers = int(data.get("max_workers", 4))
    if workers < 1:
        raise ValueError(f"event_bus.max_workers must be >= 1, got {workers}")
    return EventBusConfig(max_workers=workers)


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Build a validated ``LedgerConfig`` from the parsed YAML mapping.

    The checksum covers the raw mapping, so it identifies the file content
    independently of later environment overrides.
    """
    accounts = {
        role: parse_account(spec) for role, spec in (data.get("accounts") or {}).items()
    }

    inventory = data.get("inventory") or {}
    contra = {str(k).upper(): v for k, v in (inventory.get("contra_accounts") or {}).items()}
    default_contra = inventory.get("default_contra", "inventory_adjustment")

    for movement_type, role in {**contra, "<default>": default_contra}.items():
        if role not in accounts:
            raise ValueError(
                f"inventory contra for {movement_type} refers to unknown role '{role}'"
            )

    chart = tuple(parse_account(spec) for spec in (data.get("standard_chart") or ()))
    chart_codes = {a.code for a in chart}
    for definition in chart:
        if definition.parent_code and definition.parent_code not in chart_codes:
            raise ValueError(
                f"standard_chart account {definition.code} has unknown parent "
                f"{definition.parent_code}"
            )

    payments = parse_payments(data.get("payments") or {})
    if chart_codes:
        for key in ("cash_account", "receivable_account"):
            code = getattr(payments, key)
            if code not in chart_codes:
                raise ValueError(f"payments.{key} {code} is not in the standard_chart")

    return LedgerConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        default_currency=str(data.get("default_currency", "USD")).upper(),
        system_actor_id=UUID(str(data["system_actor_id"])),
        database_url=data.get("database_url"),
        accounts=accounts,
        inventory_contra=contra,
        inventory_default_contra=default_contra,
        inventory_movement_types=tuple(
            str(t).upper() for t in (inventory.get("movement_types") or contra)
        ),
        retry=parse_retry_policy(data.get("retry") or {}),
        numbering=parse_numbering(data.get("numbering") or {}),
        invoices=parse_invoices(data.get("invoices") or {}),
        payments=payments,
        event_bus=parse_event_bus(data.get("event_bus") or {}),
        standard_chart=chart,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
