"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the only way services, integrators and the
    event bus obtain configuration.  No other package reads the YAML file or
    the ``LEDGER_*`` environment variables.

Architecture position:
    Sits beside ``ledger_kernel`` and below ``ledger_services``.  The kernel
    never imports from here; callers pass plain values (prefixes, currency,
    terms) into kernel services.

Environment:
    LEDGER_CONFIG_PATH   -- YAML file to load instead of the shipped defaults.
    LEDGER_DATABASE_URL  -- overrides ``database_url`` from the file.

Audit relevance:
    Every successful call emits a ``ledger_config_loaded`` record with the
    config id, version and checksum of the file that was loaded.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from ledger_config.loader import load_yaml_file, parse_config
from ledger_config.schema import (
    AccountDefinition,
    EventBusConfig,
    InvoiceConfig,
    LedgerConfig,
    NumberingConfig,
    PaymentConfig,
    RetryPolicy,
)

_logger = logging.getLogger("ledger.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "ledger.yaml"


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """
    Load, validate and return the ledger configuration.

    Resolution order for the file: ``path`` argument, ``LEDGER_CONFIG_PATH``,
    then the shipped ``defaults/ledger.yaml``.

    Raises:
        FileNotFoundError: The resolved file does not exist.
        ValueError: The file fails validation.
    """
    resolved = Path(path or os.environ.get("LEDGER_CONFIG_PATH") or DEFAULT_CONFIG_PATH)
    config = parse_config(load_yaml_file(resolved))

    database_url = os.environ.get("LEDGER_DATABASE_URL")
    if database_url:
        config = dataclasses.replace(config, database_url=database_url)

    _logger.info(
        "ledger_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(resolved),
            "role_count": len(config.accounts),
        },
    )
    return config


__all__ = [
    "AccountDefinition",
    "DEFAULT_CONFIG_PATH",
    "EventBusConfig",
    "InvoiceConfig",
    "LedgerConfig",
    "NumberingConfig",
    "PaymentConfig",
    "RetryPolicy",
    "get_active_config",
]
