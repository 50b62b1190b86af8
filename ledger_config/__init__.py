"""
ledger_config -- single public entrypoint for back-office configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration sits above ``ledger_kernel`` and below
    ``ledger_services``.  The kernel never imports from here; services
    receive a ``LedgerConfig`` and pass plain values down.

Failure modes:
    - ``FileNotFoundError`` -- the selected YAML file does not exist.
    - ``ConfigurationError`` -- the file is structurally invalid.

Audit relevance:
    Every successful ``get_active_config()`` call logs a ``config_loaded``
    entry with the source path and the account codes in force, tying
    postings to the configuration that selected their accounts.
"""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

from ledger_config.loader import load_yaml_file, parse_config
from ledger_config.schema import (
    AccountCodes,
    DatabaseConfig,
    LedgerConfig,
    NumberingConfig,
    RoleGates,
)
from ledger_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_ENV_VAR = "LEDGER_CONFIG"
DATABASE_URL_ENV_VAR = "LEDGER_DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``path`` argument, then the
    ``LEDGER_CONFIG`` environment variable, then the packaged
    ``defaults.yaml``.  ``LEDGER_DATABASE_URL`` overrides database.url.
    """
    source = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    config = parse_config(load_yaml_file(source))

    url_override = os.environ.get(DATABASE_URL_ENV_VAR)
    if url_override:
        config = replace(config, database=replace(config.database, url=url_override))

    _logger.info(
        "config_loaded",
        extra={
            "config_path": str(source),
            "account_codes": config.accounts.all_codes(),
            "database_dialect": config.database.url.split(":", 1)[0],
        },
    )
    return config


__all__ = [
    "AccountCodes",
    "DatabaseConfig",
    "LedgerConfig",
    "NumberingConfig",
    "RoleGates",
    "get_active_config",
]
