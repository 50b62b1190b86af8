"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML file and parses it into the frozen ``ledger_config.schema``
dataclasses.  The single public entry point for runtime config is
``ledger_config.get_active_config()``.

Invariants enforced
-------------------
* Every payment method is mapped, and only onto ``cash`` or ``bank``.
* Every account code is a non-empty string.
* Every parsed object is a frozen dataclass from ``schema.py``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Structurally invalid content -> ``ConfigurationError``.
"""

from __future__ import annotations

from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    AccountCodes,
    DatabaseConfig,
    LedgerConfig,
    NumberingConfig,
    RoleGates,
)
from ledger_kernel.exceptions import ConfigurationError
from ledger_kernel.models.payment import PaymentMethod

_CASH_SLOTS = ("cash", "bank")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _known_keys(cls: type, data: dict[str, Any], section: str) -> dict[str, Any]:
    allowed = {f.name for f in fields(cls)}
    unknown = set(data) - allowed
    if unknown:
        raise ConfigurationError(
            f"Unknown keys in '{section}': {', '.join(sorted(unknown))}"
        )
    return data


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    data = _known_keys(DatabaseConfig, data, "database")
    if not data.get("url"):
        raise ConfigurationError("database.url is required")
    return DatabaseConfig(**data)


def parse_accounts(data: dict[str, Any]) -> AccountCodes:
    data = _known_keys(AccountCodes, data, "accounts")
    codes = {key: str(value) for key, value in data.items()}
    for key, value in codes.items():
        if not value.strip():
            raise ConfigurationError(f"accounts.{key} must be a non-empty code")
    return AccountCodes(**codes)


def parse_payment_methods(data: dict[str, Any]) -> dict[str, str]:
    """Parse the payment method table; every method must be mapped."""
    valid = {m.value for m in PaymentMethod}
    unknown = set(data) - valid
    if unknown:
        raise ConfigurationError(
            f"Unknown payment methods: {', '.join(sorted(unknown))}"
        )
    missing = valid - set(data)
    if missing:
        raise ConfigurationError(
            f"Payment methods without an account: {', '.join(sorted(missing))}"
        )
    for method, slot in data.items():
        if slot not in _CASH_SLOTS:
            raise ConfigurationError(
                f"payment_methods.{method} must be one of {_CASH_SLOTS}, got {slot!r}"
            )
    return dict(data)


def parse_numbering(data: dict[str, Any]) -> NumberingConfig:
    data = _known_keys(NumberingConfig, data, "numbering")
    return NumberingConfig(**data)


def parse_roles(data: dict[str, Any]) -> RoleGates:
    data = _known_keys(RoleGates, data, "roles")
    return RoleGates(**{key: tuple(value or ()) for key, value in data.items()})


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a full ``LedgerConfig`` from a dict.

    Preconditions:
        - ``data`` contains a ``database`` section with a ``url``.
    Raises:
        ConfigurationError: on missing or invalid sections.
    """
    if "database" not in data:
        raise ConfigurationError("Configuration is missing the 'database' section")

    try:
        tolerance = Decimal(str(data.get("report_tolerance", "0.01")))
    except InvalidOperation as exc:
        raise ConfigurationError("report_tolerance must be a decimal") from exc

    kwargs: dict[str, Any] = {
        "database": parse_database(data["database"]),
        "report_tolerance": tolerance,
        "log_level": str(data.get("log_level", "INFO")).upper(),
    }
    if "accounts" in data:
        kwargs["accounts"] = parse_accounts(data["accounts"])
    if "payment_methods" in data:
        kwargs["payment_methods"] = parse_payment_methods(data["payment_methods"])
    if "numbering" in data:
        kwargs["numbering"] = parse_numbering(data["numbering"])
    if "roles" in data:
        kwargs["roles"] = parse_roles(data["roles"])
    return LedgerConfig(**kwargs)
