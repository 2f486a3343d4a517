"""Permit Ledger package.

A per-account, append-only ledger of checked u128 calculations with reads
gated by offline-signed permits:

- Append-only logs over a primitive key/value store (memory or SQLite)
- Newest-first pagination with clamp-to-empty for out-of-range pages
- Ed25519 permits bound to a contract identity and a network identity
- Per-account permit revocation

Convenience imports
------------------
These are available at the package root and loaded lazily:

    from permit_ledger import CalculatorContract, ContractEnv, create_app
    from permit_ledger import Permit, PermitSigner, PermitAuthorizer
"""

from __future__ import annotations

import re
from importlib import import_module
from pathlib import Path
from typing import Any


def _read_version_from_pyproject() -> str | None:
    """Best-effort version discovery for dev/test environments."""

    try:
        pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
        txt = pyproject.read_text(encoding="utf-8")
        m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
        return m.group(1) if m else None
    except OSError:
        return None


__version__ = _read_version_from_pyproject() or "0.3.0"

__all__ = [
    "__version__",
    "CalculatorContract",
    "ContractEnv",
    "create_app",
    "KeyedLedgerStore",
    "CalculationRecord",
    "Operation",
    "Permit",
    "PermitSigner",
    "PermitAuthorizer",
    "QueryGateway",
    "LedgerError",
]

# Lazy export map: name -> (module, attribute)
_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "CalculatorContract": ("permit_ledger.contract", "CalculatorContract"),
    "ContractEnv": ("permit_ledger.contract", "ContractEnv"),
    "create_app": ("permit_ledger.server", "create_app"),
    "KeyedLedgerStore": ("permit_ledger.ledger", "KeyedLedgerStore"),
    "CalculationRecord": ("permit_ledger.ledger", "CalculationRecord"),
    "Operation": ("permit_ledger.ledger", "Operation"),
    "Permit": ("permit_ledger.permits", "Permit"),
    "PermitSigner": ("permit_ledger.permits", "PermitSigner"),
    "PermitAuthorizer": ("permit_ledger.authorizer", "PermitAuthorizer"),
    "QueryGateway": ("permit_ledger.gateway", "QueryGateway"),
    "LedgerError": ("permit_ledger.errors", "LedgerError"),
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        value = getattr(import_module(module_name), attr)
        globals()[name] = value
        return value
    raise AttributeError(f"module 'permit_ledger' has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_LAZY_EXPORTS.keys())))
