"""Stable error taxonomy for the permit ledger.

A single exception type carries a machine-readable `code` so that the
contract, the HTTP layer and tests agree on what went wrong without parsing
messages.

- `code`: stable string for programmatic handling.
- `http_status`: used by the transport layer.
- `details`: structured context (never storage keys or layout).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional


# Arithmetic
LEDGER_E_OVERFLOW = "LEDGER_E_OVERFLOW"
LEDGER_E_UNDERFLOW = "LEDGER_E_UNDERFLOW"
LEDGER_E_INVALID_DIVISOR = "LEDGER_E_INVALID_DIVISOR"

# Lifecycle
LEDGER_E_UNINITIALIZED = "LEDGER_E_UNINITIALIZED"
LEDGER_E_ALREADY_INITIALIZED = "LEDGER_E_ALREADY_INITIALIZED"

# Authorization
LEDGER_E_AUTH_FAILURE = "LEDGER_E_AUTH_FAILURE"
LEDGER_E_AUTH_REQUIRED = "LEDGER_E_AUTH_REQUIRED"

# Storage
LEDGER_E_STORAGE_IO = "LEDGER_E_STORAGE_IO"

# Generic
LEDGER_E_BAD_REQUEST = "LEDGER_E_BAD_REQUEST"


class AuthFailureKind(str, Enum):
    """Sub-kinds of LEDGER_E_AUTH_FAILURE. Never collapsed to a generic error."""

    BAD_SIGNATURE = "BadSignature"
    CHAIN_MISMATCH = "ChainMismatch"
    REVOKED = "Revoked"
    MALFORMED = "Malformed"
    MISSING_PERMISSION = "MissingPermission"


@dataclass
class LedgerError(Exception):
    """Base ledger exception with stable error code."""

    code: str
    message: str
    retryable: bool = False
    http_status: int = 400
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> Optional[str]:
        """Authorization sub-kind, if this is an authorization failure."""
        return self.details.get("kind")

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": bool(self.retryable),
            "http_status": int(self.http_status),
        }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


def ledger_error(
    code: str,
    message: str,
    *,
    retryable: bool = False,
    http_status: int = 400,
    **details: Any,
) -> LedgerError:
    return LedgerError(code=code, message=message, retryable=retryable, http_status=http_status, details=details)


def auth_failure(kind: AuthFailureKind, message: str, **details: Any) -> LedgerError:
    """Build an authorization failure tagged with its sub-kind."""
    status = 403 if kind is AuthFailureKind.MISSING_PERMISSION else 401
    return ledger_error(LEDGER_E_AUTH_FAILURE, message, http_status=status, kind=kind.value, **details)


def missing_permission(requested: str, granted: Iterable[str]) -> LedgerError:
    granted_list = sorted(str(p) for p in granted)
    return auth_failure(
        AuthFailureKind.MISSING_PERMISSION,
        f"No permission to query {requested}, got permissions {granted_list}",
        requested=requested,
        granted=granted_list,
    )


def uninitialized() -> LedgerError:
    return ledger_error(
        LEDGER_E_UNINITIALIZED,
        "Contract constants not found; initialize the contract first",
        http_status=409,
    )


def storage_failure(message: str = "Storage unavailable") -> LedgerError:
    return ledger_error(LEDGER_E_STORAGE_IO, message, http_status=503)
