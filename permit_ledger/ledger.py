"""
Per-account calculation ledger.

Each account owns an append-only log of CalculationRecords, stored under a
namespace built from a fixed ledger tag and the raw account identity bytes.
Both components are length-prefixed, so an attacker-chosen identity string
cannot address another account's slots.

Reads are newest-first and paginated; out-of-range pages are empty, never an
error, and always carry the true total.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .append_log import AppendOnlyLog
from .arithmetic import check_u128
from .crypto import canonical_json_dumps, length_prefixed
from .errors import LEDGER_E_BAD_REQUEST, LedgerError, ledger_error, storage_failure
from .kvstore import KeyValueStore

LEDGER_TAG = b"calcs"


class Operation(str, Enum):
    ADD = "Add"
    SUB = "Sub"
    MUL = "Mul"
    DIV = "Div"
    SQRT = "Sqrt"

    @property
    def is_unary(self) -> bool:
        return self is Operation.SQRT

    @classmethod
    def parse(cls, name: str) -> "Operation":
        """Accept the variant name in any case ("add", "Add", "ADD")."""
        for op in cls:
            if op.value.lower() == str(name).strip().lower():
                return op
        raise ledger_error(LEDGER_E_BAD_REQUEST, f"Unknown operation: {name!r}")


@dataclass(frozen=True)
class CalculationRecord:
    """One immutable ledger entry."""
    left_operand: int
    right_operand: Optional[int]
    operation: Operation
    result: int

    def __post_init__(self):
        check_u128(self.left_operand, "left_operand")
        check_u128(self.result, "result")
        if self.operation.is_unary:
            if self.right_operand is not None:
                raise ledger_error(LEDGER_E_BAD_REQUEST, f"{self.operation.value} takes a single operand")
        else:
            if self.right_operand is None:
                raise ledger_error(LEDGER_E_BAD_REQUEST, f"{self.operation.value} requires two operands")
            check_u128(self.right_operand, "right_operand")

    def to_dict(self) -> Dict[str, Any]:
        # u128 values travel as decimal strings; JSON numbers lose precision.
        return {
            "left_operand": str(self.left_operand),
            "right_operand": None if self.right_operand is None else str(self.right_operand),
            "operation": self.operation.value,
            "result": str(self.result),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalculationRecord":
        right = data.get("right_operand")
        return cls(
            left_operand=int(data["left_operand"]),
            right_operand=None if right is None else int(right),
            operation=Operation(data["operation"]),
            result=int(data["result"]),
        )

    def to_bytes(self) -> bytes:
        return canonical_json_dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "CalculationRecord":
        try:
            return cls.from_dict(json.loads(raw.decode("utf-8")))
        except (ValueError, KeyError, TypeError, LedgerError) as e:
            raise storage_failure("Corrupt calculation record") from e


def ledger_namespace(account: str) -> bytes:
    """Keyspace prefix for one account's ledger."""
    try:
        raw = str(account).encode("utf-8")
    except UnicodeEncodeError as e:
        raise ledger_error(LEDGER_E_BAD_REQUEST, "account is not valid UTF-8 text") from e
    return length_prefixed([LEDGER_TAG, raw])


class KeyedLedgerStore:
    """Append/read access to every account's ledger over one KV view."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def _log(self, account: str) -> AppendOnlyLog:
        return AppendOnlyLog(self.kv, ledger_namespace(account))

    def append(self, account: str, record: CalculationRecord) -> None:
        self._log(account).push(record.to_bytes())

    def length(self, account: str) -> int:
        return self._log(account).length()

    def read_page(self, account: str, page: int, page_size: int) -> Tuple[List[CalculationRecord], int]:
        """
        Return (records newest-first, total_count).

        Skips page * page_size entries from the newest end and takes up to
        page_size. A skip at or past the end yields ([], total).
        """
        if page < 0 or page_size < 0:
            raise ledger_error(LEDGER_E_BAD_REQUEST, "page and page_size must be non-negative")
        log = self._log(account)
        total = log.length()
        skip = page * page_size
        if total == 0 or page_size == 0 or skip >= total:
            return [], total
        stop = total - skip
        start = max(0, stop - page_size)
        items = log.slice(start, stop)
        return [CalculationRecord.from_bytes(raw) for raw in reversed(items)], total
