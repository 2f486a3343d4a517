"""Checked arithmetic over 128-bit unsigned integers.

Every evaluator either returns a value in [0, U128_MAX] or raises a
LedgerError naming the operation; nothing wraps silently.
"""

from __future__ import annotations

import math

from .errors import (
    LEDGER_E_BAD_REQUEST,
    LEDGER_E_INVALID_DIVISOR,
    LEDGER_E_OVERFLOW,
    LEDGER_E_UNDERFLOW,
    ledger_error,
)

U128_MAX = (1 << 128) - 1


def check_u128(value: int, name: str = "operand") -> int:
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ledger_error(LEDGER_E_BAD_REQUEST, f"{name} must be an integer", field=name)
    if value < 0 or value > U128_MAX:
        raise ledger_error(LEDGER_E_BAD_REQUEST, f"{name} out of u128 range", field=name)
    return value


def checked_add(a: int, b: int) -> int:
    result = check_u128(a, "left_operand") + check_u128(b, "right_operand")
    if result > U128_MAX:
        raise ledger_error(LEDGER_E_OVERFLOW, "Overflow in Add operation", operation="Add")
    return result


def checked_sub(a: int, b: int) -> int:
    if check_u128(a, "left_operand") < check_u128(b, "right_operand"):
        raise ledger_error(LEDGER_E_UNDERFLOW, "Underflow in Sub operation", operation="Sub")
    return a - b


def checked_mul(a: int, b: int) -> int:
    result = check_u128(a, "left_operand") * check_u128(b, "right_operand")
    if result > U128_MAX:
        raise ledger_error(LEDGER_E_OVERFLOW, "Overflow in Mul operation", operation="Mul")
    return result


def checked_div(a: int, b: int) -> int:
    check_u128(a, "left_operand")
    if check_u128(b, "right_operand") == 0:
        raise ledger_error(LEDGER_E_INVALID_DIVISOR, "Divisor can't be zero", operation="Div")
    return a // b


def isqrt(a: int) -> int:
    """Floor of the real square root; defined for every u128."""
    return math.isqrt(check_u128(a, "left_operand"))
