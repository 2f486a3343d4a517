"""
Calculator contract: the invocation boundary.

Every public method is one invocation and runs inside a single storage
transaction. A write either computes its result and appends exactly one
record for the caller, or fails and leaves nothing behind. A read authorizes
its permit before touching the ledger.

    contract = CalculatorContract(MemoryKVStore())
    env = ContractEnv(contract_identity="calc-1", network_id="local-1")
    contract.initialize(env)
    contract.execute(env, sender="acct1...", operation="add", left=12, right=30)  # -> 42
    contract.query_with_permit(env, permit, page=None, page_size=3)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .arithmetic import checked_add, checked_div, checked_mul, checked_sub, isqrt
from .authorizer import PermitAuthorizer
from .constants import ConstantsStore
from .errors import (
    LEDGER_E_ALREADY_INITIALIZED,
    LEDGER_E_AUTH_REQUIRED,
    LEDGER_E_BAD_REQUEST,
    ledger_error,
)
from .gateway import QueryGateway
from .kvstore import KeyValueStore
from .ledger import CalculationRecord, KeyedLedgerStore, Operation
from .permits import Ed25519PermitVerifier, Permit, PermitVerifier, RevocationRegistry

logger = logging.getLogger("permit_ledger")

VerifierFactory = Callable[[KeyValueStore], PermitVerifier]


def default_verifier_factory(kv: KeyValueStore) -> PermitVerifier:
    return Ed25519PermitVerifier(RevocationRegistry(kv))


@dataclass(frozen=True)
class ContractEnv:
    """Per-invocation environment supplied by the host."""
    contract_identity: str
    network_id: str


_BINARY = {
    Operation.ADD: checked_add,
    Operation.SUB: checked_sub,
    Operation.MUL: checked_mul,
    Operation.DIV: checked_div,
}


def evaluate(operation: Operation, left: int, right: Optional[int]) -> CalculationRecord:
    """Compute an operation and build the record that describes it."""
    if operation.is_unary:
        if right is not None:
            raise ledger_error(LEDGER_E_BAD_REQUEST, f"{operation.value} takes a single operand")
        return CalculationRecord(left_operand=left, right_operand=None, operation=operation, result=isqrt(left))
    if right is None:
        raise ledger_error(LEDGER_E_BAD_REQUEST, f"{operation.value} requires two operands")
    result = _BINARY[operation](left, right)
    return CalculationRecord(left_operand=left, right_operand=right, operation=operation, result=result)


class CalculatorContract:
    def __init__(self, store, verifier_factory: Optional[VerifierFactory] = None):
        self.store = store
        self.verifier_factory = verifier_factory or default_verifier_factory

    def initialize(self, env: ContractEnv) -> None:
        """Record this deployment's identity. A second call is refused."""
        with self.store.transaction() as kv:
            constants = ConstantsStore(kv)
            if constants.is_set():
                raise ledger_error(
                    LEDGER_E_ALREADY_INITIALIZED,
                    "Contract is already initialized",
                    http_status=409,
                )
            constants.set(env.contract_identity)
        logger.info("contract initialized as %s on %s", env.contract_identity, env.network_id)

    def is_initialized(self) -> bool:
        with self.store.transaction() as kv:
            return ConstantsStore(kv).is_set()

    def execute(
        self,
        env: ContractEnv,
        sender: str,
        operation: "Operation | str",
        left: int,
        right: Optional[int] = None,
    ) -> int:
        """Run one calculation for `sender` and append it to their ledger."""
        if not sender:
            raise ledger_error(LEDGER_E_AUTH_REQUIRED, "Caller identity required", http_status=401)
        op = operation if isinstance(operation, Operation) else Operation.parse(operation)
        with self.store.transaction() as kv:
            # Writes are refused before init, same as reads.
            ConstantsStore(kv).get()
            record = evaluate(op, left, right)
            KeyedLedgerStore(kv).append(sender, record)
        logger.debug("%s on %s: saved history successfully", op.value, env.contract_identity)
        return record.result

    def query_with_permit(
        self,
        env: ContractEnv,
        permit: Permit,
        page: Optional[int],
        page_size: int,
    ) -> Tuple[List[CalculationRecord], int]:
        with self.store.transaction() as kv:
            authorizer = PermitAuthorizer(ConstantsStore(kv), self.verifier_factory(kv), env.network_id)
            gateway = QueryGateway(authorizer, KeyedLedgerStore(kv))
            return gateway.calculation_history(permit, page, page_size)

    def revoke_permit(self, env: ContractEnv, sender: str, permit_name: str) -> None:
        """Invalidate every permit named `permit_name` signed by `sender`."""
        if not sender:
            raise ledger_error(LEDGER_E_AUTH_REQUIRED, "Caller identity required", http_status=401)
        if not permit_name:
            raise ledger_error(LEDGER_E_BAD_REQUEST, "permit_name required")
        with self.store.transaction() as kv:
            ConstantsStore(kv).get()
            RevocationRegistry(kv).revoke(sender, permit_name)
        logger.info("permit %r revoked on %s", permit_name, env.contract_identity)
