"""Single-slot record of this deployment's own identity."""

from __future__ import annotations

from .errors import storage_failure, uninitialized
from .kvstore import KeyValueStore

KEY_CONSTANTS = b"constants"


class ConstantsStore:
    """Holds `contract_identity`, used only for permit domain binding."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def set(self, contract_identity: str) -> None:
        # Unconditional; single initialization is enforced by the contract.
        self.kv.set(KEY_CONSTANTS, str(contract_identity).encode("utf-8"))

    def get(self) -> str:
        raw = self.kv.get(KEY_CONSTANTS)
        if raw is None:
            raise uninitialized()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise storage_failure("Corrupt constants record") from e

    def is_set(self) -> bool:
        return self.kv.get(KEY_CONSTANTS) is not None
