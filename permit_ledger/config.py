"""Deployment configuration.

Environment variables:
- PERMIT_LEDGER_CONTRACT_ID: this deployment's identity (permits must list it)
- PERMIT_LEDGER_NETWORK_ID: live network identity (permits must match it)
- PERMIT_LEDGER_DB_PATH: SQLite path; empty keeps state in memory
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

ENV_CONTRACT_ID = "PERMIT_LEDGER_CONTRACT_ID"
ENV_NETWORK_ID = "PERMIT_LEDGER_NETWORK_ID"
ENV_DB_PATH = "PERMIT_LEDGER_DB_PATH"


@dataclass(frozen=True)
class LedgerConfig:
    contract_id: str = "permit-ledger"
    network_id: str = "local-1"
    db_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        contract_id = (os.getenv(ENV_CONTRACT_ID, "") or "").strip() or cls.contract_id
        network_id = (os.getenv(ENV_NETWORK_ID, "") or "").strip() or cls.network_id
        db_path = (os.getenv(ENV_DB_PATH, "") or "").strip() or None
        return cls(contract_id=contract_id, network_id=network_id, db_path=db_path)
