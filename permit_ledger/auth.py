"""Caller identity for write invocations.

Writes append to the caller's own ledger, so the caller identity must not be
client-controlled once the deployer configures API keys. Without a mapping,
callers name themselves through X-Account-Id (development mode): any caller
can then write to, or revoke permits for, any account. create_app logs a
warning when it starts in this mode.

Env vars:
  - PERMIT_LEDGER_API_KEYS_JSON: JSON object mapping api_key -> account id
  - PERMIT_LEDGER_API_KEYS_FILE: path to a JSON file with the same mapping
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

ENV_API_KEYS_JSON = "PERMIT_LEDGER_API_KEYS_JSON"
ENV_API_KEYS_FILE = "PERMIT_LEDGER_API_KEYS_FILE"

logger = logging.getLogger("permit_ledger")


@dataclass(frozen=True)
class ApiKeyAuth:
    """API key -> account mapping."""

    api_key_to_account: Dict[str, str]
    configured: bool = False
    config_error: Optional[str] = None

    @classmethod
    def load_from_env(cls) -> "ApiKeyAuth":
        """Load the mapping from env/file.

        If configuration is present but malformed, config_error is set so
        every write fails closed.
        """
        raw_json = os.getenv(ENV_API_KEYS_JSON)
        file_path = os.getenv(ENV_API_KEYS_FILE)
        configured = bool(raw_json or file_path)
        mapping: Dict[str, str] = {}
        config_error: Optional[str] = None

        try:
            if raw_json:
                data = json.loads(raw_json)
            elif file_path:
                with open(file_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            else:
                data = {}
            if not isinstance(data, dict):
                raise ValueError("API key config must be a JSON object")
            mapping = {str(k): str(v) for k, v in data.items()}
        except (OSError, ValueError) as e:
            logger.warning("invalid API key configuration: %s", e)
            config_error = "API_KEY_CONFIG_INVALID"
            mapping = {}

        return cls(api_key_to_account=mapping, configured=configured, config_error=config_error)

    def enabled(self) -> bool:
        return self.configured

    def resolve_identity(
        self,
        api_key: Optional[str],
        claimed_account: Optional[str] = None,
    ) -> Tuple[Optional[str], Optional[str]]:
        """Return (account, error). A non-None error rejects the request."""
        if self.config_error:
            return None, self.config_error

        if not self.enabled():
            if not claimed_account:
                return None, "ACCOUNT_ID_REQUIRED"
            return claimed_account, None

        if not api_key:
            return None, "API_KEY_REQUIRED"

        account = self.api_key_to_account.get(api_key)
        if not account:
            return None, "API_KEY_INVALID"

        if claimed_account and claimed_account != account:
            return None, "ACCOUNT_ID_MISMATCH"

        return account, None
