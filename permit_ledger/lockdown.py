"""Storage circuit breaker.

Ledger appends and permit reads both depend on the SQLite substrate. When the
database becomes slow, locked or unavailable we stop serving instead of
letting invocations observe a half-working store: the breaker trips into a
lockdown window during which every storage operation fails with
LEDGER_E_STORAGE_IO.

Environment variables:
- PERMIT_LEDGER_DB_LATENCY_THRESHOLD_MS: trip immediately on ops slower than this
  (0 disables the latency check).
- PERMIT_LEDGER_DB_FAILURE_THRESHOLD: failures required to trip.
- PERMIT_LEDGER_DB_LOCKDOWN_SECONDS: duration of the lockdown window.
- PERMIT_LEDGER_DB_CONNECT_TIMEOUT_SECONDS: sqlite connect timeout.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

from .errors import storage_failure

logger = logging.getLogger("permit_ledger")


@dataclass(frozen=True)
class CircuitBreakerConfig:
    latency_threshold_ms: int = 2000
    failure_threshold: int = 2
    lockdown_seconds: int = 30
    connect_timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "CircuitBreakerConfig":
        def _get_int(name: str, default: int) -> int:
            try:
                return int(os.getenv(name, str(default)).strip())
            except ValueError:
                return default

        def _get_float(name: str, default: float) -> float:
            try:
                return float(os.getenv(name, str(default)).strip())
            except ValueError:
                return default

        latency = _get_int("PERMIT_LEDGER_DB_LATENCY_THRESHOLD_MS", cls.latency_threshold_ms)
        failures = _get_int("PERMIT_LEDGER_DB_FAILURE_THRESHOLD", cls.failure_threshold)
        lockdown = _get_int("PERMIT_LEDGER_DB_LOCKDOWN_SECONDS", cls.lockdown_seconds)
        timeout = _get_float("PERMIT_LEDGER_DB_CONNECT_TIMEOUT_SECONDS", cls.connect_timeout_seconds)

        # Clamp
        if latency < 0:
            latency = cls.latency_threshold_ms
        failures = max(1, failures)
        lockdown = max(1, lockdown)
        if timeout <= 0:
            timeout = 0.01

        return cls(
            latency_threshold_ms=latency,
            failure_threshold=failures,
            lockdown_seconds=lockdown,
            connect_timeout_seconds=timeout,
        )


class DbCircuitBreaker:
    """Counts storage failures and holds a lockdown window once tripped."""

    def __init__(self, config: Optional[CircuitBreakerConfig] = None):
        self.config = config or CircuitBreakerConfig.from_env()
        self._failure_count = 0
        self._lockdown_until_monotonic: float = 0.0

    def is_lockdown_active(self) -> bool:
        return time.monotonic() < self._lockdown_until_monotonic

    def raise_if_lockdown(self) -> None:
        if self.is_lockdown_active():
            raise storage_failure("Storage in lockdown after repeated failures")

    def _trip(self) -> None:
        logger.error("storage circuit breaker tripped for %ss", self.config.lockdown_seconds)
        self._lockdown_until_monotonic = time.monotonic() + float(self.config.lockdown_seconds)
        self._failure_count = self.config.failure_threshold

    def record_success(self, elapsed_ms: float = 0.0) -> None:
        threshold = self.config.latency_threshold_ms
        if threshold > 0 and elapsed_ms >= float(threshold):
            logger.warning("slow storage operation: %.1fms", elapsed_ms)
            self._failure_count += 1
            self._trip()
            return
        if self._failure_count > 0:
            self._failure_count -= 1

    def record_failure(self) -> None:
        self._failure_count += 1
        if self._failure_count >= self.config.failure_threshold:
            self._trip()
