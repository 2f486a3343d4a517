"""Primitive key/value substrate.

The ledger is built on a store that only knows `get` and `set` over raw
bytes; it has no list type. Every invocation runs inside `transaction()`:
writes become visible to later invocations only if the block exits cleanly,
otherwise they are discarded as a whole.

Two backends:
- MemoryKVStore: dict-backed, for tests and ephemeral deployments.
- SqliteKVStore: durable, one IMMEDIATE transaction per invocation, guarded
  by the storage circuit breaker.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Protocol, runtime_checkable

from .errors import storage_failure
from .lockdown import DbCircuitBreaker

logger = logging.getLogger("permit_ledger")


@runtime_checkable
class KeyValueStore(Protocol):
    """Byte-level get/set, the only primitives the ledger relies on."""

    def get(self, key: bytes) -> Optional[bytes]: ...

    def set(self, key: bytes, value: bytes) -> None: ...


class _OverlayView:
    """Write-staging view over a base mapping. Reads see staged writes first."""

    def __init__(self, base: Dict[bytes, bytes]):
        self._base = base
        self._staged: Dict[bytes, bytes] = {}

    def get(self, key: bytes) -> Optional[bytes]:
        if key in self._staged:
            return self._staged[key]
        return self._base.get(key)

    def set(self, key: bytes, value: bytes) -> None:
        self._staged[bytes(key)] = bytes(value)


class MemoryKVStore:
    """In-memory substrate. Transactions commit by merging the overlay."""

    def __init__(self) -> None:
        self._data: Dict[bytes, bytes] = {}
        self._lock = threading.RLock()

    def get(self, key: bytes) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: bytes, value: bytes) -> None:
        with self._lock:
            self._data[bytes(key)] = bytes(value)

    @contextmanager
    def transaction(self) -> Iterator[KeyValueStore]:
        with self._lock:
            view = _OverlayView(self._data)
            yield view
            # Only reached when the block did not raise.
            self._data.update(view._staged)

    def __len__(self) -> int:
        return len(self._data)


class _SqliteView:
    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def get(self, key: bytes) -> Optional[bytes]:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (bytes(key),)).fetchone()
        return None if row is None else bytes(row[0])

    def set(self, key: bytes, value: bytes) -> None:
        self._conn.execute(
            "INSERT INTO kv (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (bytes(key), bytes(value)),
        )


class SqliteKVStore:
    """
    Durable substrate on SQLite.

    Storage properties:
    - WAL journal with synchronous=FULL
    - one connection per transaction, BEGIN IMMEDIATE so writers serialize
    - rollback on any exception raised inside the transaction block

    Any sqlite3.Error is reported as LEDGER_E_STORAGE_IO and counted by the
    circuit breaker; once tripped, every operation fails closed until the
    lockdown window expires.
    """

    def __init__(self, db_path: str = "permit_ledger.db", circuit: Optional[DbCircuitBreaker] = None):
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.circuit = circuit or DbCircuitBreaker()
        self._init_db()

    @contextmanager
    def _db(self) -> Iterator[sqlite3.Connection]:
        self.circuit.raise_if_lockdown()
        start = time.monotonic()
        try:
            conn = sqlite3.connect(
                self.db_path,
                timeout=float(self.circuit.config.connect_timeout_seconds),
                isolation_level=None,
            )
        except sqlite3.Error as e:
            self.circuit.record_failure()
            logger.error("sqlite connect failed: %s", e)
            raise storage_failure() from e
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            self.circuit.record_failure()
            logger.error("sqlite operation failed: %s", e)
            raise storage_failure() from e
        finally:
            conn.close()
        self.circuit.record_success((time.monotonic() - start) * 1000.0)

    def _init_db(self) -> None:
        with self._db() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = FULL")
            conn.execute("PRAGMA busy_timeout = 5000")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key BLOB PRIMARY KEY,
                value BLOB NOT NULL
            )
            """)

    def get(self, key: bytes) -> Optional[bytes]:
        with self._db() as conn:
            return _SqliteView(conn).get(key)

    def set(self, key: bytes, value: bytes) -> None:
        with self._db() as conn:
            _SqliteView(conn).set(key, value)

    @contextmanager
    def transaction(self) -> Iterator[KeyValueStore]:
        # Explicit BEGIN IMMEDIATE so the length read and the writes that
        # follow it sit in the same write-locked transaction.
        with self._db() as conn:
            conn.execute("BEGIN IMMEDIATE")
            yield _SqliteView(conn)


def open_store(db_path: Optional[str]) -> "MemoryKVStore | SqliteKVStore":
    """Open the configured substrate: SQLite when a path is given, else memory."""
    if db_path:
        logger.info("using sqlite store at %s", db_path)
        return SqliteKVStore(db_path)
    logger.info("using in-memory store")
    return MemoryKVStore()


__all__ = [
    "KeyValueStore",
    "MemoryKVStore",
    "SqliteKVStore",
    "open_store",
]
