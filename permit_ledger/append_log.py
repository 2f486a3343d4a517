"""Append-only log over a primitive key/value store.

The substrate has no list type, so a log is an explicit length counter plus a
dense index range:

    <namespace> b"len"              -> length, 8 bytes big-endian (absent = 0)
    <namespace> b"idx" <index:8 BE> -> item bytes, for index in [0, length)

`push` writes the item at index = length and then stores length + 1. Both
writes happen in the caller's transaction, so a failed invocation never
leaves an advanced counter without its item.
"""

from __future__ import annotations

from typing import List

from .errors import storage_failure
from .kvstore import KeyValueStore

_LEN_KEY = b"len"
_IDX_KEY = b"idx"
_WIDTH = 8


class AppendOnlyLog:
    """Dense, append-only sequence of byte items under one namespace."""

    def __init__(self, kv: KeyValueStore, namespace: bytes):
        self.kv = kv
        self.namespace = bytes(namespace)

    def _index_key(self, index: int) -> bytes:
        return self.namespace + _IDX_KEY + index.to_bytes(_WIDTH, byteorder="big")

    def length(self) -> int:
        raw = self.kv.get(self.namespace + _LEN_KEY)
        if raw is None:
            return 0
        if len(raw) != _WIDTH:
            raise storage_failure("Corrupt log length")
        return int.from_bytes(raw, byteorder="big")

    def push(self, item: bytes) -> int:
        """Append an item; returns its index."""
        index = self.length()
        self.kv.set(self._index_key(index), bytes(item))
        self.kv.set(self.namespace + _LEN_KEY, (index + 1).to_bytes(_WIDTH, byteorder="big"))
        return index

    def get(self, index: int) -> bytes:
        if index < 0 or index >= self.length():
            raise IndexError(index)
        return self._load(index)

    def _load(self, index: int) -> bytes:
        raw = self.kv.get(self._index_key(index))
        if raw is None:
            # Inside [0, length) every slot must exist.
            raise storage_failure("Corrupt log: missing entry")
        return raw

    def slice(self, start: int, stop: int) -> List[bytes]:
        """Items with start <= index < stop, oldest first. Bounds are clamped."""
        n = self.length()
        start = max(0, start)
        stop = min(stop, n)
        return [self._load(i) for i in range(start, stop)]

    def __len__(self) -> int:
        return self.length()
