"""
Permit Ledger Cryptography Module

Ed25519 signatures for offline-signed permits.

- The ledger holds no private keys; it only verifies.
- Permit holders sign offline with their own key. The account identity is
  derived from the public key, so whoever holds a valid permit reads on
  behalf of the signer without the signer having to call in.
"""

import base64
import hashlib
import json
from dataclasses import dataclass
from typing import Any, List, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey, Ed25519PublicKey
)

ED25519_PUBLIC_KEY_LEN = 32
ED25519_SIGNATURE_LEN = 64
ACCOUNT_ID_PREFIX = "acct1"


def length_prefixed(components: List[bytes]) -> bytes:
    """
    Length-prefixed encoding of byte components.

    Each component is preceded by its length as 8 big-endian bytes, so no
    component can swallow or forge a delimiter belonging to its neighbour.
    """
    result = b""
    for component in components:
        data = bytes(component)
        result += len(data).to_bytes(8, byteorder="big") + data
    return result


def canonical_json_dumps(obj: Any) -> str:
    """Canonical JSON for stable signing.

    - sort_keys: deterministic key order
    - separators: no whitespace ambiguity
    - ensure_ascii=False: preserve unicode deterministically (UTF-8)
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def derive_account_id(public_key_bytes: bytes) -> str:
    """Account identity bound to a signer: prefix + first 20 bytes of sha256(pubkey)."""
    return ACCOUNT_ID_PREFIX + hashlib.sha256(bytes(public_key_bytes)).digest()[:20].hex()


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(data: str) -> bytes:
    return base64.b64decode(data.encode("ascii"), validate=True)


@dataclass
class Ed25519KeyPair:
    """
    Ed25519 key pair for signing and verification.

    SECURITY: the ledger process should only ever hold public-only pairs.
    Private halves exist in the permit holder's wallet or in tests.
    """
    public_key_bytes: bytes
    private_key_bytes: Optional[bytes] = None

    @classmethod
    def generate(cls) -> "Ed25519KeyPair":
        """Generate a new Ed25519 key pair."""
        return cls._from_private(Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> "Ed25519KeyPair":
        """Deterministic key pair from a 32-byte seed."""
        if len(seed) != 32:
            raise ValueError(f"Seed must be 32 bytes, got {len(seed)}")
        return cls._from_private(Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def from_public_key(cls, public_key_hex: str) -> "Ed25519KeyPair":
        """Create key pair with public key only (for verification)."""
        raw = bytes.fromhex(public_key_hex)
        if len(raw) != ED25519_PUBLIC_KEY_LEN:
            raise ValueError(f"Public key must be {ED25519_PUBLIC_KEY_LEN} bytes, got {len(raw)}")
        return cls(public_key_bytes=raw)

    @classmethod
    def _from_private(cls, private_key: Ed25519PrivateKey) -> "Ed25519KeyPair":
        private_bytes = private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption()
        )
        public_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )
        return cls(public_key_bytes=public_bytes, private_key_bytes=private_bytes)

    @property
    def public_key_hex(self) -> str:
        return self.public_key_bytes.hex()

    @property
    def account_id(self) -> str:
        return derive_account_id(self.public_key_bytes)

    def can_sign(self) -> bool:
        return self.private_key_bytes is not None

    def sign(self, message: bytes) -> bytes:
        """Sign a message with the private key."""
        if not self.can_sign():
            raise ValueError("Key pair has no private key - cannot sign")
        private_key = Ed25519PrivateKey.from_private_bytes(self.private_key_bytes)
        return private_key.sign(message)

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Verify a signature with the public key."""
        try:
            public_key = Ed25519PublicKey.from_public_bytes(self.public_key_bytes)
            public_key.verify(signature, message)
            return True
        except (InvalidSignature, ValueError):
            return False
