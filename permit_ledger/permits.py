"""
Query permits.

Offline-signed, scoped, revocable credentials presented at read time.

Security properties:
- Ed25519 signed by the account holder (unforgeable by the bearer)
- Bound to a set of contract identities and one network identity, so a
  permit signed for one deployment or chain cannot be replayed on another
- Scoped to a declared permission set
- Revocable by name, per account, through the revocation registry

A permit is never stored or cached here; it lives for one read call.
"""

from __future__ import annotations

import binascii
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Protocol, runtime_checkable

from .crypto import (
    ED25519_PUBLIC_KEY_LEN, ED25519_SIGNATURE_LEN,
    Ed25519KeyPair, b64decode, b64encode, canonical_json_dumps,
    derive_account_id, length_prefixed,
)
from .errors import LEDGER_E_BAD_REQUEST, AuthFailureKind, auth_failure, ledger_error
from .kvstore import KeyValueStore

PERMIT_SIGN_DOC_TYPE = "query_permit"
REVOCATION_TAG = b"revoked_permits"


class PermitPermission(str, Enum):
    """Permissions understood by this contract."""
    CALCULATION_HISTORY = "calculation_history"


def _malformed(message: str, **details: Any):
    return auth_failure(AuthFailureKind.MALFORMED, message, **details)


def _is_utf8(value: str) -> bool:
    # Lone surrogates survive JSON decoding but not UTF-8 encoding.
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise _malformed(f"{name} must be a non-empty string", field=name)
    if not _is_utf8(value):
        raise _malformed(f"{name} is not valid UTF-8 text", field=name)
    return value


def _str_list(value: Any, name: str) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise _malformed(f"{name} must be a list of strings", field=name)
    if not all(_is_utf8(v) for v in value):
        raise _malformed(f"{name} contains invalid UTF-8 text", field=name)
    return list(value)


def _key_component(value: str, name: str) -> bytes:
    try:
        return value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ledger_error(LEDGER_E_BAD_REQUEST, f"{name} is not valid UTF-8 text", field=name) from e


@dataclass(frozen=True)
class PermitParams:
    permit_name: str
    allowed_contracts: List[str]
    network_id: str
    permissions: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "permit_name": self.permit_name,
            "allowed_contracts": list(self.allowed_contracts),
            "network_id": self.network_id,
            "permissions": list(self.permissions),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "PermitParams":
        if not isinstance(data, dict):
            raise _malformed("params must be an object", field="params")
        name = _text(data.get("permit_name"), "permit_name")
        network_id = _text(data.get("network_id"), "network_id")
        return cls(
            permit_name=name,
            allowed_contracts=_str_list(data.get("allowed_contracts"), "allowed_contracts"),
            network_id=network_id,
            permissions=_str_list(data.get("permissions"), "permissions"),
        )


@dataclass(frozen=True)
class PermitSignature:
    pub_key: str  # hex Ed25519 public key
    signature: str  # base64 Ed25519 signature

    def to_dict(self) -> Dict[str, Any]:
        return {"pub_key": self.pub_key, "signature": self.signature}

    @classmethod
    def from_dict(cls, data: Any) -> "PermitSignature":
        if not isinstance(data, dict):
            raise _malformed("signature must be an object", field="signature")
        pub_key = data.get("pub_key")
        signature = data.get("signature")
        if not isinstance(pub_key, str) or not isinstance(signature, str):
            raise _malformed("pub_key and signature must be strings", field="signature")
        if not (_is_utf8(pub_key) and _is_utf8(signature)):
            raise _malformed("pub_key and signature must be valid UTF-8 text", field="signature")
        return cls(pub_key=pub_key, signature=signature)

    def public_key_bytes(self) -> bytes:
        try:
            raw = bytes.fromhex(self.pub_key)
        except ValueError as e:
            raise _malformed("pub_key is not valid hex", field="pub_key") from e
        if len(raw) != ED25519_PUBLIC_KEY_LEN:
            raise _malformed("pub_key has the wrong length", field="pub_key")
        return raw

    def signature_bytes(self) -> bytes:
        try:
            raw = b64decode(self.signature)
        except (binascii.Error, ValueError) as e:
            raise _malformed("signature is not valid base64", field="signature") from e
        if len(raw) != ED25519_SIGNATURE_LEN:
            raise _malformed("signature has the wrong length", field="signature")
        return raw


@dataclass(frozen=True)
class Permit:
    params: PermitParams
    signature: PermitSignature

    @property
    def permit_name(self) -> str:
        return self.params.permit_name

    @property
    def granted(self) -> List[str]:
        return list(self.params.permissions)

    def check_permission(self, permission: "PermitPermission | str") -> bool:
        value = permission.value if isinstance(permission, PermitPermission) else str(permission)
        return value in self.params.permissions

    def compute_signature_payload(self) -> bytes:
        """Canonical sign-doc covering every declared field."""
        doc = {"type": PERMIT_SIGN_DOC_TYPE, "params": self.params.to_dict()}
        try:
            return canonical_json_dumps(doc).encode("utf-8")
        except UnicodeEncodeError as e:
            raise _malformed("permit params are not valid UTF-8 text", field="params") from e

    def to_dict(self) -> Dict[str, Any]:
        return {"params": self.params.to_dict(), "signature": self.signature.to_dict()}

    @classmethod
    def from_dict(cls, data: Any) -> "Permit":
        if not isinstance(data, dict):
            raise _malformed("permit must be an object")
        return cls(
            params=PermitParams.from_dict(data.get("params")),
            signature=PermitSignature.from_dict(data.get("signature")),
        )


class PermitSigner:
    """
    Signs permits offline with an account holder's key.

    The ledger never runs this; wallets, the CLI and tests do.
    """

    def __init__(self, keypair: Ed25519KeyPair):
        if not keypair.can_sign():
            raise ValueError("PermitSigner requires a private key")
        self.keypair = keypair

    @property
    def account_id(self) -> str:
        return self.keypair.account_id

    def sign_permit(
        self,
        permit_name: str,
        allowed_contracts: List[str],
        network_id: str,
        permissions: List["PermitPermission | str"],
    ) -> Permit:
        params = PermitParams(
            permit_name=permit_name,
            allowed_contracts=list(allowed_contracts),
            network_id=network_id,
            permissions=[p.value if isinstance(p, PermitPermission) else str(p) for p in permissions],
        )
        unsigned = Permit(params=params, signature=PermitSignature(pub_key=self.keypair.public_key_hex, signature=""))
        sig = self.keypair.sign(unsigned.compute_signature_payload())
        return Permit(params=params, signature=PermitSignature(pub_key=self.keypair.public_key_hex, signature=b64encode(sig)))


class RevocationRegistry:
    """Permit names an account has invalidated, keyed by (account, permit_name)."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    @staticmethod
    def _key(account: str, permit_name: str) -> bytes:
        return length_prefixed([
            REVOCATION_TAG,
            _key_component(account, "account"),
            _key_component(permit_name, "permit_name"),
        ])

    def revoke(self, account: str, permit_name: str) -> None:
        self.kv.set(self._key(account, permit_name), b"\x01")

    def is_revoked(self, account: str, permit_name: str) -> bool:
        return self.kv.get(self._key(account, permit_name)) is not None


@runtime_checkable
class PermitVerifier(Protocol):
    """
    Verification oracle.

    Returns the account identity of the permit's signer, or raises an
    LEDGER_E_AUTH_FAILURE tagged Malformed, BadSignature, ChainMismatch or
    Revoked.
    """

    def verify(self, permit: Permit, contract_identity: str, network_id: str) -> str: ...


class Ed25519PermitVerifier:
    """Default oracle: Ed25519 signature, domain binding, revocation lookup."""

    def __init__(self, revocations: RevocationRegistry):
        self.revocations = revocations

    def verify(self, permit: Permit, contract_identity: str, network_id: str) -> str:
        # Malformed
        pub = permit.signature.public_key_bytes()
        sig = permit.signature.signature_bytes()

        # Signature over the declared fields
        keypair = Ed25519KeyPair(public_key_bytes=pub)
        if not keypair.verify(permit.compute_signature_payload(), sig):
            raise auth_failure(
                AuthFailureKind.BAD_SIGNATURE,
                "Failed to verify signatures for the given permit",
            )

        # Domain binding
        if contract_identity not in permit.params.allowed_contracts:
            raise auth_failure(
                AuthFailureKind.CHAIN_MISMATCH,
                f"Permit doesn't apply to contract {contract_identity}",
                contract=contract_identity,
            )
        if permit.params.network_id != network_id:
            raise auth_failure(
                AuthFailureKind.CHAIN_MISMATCH,
                f"Permit was signed for network {permit.params.network_id}, not {network_id}",
                network_id=network_id,
            )

        account = derive_account_id(pub)
        if self.revocations.is_revoked(account, permit.permit_name):
            raise auth_failure(
                AuthFailureKind.REVOKED,
                f"Permit {permit.permit_name!r} was revoked by account {account}",
                permit_name=permit.permit_name,
            )
        return account
