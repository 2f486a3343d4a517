import json

import pytest

from permit_ledger.cli import build_parser, main
from permit_ledger.crypto import Ed25519KeyPair, derive_account_id
from permit_ledger.kvstore import MemoryKVStore
from permit_ledger.permits import Ed25519PermitVerifier, Permit, RevocationRegistry


def test_keygen_outputs_consistent_identity(capsys):
    assert main(["keygen"]) == 0
    out = json.loads(capsys.readouterr().out)
    kp = Ed25519KeyPair.from_seed(bytes.fromhex(out["seed_hex"]))
    assert out["pub_key"] == kp.public_key_hex
    assert out["account_id"] == kp.account_id


def test_account_id(capsys):
    kp = Ed25519KeyPair.from_seed(bytes([4]) * 32)
    assert main(["account-id", "--pub-key", kp.public_key_hex]) == 0
    assert capsys.readouterr().out.strip() == derive_account_id(kp.public_key_bytes)


def test_account_id_rejects_bad_key(capsys):
    assert main(["account-id", "--pub-key", "abcd"]) == 2
    assert "ERROR" in capsys.readouterr().err


def test_sign_permit_produces_verifiable_permit(capsys, monkeypatch):
    seed = bytes([5]) * 32
    monkeypatch.setenv("PERMIT_LEDGER_SEED_HEX", seed.hex())
    rc = main([
        "sign-permit",
        "--name", "cli",
        "--contract", "calc-1",
        "--contract", "calc-2",
        "--network", "local-1",
    ])
    assert rc == 0
    permit = Permit.from_dict(json.loads(capsys.readouterr().out))
    assert permit.params.allowed_contracts == ["calc-1", "calc-2"]
    assert permit.granted == ["calculation_history"]

    verifier = Ed25519PermitVerifier(RevocationRegistry(MemoryKVStore()))
    assert verifier.verify(permit, "calc-2", "local-1") == Ed25519KeyPair.from_seed(seed).account_id


def test_sign_permit_rejects_bad_seed(capsys):
    rc = main(["sign-permit", "--seed-hex", "zz", "--name", "x", "--contract", "c", "--network", "n"])
    assert rc == 2


def test_subcommand_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
