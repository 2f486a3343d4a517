import json
import logging

import pytest
from fastapi.testclient import TestClient

from permit_ledger.auth import ApiKeyAuth
from permit_ledger.config import LedgerConfig
from permit_ledger.contract import CalculatorContract
from permit_ledger.crypto import Ed25519KeyPair
from permit_ledger.kvstore import MemoryKVStore
from permit_ledger.permits import PermitSigner
from permit_ledger.server import create_app

CONTRACT = "calc-contract"
NETWORK = "local-1"


@pytest.fixture
def alice():
    return PermitSigner(Ed25519KeyPair.from_seed(bytes([1]) * 32))


@pytest.fixture
def client(alice):
    app = create_app(
        contract=CalculatorContract(MemoryKVStore()),
        config=LedgerConfig(contract_id=CONTRACT, network_id=NETWORK),
        api_auth=ApiKeyAuth(api_key_to_account={"k1": alice.account_id}, configured=True),
    )
    c = TestClient(app)
    assert c.post("/v1/init").status_code == 200
    return c


def _permit(signer, **overrides):
    kwargs = dict(
        permit_name="test",
        allowed_contracts=[CONTRACT],
        network_id=NETWORK,
        permissions=["calculation_history"],
    )
    kwargs.update(overrides)
    return signer.sign_permit(**kwargs).to_dict()


def _query(client, permit, page=None, page_size=10):
    q = {"page_size": page_size}
    if page is not None:
        q["page"] = page
    return client.post("/v1/query/with_permit", json={"permit": permit, "query": {"calculation_history": q}})


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["initialized"] is True
    assert body["contract_identity"] == CONTRACT


def test_calculate_then_query_history(client, alice):
    r = client.post("/v1/calculate/add", json={"left": "12", "right": "30"}, headers={"X-Api-Key": "k1"})
    assert r.status_code == 200
    assert r.json() == {"result": "42"}
    r = client.post("/v1/calculate/Sub", json={"left": 123, "right": 13}, headers={"X-Api-Key": "k1"})
    assert r.json() == {"result": "110"}

    r = _query(client, _permit(alice), page_size="3")
    assert r.status_code == 200
    history = r.json()["calculation_history"]
    assert history["total"] == "2"
    assert [c["result"] for c in history["calcs"]] == ["110", "42"]
    assert history["calcs"][0]["operation"] == "Sub"


def test_u128_values_survive_http(client, alice):
    big = str(2**128 - 1)
    r = client.post("/v1/calculate/add", json={"left": big, "right": "0"}, headers={"X-Api-Key": "k1"})
    assert r.json() == {"result": big}


def test_overflow_is_reported(client):
    big = str(2**128 - 1)
    r = client.post("/v1/calculate/add", json={"left": big, "right": "1"}, headers={"X-Api-Key": "k1"})
    assert r.status_code == 400
    assert r.json()["code"] == "LEDGER_E_OVERFLOW"
    assert r.json()["message"] == "Overflow in Add operation"


def test_out_of_range_operand_rejected(client):
    r = client.post("/v1/calculate/add", json={"left": str(2**128), "right": "1"}, headers={"X-Api-Key": "k1"})
    assert r.status_code == 400
    assert r.json()["code"] == "LEDGER_E_BAD_REQUEST"
    assert r.json()["details"]["fields"] == ["body.left"]


def test_out_of_range_page_rejected(client, alice):
    r = _query(client, _permit(alice), page="-1")
    assert r.status_code == 400
    assert r.json()["code"] == "LEDGER_E_BAD_REQUEST"


def test_write_requires_api_key(client):
    r = client.post("/v1/calculate/add", json={"left": "1", "right": "1"})
    assert r.status_code == 401
    assert r.json()["code"] == "LEDGER_E_AUTH_REQUIRED"


def test_unknown_operation(client):
    r = client.post("/v1/calculate/pow", json={"left": "1", "right": "1"}, headers={"X-Api-Key": "k1"})
    assert r.status_code == 400
    assert r.json()["code"] == "LEDGER_E_BAD_REQUEST"


def test_missing_permission_shows_granted_set(client, alice):
    r = _query(client, _permit(alice, permissions=["balance"]))
    assert r.status_code == 403
    body = r.json()
    assert body["code"] == "LEDGER_E_AUTH_FAILURE"
    assert body["details"]["kind"] == "MissingPermission"
    assert body["details"]["granted"] == ["balance"]


def test_wrong_network_permit_rejected(client, alice):
    r = _query(client, _permit(alice, network_id="elsewhere"))
    assert r.status_code == 401
    assert r.json()["details"]["kind"] == "ChainMismatch"


def test_tampered_permit_rejected(client, alice):
    permit = _permit(alice)
    permit["params"]["permit_name"] = "renamed"
    r = _query(client, permit)
    assert r.status_code == 401
    assert r.json()["details"]["kind"] == "BadSignature"


def test_malformed_permit_rejected(client):
    r = _query(client, {"params": {}, "signature": {}})
    assert r.status_code == 401
    assert r.json()["details"]["kind"] == "Malformed"


def test_revoke_then_query(client, alice):
    r = client.post("/v1/permits/revoke", json={"permit_name": "test"}, headers={"X-Api-Key": "k1"})
    assert r.status_code == 200
    assert r.json() == {"revoked": "test"}
    r = _query(client, _permit(alice))
    assert r.json()["details"]["kind"] == "Revoked"
    # A different name is still good.
    assert _query(client, _permit(alice, permit_name="other")).status_code == 200


def test_out_of_range_page_is_empty(client, alice):
    client.post("/v1/calculate/add", json={"left": "1", "right": "1"}, headers={"X-Api-Key": "k1"})
    r = _query(client, _permit(alice), page=9, page_size=3)
    assert r.json() == {"calculation_history": {"calcs": [], "total": "1"}}


def test_large_page_size_returns_whole_history(client, alice):
    for i in range(3):
        client.post("/v1/calculate/add", json={"left": i, "right": 1}, headers={"X-Api-Key": "k1"})
    r = _query(client, _permit(alice), page_size=str(2**128 - 1))
    assert r.status_code == 200
    assert [c["result"] for c in r.json()["calculation_history"]["calcs"]] == ["3", "2", "1"]


def test_tampered_permit_with_large_page_reports_bad_signature(client, alice):
    permit = _permit(alice)
    permit["params"]["permissions"] = ["calculation_history", "balance"]
    r = _query(client, permit, page_size=1000)
    assert r.status_code == 401
    assert r.json()["details"]["kind"] == "BadSignature"


def test_second_init_conflicts(client):
    r = client.post("/v1/init")
    assert r.status_code == 409
    assert r.json()["code"] == "LEDGER_E_ALREADY_INITIALIZED"


def test_metrics_exposed(client):
    client.get("/v1/health")
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "permit_ledger_http_requests_total" in r.text


def _raw_query(client, permit):
    # json.dumps escapes lone surrogates as \udXXX, which the server decodes back.
    body = json.dumps({"permit": permit, "query": {"calculation_history": {"page_size": "10"}}})
    return client.post("/v1/query/with_permit", content=body, headers={"Content-Type": "application/json"})


@pytest.mark.parametrize("field", ["permit_name", "network_id"])
def test_non_utf8_permit_text_is_malformed(client, alice, field):
    permit = _permit(alice)
    permit["params"][field] = "\ud800"
    r = _raw_query(client, permit)
    assert r.status_code == 401
    assert r.json()["code"] == "LEDGER_E_AUTH_FAILURE"
    assert r.json()["details"]["kind"] == "Malformed"


def test_non_utf8_revocation_name_rejected(client):
    body = json.dumps({"permit_name": "\ud800"})
    r = client.post(
        "/v1/permits/revoke",
        content=body,
        headers={"Content-Type": "application/json", "X-Api-Key": "k1"},
    )
    assert r.status_code == 400
    assert r.json()["code"] == "LEDGER_E_BAD_REQUEST"


def test_dev_mode_warns_at_startup(caplog):
    with caplog.at_level(logging.WARNING, logger="permit_ledger"):
        create_app(
            contract=CalculatorContract(MemoryKVStore()),
            config=LedgerConfig(contract_id=CONTRACT, network_id=NETWORK),
            api_auth=ApiKeyAuth(api_key_to_account={}),
        )
    assert any("X-Account-Id" in rec.getMessage() for rec in caplog.records)


def test_configured_api_keys_do_not_warn(caplog):
    with caplog.at_level(logging.WARNING, logger="permit_ledger"):
        create_app(
            contract=CalculatorContract(MemoryKVStore()),
            config=LedgerConfig(contract_id=CONTRACT, network_id=NETWORK),
            api_auth=ApiKeyAuth(api_key_to_account={"k": "acct1x"}, configured=True),
        )
    assert not any("X-Account-Id" in rec.getMessage() for rec in caplog.records)
