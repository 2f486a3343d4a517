import pytest

from permit_ledger.authorizer import PermitAuthorizer
from permit_ledger.constants import ConstantsStore
from permit_ledger.errors import (
    LEDGER_E_AUTH_FAILURE,
    LEDGER_E_UNINITIALIZED,
    AuthFailureKind,
    LedgerError,
    auth_failure,
)
from permit_ledger.kvstore import MemoryKVStore
from permit_ledger.permits import Permit, PermitParams, PermitSignature, PermitPermission


class _FakeVerifier:
    """Records calls and returns a fixed account or raises a fixed error."""

    def __init__(self, account="acct1alice", error=None):
        self.account = account
        self.error = error
        self.calls = []

    def verify(self, permit, contract_identity, network_id):
        self.calls.append((permit.permit_name, contract_identity, network_id))
        if self.error is not None:
            raise self.error
        return self.account


def _permit(permissions):
    return Permit(
        params=PermitParams(
            permit_name="p1",
            allowed_contracts=["calc-1"],
            network_id="local-1",
            permissions=list(permissions),
        ),
        signature=PermitSignature(pub_key="00" * 32, signature=""),
    )


def _authorizer(verifier, initialized=True):
    constants = ConstantsStore(MemoryKVStore())
    if initialized:
        constants.set("calc-1")
    return PermitAuthorizer(constants, verifier, "local-1")


def test_authorized_permit_resolves_account():
    verifier = _FakeVerifier()
    account = _authorizer(verifier).authorize(_permit(["calculation_history"]), PermitPermission.CALCULATION_HISTORY)
    assert account == "acct1alice"
    assert verifier.calls == [("p1", "calc-1", "local-1")]


def test_uninitialized_short_circuits_before_verification():
    verifier = _FakeVerifier()
    result = _authorizer(verifier, initialized=False).evaluate(_permit(["calculation_history"]), "calculation_history")
    assert not result.ok
    assert result.failed_step == "load_contract_identity"
    assert result.error.code == LEDGER_E_UNINITIALIZED
    assert verifier.calls == []


@pytest.mark.parametrize(
    "kind",
    [
        AuthFailureKind.BAD_SIGNATURE,
        AuthFailureKind.CHAIN_MISMATCH,
        AuthFailureKind.REVOKED,
        AuthFailureKind.MALFORMED,
    ],
)
def test_verifier_failure_kind_is_preserved(kind):
    verifier = _FakeVerifier(error=auth_failure(kind, "nope"))
    with pytest.raises(LedgerError) as ei:
        # The permission check would also fail; verification comes first.
        _authorizer(verifier).authorize(_permit([]), "calculation_history")
    assert ei.value.code == LEDGER_E_AUTH_FAILURE
    assert ei.value.kind == kind.value


def test_missing_permission_lists_full_granted_set():
    result = _authorizer(_FakeVerifier()).evaluate(_permit(["balance"]), "calculation_history")
    assert not result.ok
    assert result.failed_step == "check_permission"
    err = result.error
    assert err.kind == "MissingPermission"
    assert err.http_status == 403
    assert err.details["granted"] == ["balance"]
    assert err.details["requested"] == "calculation_history"
    assert "balance" in err.message


def test_missing_permission_with_empty_grant():
    result = _authorizer(_FakeVerifier()).evaluate(_permit([]), "calculation_history")
    assert result.error.kind == "MissingPermission"
    assert result.error.details["granted"] == []


def test_unknown_permissions_are_tolerated_alongside_known_ones():
    account = _authorizer(_FakeVerifier()).authorize(
        _permit(["balance", "calculation_history", "allowance"]), "calculation_history"
    )
    assert account == "acct1alice"


def test_unresolvable_account_is_malformed():
    result = _authorizer(_FakeVerifier(account="")).evaluate(_permit(["calculation_history"]), "calculation_history")
    assert result.failed_step == "resolve_account"
    assert result.error.kind == "Malformed"


def test_steps_run_in_fixed_order():
    names = [name for name, _ in _authorizer(_FakeVerifier()).steps]
    assert names == ["load_contract_identity", "verify_permit", "resolve_account", "check_permission"]
