import pytest

from permit_ledger.contract import CalculatorContract, ContractEnv
from permit_ledger.crypto import Ed25519KeyPair
from permit_ledger.kvstore import MemoryKVStore
from permit_ledger.permits import PermitPermission, PermitSigner

CONTRACT_ID = "cosmos2contract"
NETWORK_ID = "secret-4"


@pytest.fixture
def env() -> ContractEnv:
    return ContractEnv(contract_identity=CONTRACT_ID, network_id=NETWORK_ID)


@pytest.fixture
def store() -> MemoryKVStore:
    return MemoryKVStore()


@pytest.fixture
def contract(store, env) -> CalculatorContract:
    c = CalculatorContract(store)
    c.initialize(env)
    return c


@pytest.fixture
def alice() -> PermitSigner:
    return PermitSigner(Ed25519KeyPair.from_seed(bytes([1]) * 32))


@pytest.fixture
def bob() -> PermitSigner:
    return PermitSigner(Ed25519KeyPair.from_seed(bytes([2]) * 32))


@pytest.fixture
def history_permit(alice):
    return alice.sign_permit(
        permit_name="test",
        allowed_contracts=[CONTRACT_ID],
        network_id=NETWORK_ID,
        permissions=[PermitPermission.CALCULATION_HISTORY],
    )
