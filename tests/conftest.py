import pytest

from hookminer import HOOK_FLAGS

DEPLOYER = "0x4e59b44847b379578588920cA78FbF26c0B4956C"
POOL_MANAGER = "0x000000000004444c5dc75cb358380d2e3de08a90"
OINK = "0x1111111111111111111111111111111111111111"
CREATOR = "0x2222222222222222222222222222222222222222"
BYTECODE = "0x6080604052348015600f57600080fd5b50603f80601d6000396000f3fe"


@pytest.fixture(scope="session")
def deployer():
    return DEPLOYER


@pytest.fixture(scope="session")
def init_code():
    return bytes.fromhex(BYTECODE[2:]) + bytes(96) + (100).to_bytes(32, "big")


def fake_address(n: int) -> bytes:
    return n.to_bytes(20, "big")


@pytest.fixture
def hook_address():
    return fake_address(HOOK_FLAGS)


@pytest.fixture
def counting_derive():
    """Derive double: matching address only at ``hit_at`` (None = never), counting calls."""

    class Derive:
        def __init__(self):
            self.calls = []
            self.hit_at = None

        def __call__(self, deployer, salt, init_code_hash):
            self.calls.append(int.from_bytes(salt, "big"))
            assert len(deployer) == 20 and len(init_code_hash) == 32
            if self.hit_at is not None and self.calls[-1] >= self.hit_at:
                return fake_address(HOOK_FLAGS | 0xBEEF)
            return fake_address(self.calls[-1])

    return Derive()
