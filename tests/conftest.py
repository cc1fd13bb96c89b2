"""Shared fixtures: temp stores, cheap Argon2, a recording window host."""

import pytest
from PyQt6.QtCore import QCoreApplication

from models import SharedStore
from services.background import BackgroundService
from services.registry import RequestRegistry
from services.surfaces import SurfacePolicy, SurfaceSpec
from wallet import KdfParams, WalletAccessManager, import_private_key

PASSWORD = "correct horse battery staple"

# Argon2 minimum costs; the default ones take ~64MB per derivation
FAST_KDF = KdfParams(time_cost=1, memory_cost=1024, parallelism=1)

KEY_A = "0x" + "11" * 32
KEY_B = "0x" + "22" * 32

ORIGIN = "https://dapp.example"


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """Core application so QObjects and signals behave as in the app."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def store(tmp_path):
    return SharedStore(tmp_path / "store.json")


@pytest.fixture
def access(store):
    return WalletAccessManager(store, FAST_KDF)


@pytest.fixture
def registry(store):
    return RequestRegistry(store)


@pytest.fixture
def wallet_a():
    return import_private_key(KEY_A, name="Main")


@pytest.fixture
def wallet_b():
    return import_private_key(KEY_B, name="Savings")


@pytest.fixture
def setup_wallets(access, wallet_a, wallet_b):
    """Password set, two wallets stored, session unlocked."""
    access.setup_password(PASSWORD)
    access.add_wallet(wallet_a, PASSWORD)
    access.add_wallet(wallet_b, PASSWORD)
    access.set_active_wallet(wallet_a.address)
    return [wallet_a, wallet_b]


@pytest.fixture
def locked_wallets(access, setup_wallets):
    access.lock()
    return setup_wallets


class FakeHost:
    """Window-creation primitive that records what it was asked to open."""

    def __init__(self):
        self.opened: list[tuple[str, SurfaceSpec]] = []

    def open_window(self, spec: SurfaceSpec) -> str:
        surface_id = f"surface-{len(self.opened) + 1}"
        self.opened.append((surface_id, spec))
        return surface_id

    def last(self) -> tuple[str, SurfaceSpec]:
        return self.opened[-1]


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def policy(host):
    return SurfacePolicy(host.open_window)


class FakeChain:
    """Chain client stand-in: canned balance, network and execution results."""

    def __init__(self, tx_hash: str = "0xfeed"):
        self.tx_hash = tx_hash
        self.executed = []

    def get_balance(self, address: str) -> str:
        return "1.5"

    def network_info(self) -> dict:
        return {"chainId": hex(84532), "networkId": "base-sepolia", "name": "Base Sepolia"}

    def execute(self, request, wallet):
        self.executed.append((request, wallet))
        if request.kind == "view":
            return 42
        return {"txHash": self.tx_hash}


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def background(store, access, registry, policy, chain):
    return BackgroundService(store, access, registry, policy, chain=chain, inactivity_timeout=60)


def connect_origin(background, origin: str = ORIGIN, address: str = "0xabc") -> None:
    """Mark an origin as connected without going through a surface."""
    background._record_connection(origin, address)
