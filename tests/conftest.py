"""Pytest configuration and fixtures."""

import os
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DRY_RUN"] = "true"
os.environ["DEBUG"] = "true"
os.environ["SYNC_STATUS_PATH"] = ""

from multivault.bridge.tracker import BridgeProgressTracker
from multivault.chains import get_all_chains
from multivault.clients.base import ProgressSink
from multivault.clients.simulated import (
    InMemoryPasskeyProvider,
    SimulatedBridgeTransport,
    SimulatedChainClient,
    SimulatedSpendingLimits,
)
from multivault.identity.manager import IdentityVaultManager
from multivault.identity.models import Credential, Identity
from multivault.session import WalletSession
from multivault.spending.guard import SpendingLimitsSnapshot
from multivault.sync.storage import MemoryStore


class FakeClock:
    """Controllable time source."""

    def __init__(self, start: datetime = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingSink(ProgressSink):
    """Progress sink that keeps every published state."""

    def __init__(self):
        self.states = []

    def publish(self, state) -> None:
        self.states.append(state)


def make_snapshot(**overrides) -> SpendingLimitsSnapshot:
    """Build a spending snapshot with sensible defaults."""
    values = {
        "daily_limit": 1000,
        "daily_spent": 0,
        "daily_remaining": 1000,
        "day_reset_time": datetime(2026, 1, 16, 0, 0, tzinfo=timezone.utc),
        "transaction_limit": 0,
        "is_paused": False,
        "chain_id": 10004,
    }
    values.update(overrides)
    if "daily_remaining" not in overrides:
        values["daily_remaining"] = max(0, values["daily_limit"] - values["daily_spent"])
    return SpendingLimitsSnapshot(**values)


def make_identity(seed: str = "11") -> Identity:
    credential = Credential(
        credential_id=f"cred-{seed}",
        public_key_hex="04" + seed * 64,
        username="alice",
        display_name="Alice",
    )
    return Identity.from_credential(credential)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def chain_clients() -> dict:
    """One simulated client per chain in the table."""
    return {c.id: SimulatedChainClient(c.id) for c in get_all_chains()}


@pytest.fixture
def passkey() -> InMemoryPasskeyProvider:
    return InMemoryPasskeyProvider(MemoryStore())


@pytest.fixture
def limits() -> SimulatedSpendingLimits:
    return SimulatedSpendingLimits()


@pytest.fixture
def transport() -> SimulatedBridgeTransport:
    return SimulatedBridgeTransport()


@pytest.fixture
def tracker(clock) -> BridgeProgressTracker:
    return BridgeProgressTracker(clock=clock)


@pytest.fixture
def manager(passkey, chain_clients, clock) -> IdentityVaultManager:
    return IdentityVaultManager(passkey, chain_clients, clock=clock)


@pytest.fixture
def sync_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def session(passkey, chain_clients, limits, transport, sync_store, clock) -> WalletSession:
    return WalletSession(
        passkey=passkey,
        chain_clients=chain_clients,
        spending_accessor=limits,
        bridge_transport=transport,
        sync_store=sync_store,
        clock=clock,
    )


@pytest_asyncio.fixture
async def signed_in(session) -> WalletSession:
    """Session with a registered identity and vaults deployed everywhere."""
    await session.register("alice", "Alice")
    return session
