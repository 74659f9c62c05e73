"""Simulated collaborators for dry-run mode, the CLI demo and tests.

Everything here is deterministic and in-process. Vault addresses are
derived from the identity's key hash with each family's real encoding, so
they pass the same address rules as real ones.
"""

import asyncio
import hashlib
import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import base58
from eth_utils import keccak, to_checksum_address

from multivault.bridge.models import BridgeProgressState
from multivault.chains import ChainFamily
from multivault.classifier import FELT252_BOUND
from multivault.clients.base import (
    BridgeTransport,
    ChainClient,
    LegacySigner,
    PasskeyProvider,
    ProgressSink,
    SpendingLimitsAccessor,
)
from multivault.dispatch.models import DispatchPlan, TransferReceipt
from multivault.identity.models import Credential, Identity, VaultCreation
from multivault.spending.guard import SpendingLimitsSnapshot
from multivault.sync.storage import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

CREDENTIAL_STORAGE_KEY = "veridex_credential"


class SimulatedFailure(ConnectionError):
    """Failure injected into a simulated collaborator."""

    pass


def derive_vault_address(family: ChainFamily, seed: str) -> str:
    """Deterministic, family-valid address for a seed string."""
    digest = hashlib.sha256(seed.encode()).digest()

    if family is ChainFamily.EVM:
        return to_checksum_address("0x" + keccak(text=seed)[-20:].hex())
    if family is ChainFamily.SOLANA:
        return base58.b58encode(digest).decode()
    if family is ChainFamily.STARKNET:
        return hex(int.from_bytes(digest, "big") % FELT252_BOUND)
    # Sui and Aptos use full 32-byte hex account ids
    return "0x" + digest.hex()


def _tx_hash(*parts: Any) -> str:
    data = ":".join(str(p) for p in parts)
    return "0x" + hashlib.sha256(data.encode()).hexdigest()


class SimulatedChainClient(ChainClient):
    """In-memory chain client.

    Args:
        chain_id: Chain this client serves
        fail_on: Operation names that raise SimulatedFailure
            ("compute_vault_address", "vault_exists", "send_same_chain",
            "create_vault_sponsored", "get_balances")
        latency: Seconds to sleep in every call
        gasless: Whether same-chain sends are relayer sponsored
        initial_balance: Native balance credited to every new vault
        rpc_url: Endpoint the real client for this chain would use
    """

    def __init__(
        self,
        chain_id: int,
        fail_on: Optional[set[str]] = None,
        latency: float = 0.0,
        gasless: bool = True,
        initial_balance: int = 0,
        rpc_url: str = "",
    ):
        super().__init__(chain_id, rpc_url)
        self.fail_on = set(fail_on or ())
        self.latency = latency
        self.gasless = gasless
        self.initial_balance = initial_balance
        self.deployed: set[str] = set()
        self.balances: dict[str, dict[str, int]] = {}
        self.sent: list[DispatchPlan] = []
        self._sequence = 0

    @property
    def supports_gasless(self) -> bool:
        return self.gasless

    async def _step(self, operation: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if operation in self.fail_on:
            raise SimulatedFailure(f"Simulated {operation} failure on {self.chain.name}")

    async def compute_vault_address(self, identity: Identity) -> str:
        await self._step("compute_vault_address")
        return derive_vault_address(self.family, f"vault:{self.chain_id}:{identity.key_hash}")

    async def vault_exists(self, address: str) -> bool:
        await self._step("vault_exists")
        return address in self.deployed

    async def create_vault_sponsored(self, identity: Identity) -> VaultCreation:
        await self._step("create_vault_sponsored")
        address = await self.compute_vault_address(identity)
        if address in self.deployed:
            return VaultCreation(address=address, already_exists=True)

        self.deployed.add(address)
        logger.debug(f"[simulated] vault deployed on {self.chain.name}: {address}")
        self.balances.setdefault(address, {self.chain.symbol: self.initial_balance})
        return VaultCreation(address=address, tx_hash=_tx_hash("create", self.chain_id, address))

    async def send_same_chain(self, plan: DispatchPlan) -> TransferReceipt:
        await self._step("send_same_chain")
        self._sequence += 1
        self.sent.append(plan)

        return TransferReceipt(
            tx_hash=_tx_hash("send", self.chain_id, plan.plan_id),
            sequence=self._sequence,
            chain_id=self.chain_id,
        )

    async def get_balances(self, address: str) -> dict[str, int]:
        await self._step("get_balances")
        return dict(self.balances.get(address, {self.chain.symbol: 0}))


class SimulatedBridgeTransport(BridgeTransport):
    """Relayer stand-in that walks through the usual bridge steps.

    Args:
        steps: Progress messages, published in order
        fail_at_step: Raise SimulatedFailure after publishing this step
        delay: Seconds to sleep between steps
    """

    DEFAULT_STEPS = (
        "Submitting transfer to hub",
        "Waiting for guardian signatures",
        "Relaying to destination chain",
        "Confirming on destination chain",
    )

    def __init__(
        self,
        steps: Optional[tuple[str, ...]] = None,
        fail_at_step: Optional[int] = None,
        delay: float = 0.0,
    ):
        self.steps = tuple(steps or self.DEFAULT_STEPS)
        self.fail_at_step = fail_at_step
        self.delay = delay
        self.dispatched: list[DispatchPlan] = []
        self._sequence = 0

    @property
    def name(self) -> str:
        return "simulated"

    async def dispatch_bridge(self, plan: DispatchPlan, progress: ProgressSink) -> TransferReceipt:
        self.dispatched.append(plan)
        total = len(self.steps)

        for index, message in enumerate(self.steps, start=1):
            progress.publish(BridgeProgressState(index, total, message))
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                # yield so pull-based consumers see each step
                await asyncio.sleep(0)
            if self.fail_at_step == index:
                raise SimulatedFailure(f"Simulated relayer failure at step {index}: {message}")

        self._sequence += 1
        return TransferReceipt(
            tx_hash=_tx_hash("bridge", plan.plan_id),
            sequence=self._sequence,
            chain_id=plan.intent.source_chain_id,
        )


class InMemoryPasskeyProvider(PasskeyProvider):
    """Passkey provider that creates random keys instead of running a ceremony.

    The credential is persisted in a KeyValueStore under
    ``veridex_credential``, so a JsonFileStore gives it device-local
    persistence across CLI runs.
    """

    def __init__(self, store: Optional[KeyValueStore] = None, fail_ceremony: bool = False):
        self.store = store if store is not None else MemoryStore()
        self.fail_ceremony = fail_ceremony
        self._session: Optional[Credential] = None

    async def register(self, username: str, display_name: str) -> Credential:
        if self.fail_ceremony:
            raise SimulatedFailure("User cancelled the passkey ceremony")
        credential = Credential(
            credential_id=os.urandom(16).hex(),
            public_key_hex="04" + os.urandom(64).hex(),  # uncompressed P-256 point
            username=username,
            display_name=display_name,
        )
        self._session = credential
        return credential

    async def authenticate(self) -> Credential:
        if self.fail_ceremony:
            raise SimulatedFailure("User cancelled the passkey ceremony")
        credential = self._session or self.load_stored()
        if credential is None:
            raise SimulatedFailure("No passkey available on this device")
        self._session = credential
        return credential

    def load_stored(self) -> Optional[Credential]:
        data = self.store.get(CREDENTIAL_STORAGE_KEY)
        if data is None:
            return None
        return Credential.from_dict(json.loads(data))

    def save(self, credential: Credential) -> None:
        self.store.set(CREDENTIAL_STORAGE_KEY, json.dumps(credential.to_dict()))

    def clear_session(self) -> None:
        self._session = None

    def remove_stored(self) -> None:
        self._session = None
        self.store.remove(CREDENTIAL_STORAGE_KEY)


class SimulatedSpendingLimits(SpendingLimitsAccessor):
    """Spending-limit contract stand-in, one snapshot per chain."""

    def __init__(self, daily_limit: int = 0, transaction_limit: int = 0):
        self.default_daily_limit = daily_limit
        self.default_transaction_limit = transaction_limit
        self._limits: dict[int, dict] = {}
        self.fail_next: Optional[Exception] = None

    def _entry(self, chain_id: int) -> dict:
        if chain_id not in self._limits:
            self._limits[chain_id] = {
                "daily_limit": self.default_daily_limit,
                "daily_spent": 0,
                "transaction_limit": self.default_transaction_limit,
                "is_paused": False,
                "day_reset_time": self._next_reset(),
            }
        return self._limits[chain_id]

    @staticmethod
    def _next_reset() -> datetime:
        now = datetime.now(timezone.utc)
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight + timedelta(days=1)

    def _check_failure(self) -> None:
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

    def record_spend(self, chain_id: int, amount: int) -> None:
        self._entry(chain_id)["daily_spent"] += amount

    async def get_limits(self, chain_id: int) -> SpendingLimitsSnapshot:
        self._check_failure()
        entry = self._entry(chain_id)
        remaining = max(0, entry["daily_limit"] - entry["daily_spent"])
        return SpendingLimitsSnapshot(
            daily_limit=entry["daily_limit"],
            daily_spent=entry["daily_spent"],
            daily_remaining=remaining,
            day_reset_time=entry["day_reset_time"],
            transaction_limit=entry["transaction_limit"],
            is_paused=entry["is_paused"],
            chain_id=chain_id,
        )

    async def set_daily_limit(self, chain_id: int, new_limit: int) -> None:
        self._check_failure()
        self._entry(chain_id)["daily_limit"] = new_limit

    async def set_transaction_limit(self, chain_id: int, new_limit: int) -> None:
        self._check_failure()
        self._entry(chain_id)["transaction_limit"] = new_limit

    async def pause(self, chain_id: int) -> None:
        self._check_failure()
        self._entry(chain_id)["is_paused"] = True

    async def unpause(self, chain_id: int) -> None:
        self._check_failure()
        self._entry(chain_id)["is_paused"] = False


class SimulatedLegacySigner(LegacySigner):
    """Wallet-signed path stand-in: prepare returns a fake unsigned tx."""

    def __init__(self):
        self.prepared: list[dict] = []
        self.executed: list[dict] = []

    async def prepare(self, plan: DispatchPlan) -> dict:
        tx = {
            "plan_id": plan.plan_id,
            "chain_id": plan.intent.source_chain_id,
            "to": plan.intent.recipient,
            "amount": plan.amount,
            "token": plan.intent.token,
        }
        self.prepared.append(tx)
        return tx

    async def execute(self, prepared: dict) -> TransferReceipt:
        self.executed.append(prepared)
        return TransferReceipt(
            tx_hash=_tx_hash("legacy", prepared["plan_id"]),
            sequence=len(self.executed),
            chain_id=prepared["chain_id"],
        )
