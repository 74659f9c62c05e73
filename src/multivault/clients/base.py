"""Abstract interfaces for the orchestrator's external collaborators.

The orchestrator never talks to a chain, the relayer or the authenticator
directly. Each concern is reached through one of these interfaces, so the
real SDK-backed clients and the simulated ones are interchangeable.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from multivault.bridge.models import BridgeProgressState
from multivault.chains import ChainFamily, get_chain
from multivault.dispatch.models import DispatchPlan, TransferReceipt
from multivault.identity.models import Credential, Identity, VaultCreation
from multivault.spending.guard import SpendingLimitsSnapshot

logger = logging.getLogger(__name__)


class PasskeyProvider(ABC):
    """Passkey ceremonies plus device-local credential persistence.

    ``clear_session`` forgets the active credential for this session only;
    ``remove_stored`` deletes the persisted credential permanently.
    """

    @abstractmethod
    async def register(self, username: str, display_name: str) -> Credential:
        """Run a registration ceremony and return the new credential."""
        pass

    @abstractmethod
    async def authenticate(self) -> Credential:
        """Run a discoverable-credential authentication ceremony."""
        pass

    @abstractmethod
    def load_stored(self) -> Optional[Credential]:
        pass

    @abstractmethod
    def save(self, credential: Credential) -> None:
        pass

    @abstractmethod
    def clear_session(self) -> None:
        pass

    @abstractmethod
    def remove_stored(self) -> None:
        pass

    def has_stored(self) -> bool:
        return self.load_stored() is not None


class ChainClient(ABC):
    """Client for one chain. Address derivation is family-specific."""

    def __init__(self, chain_id: int, rpc_url: str = ""):
        self.chain_id = chain_id
        self.chain = get_chain(chain_id)
        self.rpc_url = rpc_url

    @property
    def family(self) -> ChainFamily:
        return self.chain.family

    @property
    def supports_gasless(self) -> bool:
        """Whether same-chain sends go through a fee-paying relayer."""
        return True

    @abstractmethod
    async def compute_vault_address(self, identity: Identity) -> str:
        """Derive the deterministic vault address for an identity."""
        pass

    @abstractmethod
    async def vault_exists(self, address: str) -> bool:
        pass

    @abstractmethod
    async def send_same_chain(self, plan: DispatchPlan) -> TransferReceipt:
        pass

    @abstractmethod
    async def create_vault_sponsored(self, identity: Identity) -> VaultCreation:
        """Create the vault with a relayer paying the fee."""
        pass

    @abstractmethod
    async def get_balances(self, address: str) -> dict[str, int]:
        """Token -> balance in base units."""
        pass


class ProgressSink(ABC):
    """Where a bridge transport reports step updates.

    ``publish`` must not block or call back into the caller.
    """

    @abstractmethod
    def publish(self, state: BridgeProgressState) -> None:
        pass


class BridgeTransport(ABC):
    """Relayer-backed cross-chain dispatch."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def dispatch_bridge(self, plan: DispatchPlan, progress: ProgressSink) -> TransferReceipt:
        """Send a bridge and report progress in non-decreasing step order."""
        pass


class LegacySigner(ABC):
    """Wallet-signed two-step path used when no relayer path is available."""

    @abstractmethod
    async def prepare(self, plan: DispatchPlan) -> Any:
        pass

    @abstractmethod
    async def execute(self, prepared: Any) -> TransferReceipt:
        pass


class SpendingLimitsAccessor(ABC):
    """On-chain spending-limit contract access. Always authoritative."""

    @abstractmethod
    async def get_limits(self, chain_id: int) -> SpendingLimitsSnapshot:
        pass

    @abstractmethod
    async def set_daily_limit(self, chain_id: int, new_limit: int) -> None:
        pass

    @abstractmethod
    async def set_transaction_limit(self, chain_id: int, new_limit: int) -> None:
        pass

    @abstractmethod
    async def pause(self, chain_id: int) -> None:
        pass

    @abstractmethod
    async def unpause(self, chain_id: int) -> None:
        pass
