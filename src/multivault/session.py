"""Per-session wallet orchestrator.

One WalletSession is built per signed-in client session and passed to
whatever drives the UI. It wires the subsystems together and exposes the
imperative entry points plus read-only view models; nothing here is a
module-level singleton, so several sessions can coexist in one process.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Optional

from multivault.bridge.models import BridgeProgressState, CrossChainResult
from multivault.bridge.tracker import BridgeProgressTracker
from multivault.chains import ChainFamily, get_chain
from multivault.clients.base import (
    BridgeTransport,
    ChainClient,
    LegacySigner,
    PasskeyProvider,
    SpendingLimitsAccessor,
)
from multivault.dispatch.engine import DispatchOutcome, TransferDispatchEngine
from multivault.dispatch.models import DispatchPlan, SigningCapabilities, TransferIntent
from multivault.errors import CollaboratorError, InsufficientAllowanceError
from multivault.identity.manager import IdentityVaultManager
from multivault.identity.models import (
    AuthState,
    Identity,
    VaultCreationResult,
    VaultRecord,
    VaultState,
)
from multivault.spending.guard import LimitCheckResult, SpendingLimitsSnapshot, SpendingView
from multivault.spending.service import SpendingLimitsService
from multivault.state import NOT_STARTED, Failed, Resource
from multivault.sync.heuristic import PlatformSignals, SyncLikelihood
from multivault.sync.scheduler import (
    DEFAULT_REMINDER_INTERVAL,
    RiskLevel,
    SyncRiskScheduler,
    SyncStatus,
    SyncUserChoice,
)
from multivault.sync.storage import KeyValueStore, MemoryStore
from multivault.utils.locks import VaultLockRegistry

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class VaultView:
    """What the UI shows for one chain's vault."""

    chain_id: int
    chain_name: str
    family: ChainFamily
    state: VaultState
    address: Optional[str]
    deployed: bool
    balances: dict = field(default_factory=dict)
    last_refreshed_at: Optional[datetime] = None
    load: Resource = NOT_STARTED

    @property
    def error(self) -> Optional[str]:
        """Why the last vault query failed, if it did."""
        if isinstance(self.load, Failed):
            return f"{type(self.load.error).__name__}: {self.load.error}"
        return None


@dataclass(frozen=True)
class SyncFlags:
    """Passkey-durability flags driving the banner and the weekly reminder."""

    show_banner: bool
    show_weekly_reminder: bool
    needs_confirmation: bool
    risk_level: RiskLevel
    heuristic: SyncLikelihood
    platform: str


class WalletSession:
    """Orchestrator for one client session.

    Usage:
        session = WalletSession(passkey, clients, limits, transport)
        await session.register("alice", "Alice")
        plan = session.plan_transfer(intent)
        outcome = await session.execute_transfer(plan)
    """

    def __init__(
        self,
        passkey: PasskeyProvider,
        chain_clients: dict[int, ChainClient],
        spending_accessor: SpendingLimitsAccessor,
        bridge_transport: Optional[BridgeTransport] = None,
        legacy_signer: Optional[LegacySigner] = None,
        sync_store: Optional[KeyValueStore] = None,
        platform_signals: Optional[PlatformSignals] = None,
        chain_ids: Optional[list[int]] = None,
        reminder_interval: timedelta = DEFAULT_REMINDER_INTERVAL,
        lock_timeout: Optional[float] = 30.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.clock = clock
        self.sync = SyncRiskScheduler(
            sync_store if sync_store is not None else MemoryStore(),
            platform_signals,
            clock=clock,
            reminder_interval=reminder_interval,
        )
        self.identity_manager = IdentityVaultManager(
            passkey,
            chain_clients,
            chain_ids=chain_ids,
            on_credential_deleted=self.sync.clear,
            clock=clock,
        )
        self.tracker = BridgeProgressTracker(clock=clock)
        self.locks = VaultLockRegistry()
        self.engine = TransferDispatchEngine(
            self.identity_manager,
            chain_clients,
            self.tracker,
            bridge_transport=bridge_transport,
            legacy_signer=legacy_signer,
            lock_registry=self.locks,
            lock_timeout=lock_timeout,
        )
        self.spending = SpendingLimitsService(spending_accessor, clock=clock)

    # ----------------------------------------------------------------
    # Authentication
    # ----------------------------------------------------------------

    @property
    def auth_state(self) -> AuthState:
        return self.identity_manager.auth_state

    @property
    def current_identity(self) -> Optional[Identity]:
        return self.identity_manager.identity

    async def start(self) -> Optional[Identity]:
        """Resume from a stored credential if this device has one."""
        return await self.identity_manager.restore()

    async def register(
        self, username: str, display_name: str, create_vaults: bool = True
    ) -> Identity:
        """Create a passkey and, by default, sponsored vaults on every chain."""
        identity = await self.identity_manager.register(username, display_name)
        if create_vaults:
            await self.identity_manager.on_sponsored_vault_sync()
        return identity

    async def login(self) -> Identity:
        return await self.identity_manager.login()

    async def create_vaults(self) -> list[VaultCreationResult]:
        return await self.identity_manager.on_sponsored_vault_sync()

    def _reset_session_state(self) -> None:
        self.spending.clear()
        self.locks.clear()

    def logout(self) -> None:
        self.identity_manager.logout()
        self._reset_session_state()

    def delete_credential(self) -> None:
        """Permanently forget the passkey on this device, sync status included."""
        self.identity_manager.delete_credential()
        self._reset_session_state()

    # ----------------------------------------------------------------
    # Transfers
    # ----------------------------------------------------------------

    def plan_transfer(
        self,
        intent: TransferIntent,
        capabilities: Optional[SigningCapabilities] = None,
    ) -> DispatchPlan:
        return self.engine.plan_transfer(intent, capabilities)

    async def execute_transfer(self, plan: DispatchPlan, check_limits: bool = True) -> DispatchOutcome:
        """Run the advisory limit check, then submit the plan.

        The check reads fresh limits inside the engine's per-vault lock, so
        concurrent sends from one vault are checked one after another. It
        only guards the UX; when the limits cannot be fetched the send
        proceeds and the vault contract decides.

        Raises:
            InsufficientAllowanceError: The spend would be rejected on-chain
            Any error from TransferDispatchEngine.execute_transfer
        """
        precheck = self._check_allowance if check_limits else None
        outcome = await self.engine.execute_transfer(plan, precheck=precheck)

        try:
            await self.spending.refresh(plan.intent.source_chain_id)
        except CollaboratorError as e:
            logger.warning(f"Spending limits not refreshed after send: {e}")

        return outcome

    async def _check_allowance(self, plan: DispatchPlan) -> None:
        chain_id = plan.intent.source_chain_id
        try:
            result = await self.spending.check(chain_id, plan.amount, fresh=True)
        except CollaboratorError as e:
            logger.warning(f"Skipping advisory limit check on chain {chain_id}: {e}")
            return
        if result.blocked:
            raise InsufficientAllowanceError(result)

    # ----------------------------------------------------------------
    # Spending limits
    # ----------------------------------------------------------------

    async def refresh_spending(self, chain_id: int) -> SpendingLimitsSnapshot:
        return await self.spending.refresh(chain_id)

    async def check_limit(self, chain_id: int, amount: int) -> LimitCheckResult:
        return await self.spending.check(chain_id, amount)

    async def request_limit_increase(self, chain_id: int, new_limit: int) -> SpendingLimitsSnapshot:
        return await self.spending.request_limit_increase(chain_id, new_limit)

    async def pause_vault(self, chain_id: int) -> SpendingLimitsSnapshot:
        return await self.spending.pause(chain_id)

    async def unpause_vault(self, chain_id: int) -> SpendingLimitsSnapshot:
        return await self.spending.unpause(chain_id)

    def spending_view(self, chain_id: int) -> Optional[SpendingView]:
        return self.spending.view(chain_id)

    # ----------------------------------------------------------------
    # Passkey sync
    # ----------------------------------------------------------------

    def confirm_sync_choice(self, choice: SyncUserChoice) -> SyncStatus:
        return self.sync.confirm(choice)

    def record_reminder_shown(self) -> SyncStatus:
        return self.sync.record_reminder_shown()

    def dismiss_reminder(self) -> SyncStatus:
        return self.sync.dismiss_reminder()

    def sync_flags(self) -> SyncFlags:
        status = self.sync.status()
        return SyncFlags(
            show_banner=self.sync.should_show_banner(),
            show_weekly_reminder=self.sync.should_show_weekly_reminder(),
            needs_confirmation=status.user_choice is None,
            risk_level=self.sync.risk_level(),
            heuristic=status.heuristic,
            platform=self.sync.platform_name(),
        )

    # ----------------------------------------------------------------
    # Vaults and bridges
    # ----------------------------------------------------------------

    def vault_view(self) -> list[VaultView]:
        views = []
        for chain_id in self.identity_manager.chain_ids:
            chain = get_chain(chain_id)
            record = self.identity_manager.record(chain_id) or VaultRecord(chain_id)
            views.append(
                VaultView(
                    chain_id=chain_id,
                    chain_name=chain.name,
                    family=chain.family,
                    state=record.state,
                    address=record.address,
                    deployed=record.deployed,
                    balances=dict(record.balances),
                    last_refreshed_at=record.last_refreshed_at,
                    load=self.identity_manager.vault_state(chain_id),
                )
            )
        return views

    async def refresh_balances(self, chain_id: Optional[int] = None) -> list[VaultView]:
        if chain_id is None:
            await self.identity_manager.refresh_all_balances()
        else:
            await self.identity_manager.refresh_balances(chain_id)
        return self.vault_view()

    @property
    def bridge_progress(self) -> Optional[BridgeProgressState]:
        return self.tracker.progress

    def bridge_results(self) -> list[CrossChainResult]:
        return self.tracker.results()

    def bridge_updates(self) -> AsyncIterator[BridgeProgressState]:
        return self.tracker.updates()

    def dismiss_bridge_result(self, result_id: str) -> bool:
        return self.tracker.dismiss(result_id)
