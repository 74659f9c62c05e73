"""Transfer dispatch decision engine.

Turns a TransferIntent into a DispatchPlan (synchronous, no I/O) and then
executes the plan through the chain client or the bridge tracker. Every
validation happens during planning so nothing is ever signed for an
invalid plan.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from multivault.bridge.models import BridgeProgressState, CrossChainResult
from multivault.bridge.tracker import BridgeProgressTracker
from multivault.chains import ChainFamily, get_chain
from multivault.classifier import address_hint, supports_bridge_from, validate_address
from multivault.clients.base import (
    BridgeTransport,
    ChainClient,
    LegacySigner,
    ProgressSink,
)
from multivault.dispatch.models import (
    DispatchMode,
    DispatchPlan,
    SelfTransferKind,
    SigningCapabilities,
    SigningMode,
    TransferIntent,
    TransferReceipt,
)
from multivault.errors import (
    CollaboratorError,
    InvalidRecipientError,
    RouteNotSupportedError,
    SelfTransferError,
    SigningUnavailableError,
    VaultNotDeployedError,
    WalletError,
)
from multivault.identity.manager import IdentityVaultManager
from multivault.utils.locks import VaultLock, VaultLockRegistry

logger = logging.getLogger(__name__)

Precheck = Callable[[DispatchPlan], Awaitable[None]]


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of a successful execute_transfer."""

    plan: DispatchPlan
    receipt: TransferReceipt
    bridge_result: Optional[CrossChainResult] = None


def same_address(family: ChainFamily, a: Optional[str], b: Optional[str]) -> bool:
    """Compare two addresses the way the family encodes them."""
    if not a or not b:
        return False
    if family is ChainFamily.SOLANA:
        return a == b
    if family in (ChainFamily.APTOS, ChainFamily.STARKNET):
        # leading zeros are implied for short hex addresses
        try:
            return int(a, 16) == int(b, 16)
        except ValueError:
            return False
    return a.lower() == b.lower()


class TransferDispatchEngine:
    """Decides how a transfer gets executed, then executes it."""

    def __init__(
        self,
        identity_manager: IdentityVaultManager,
        chain_clients: dict[int, ChainClient],
        tracker: BridgeProgressTracker,
        bridge_transport: Optional[BridgeTransport] = None,
        legacy_signer: Optional[LegacySigner] = None,
        lock_registry: Optional[VaultLockRegistry] = None,
        lock_timeout: Optional[float] = 30.0,
    ):
        self.identity_manager = identity_manager
        self.chain_clients = dict(chain_clients)
        self.tracker = tracker
        self.bridge_transport = bridge_transport
        self.legacy_signer = legacy_signer
        self.lock_registry = lock_registry or VaultLockRegistry()
        self.lock_timeout = lock_timeout

    def capabilities(self, source_chain_id: int) -> SigningCapabilities:
        """Signing paths this engine can offer for a source chain."""
        client = self.chain_clients.get(source_chain_id)
        return SigningCapabilities(
            gasless_same_chain=bool(client and client.supports_gasless),
            gasless_bridge=self.bridge_transport is not None,
            legacy=self.legacy_signer is not None,
        )

    # ----------------------------------------------------------------
    # Planning
    # ----------------------------------------------------------------

    def plan_transfer(
        self,
        intent: TransferIntent,
        capabilities: Optional[SigningCapabilities] = None,
    ) -> DispatchPlan:
        """Validate an intent and decide mode and signing path.

        Args:
            intent: The user's transfer request
            capabilities: Signing paths offered by the caller
                (default: whatever this engine was built with)

        Returns:
            DispatchPlan ready for execute_transfer

        Raises:
            NotAuthenticatedError: No identity loaded
            UnknownChainError: Source or target not in the chain table
            InvalidAmountError: Zero, negative or malformed amount
            InvalidRecipientError: Recipient fails the target family's rules
            RouteNotSupportedError: Bridging from a family without bridge support
            BridgeInProgressError: Bridge requested while another is in flight
            SigningUnavailableError: No gasless path and no legacy signer
        """
        self.identity_manager.require_identity("Sending")

        source = get_chain(intent.source_chain_id)
        target = get_chain(intent.target_chain_id)
        amount = intent.amount_units

        if not validate_address(target.family, intent.recipient):
            raise InvalidRecipientError(intent.recipient, target.family, address_hint(target.family))

        mode = DispatchMode.BRIDGE if intent.is_cross_chain else DispatchMode.SAME_CHAIN
        source_vault = self.identity_manager.vault_address(source.id)

        self_transfer = SelfTransferKind.NONE
        if mode is DispatchMode.SAME_CHAIN:
            if same_address(source.family, intent.recipient, source_vault):
                self_transfer = SelfTransferKind.SAME_CHAIN_WARNING
        else:
            target_vault = self.identity_manager.vault_address(target.id)
            if same_address(target.family, intent.recipient, target_vault):
                self_transfer = SelfTransferKind.CROSS_CHAIN_SELF_BRIDGE

        if mode is DispatchMode.BRIDGE:
            if not supports_bridge_from(source.family):
                raise RouteNotSupportedError(
                    source.id,
                    target.id,
                    f"Bridging from {source.name} to other chains is not supported yet; "
                    f"send on {source.name} or choose another source chain",
                )
            self.tracker.ensure_idle()

        caps = capabilities or self.capabilities(source.id)
        if caps.gasless_for(mode):
            signing_mode = SigningMode.GASLESS
        elif caps.legacy:
            signing_mode = SigningMode.LEGACY
        else:
            raise SigningUnavailableError(source.id, target.id, mode.value)

        plan = DispatchPlan(
            mode=mode,
            signing_mode=signing_mode,
            intent=intent,
            self_transfer=self_transfer,
            source_vault_address=source_vault,
        )

        if plan.has_warning:
            logger.warning(f"Plan {plan.plan_id[:8]} sends to the sender's own vault on {source.name}")
        logger.info(
            f"Planned {mode.value} transfer {plan.plan_id[:8]}: {amount} {intent.token} "
            f"{source.name} -> {target.name}, "
            f"signing={signing_mode.value}, self={self_transfer.value}"
        )
        return plan

    # ----------------------------------------------------------------
    # Execution
    # ----------------------------------------------------------------

    async def execute_transfer(
        self, plan: DispatchPlan, precheck: Optional[Precheck] = None
    ) -> DispatchOutcome:
        """Submit a plan.

        Args:
            plan: A plan from ``plan_transfer``
            precheck: Awaited right before submission; for same-chain sends it
                runs while the vault lock is held. Raising aborts the send.

        Raises:
            SelfTransferError: Same-chain send to the sender's own vault
            VaultNotDeployedError: Same-chain send before the vault exists
            LockTimeoutError: Another send from the same vault is still running
            BridgeInProgressError: Another bridge is in flight
            CollaboratorError: Chain client, relayer or signer failure (plan attached)
        """
        identity = self.identity_manager.require_identity("Sending")

        if plan.mode is DispatchMode.SAME_CHAIN:
            receipt = await self._execute_same_chain(identity.key_hash, plan, precheck)
            outcome = DispatchOutcome(plan=plan, receipt=receipt)
        else:
            result = await self._execute_bridge(plan, precheck)
            receipt = TransferReceipt(
                tx_hash=result.tx_hash or "",
                sequence=result.sequence or 0,
                chain_id=plan.intent.source_chain_id,
            )
            outcome = DispatchOutcome(plan=plan, receipt=receipt, bridge_result=result)

        await self.identity_manager.refresh_balances(plan.intent.source_chain_id)
        if plan.mode is DispatchMode.BRIDGE:
            await self.identity_manager.refresh_balances(plan.intent.target_chain_id)

        return outcome

    async def _execute_same_chain(
        self, key_hash: str, plan: DispatchPlan, precheck: Optional[Precheck] = None
    ) -> TransferReceipt:
        chain_id = plan.intent.source_chain_id

        if plan.has_warning:
            raise SelfTransferError(chain_id, plan.intent.recipient)

        async with VaultLock(
            self.lock_registry,
            (key_hash, chain_id),
            timeout=self.lock_timeout,
            operation=f"same_chain_send:{plan.plan_id[:8]}",
        ):
            record = self.identity_manager.record(chain_id)
            if record is None or not record.deployed:
                raise VaultNotDeployedError(chain_id, record.address if record else None)

            client = self.chain_clients.get(chain_id)
            if client is None:
                raise RouteNotSupportedError(
                    chain_id, chain_id, f"No chain client configured for chain {chain_id}"
                )

            if precheck is not None:
                await precheck(plan)

            try:
                if plan.signing_mode is SigningMode.GASLESS:
                    receipt = await client.send_same_chain(plan)
                else:
                    receipt = await self._legacy_send(plan)
            except WalletError:
                raise
            except Exception as e:
                logger.error(f"Same-chain send {plan.plan_id[:8]} failed: {e}")
                raise CollaboratorError(f"{client.chain.name} client", e, plan=plan) from e

        logger.info(f"Same-chain send {plan.plan_id[:8]} submitted: {receipt.tx_hash}")
        return receipt

    async def _legacy_send(self, plan: DispatchPlan) -> TransferReceipt:
        if self.legacy_signer is None:
            raise SigningUnavailableError(
                plan.intent.source_chain_id, plan.intent.target_chain_id, plan.mode.value
            )
        prepared = await self.legacy_signer.prepare(plan)
        return await self.legacy_signer.execute(prepared)

    async def _execute_bridge(
        self, plan: DispatchPlan, precheck: Optional[Precheck] = None
    ) -> CrossChainResult:
        self.tracker.ensure_idle()
        if precheck is not None:
            await precheck(plan)
            self.tracker.ensure_idle()

        if plan.signing_mode is SigningMode.GASLESS:
            if self.bridge_transport is None:
                raise SigningUnavailableError(
                    plan.intent.source_chain_id, plan.intent.target_chain_id, plan.mode.value
                )
            collaborator = f"{self.bridge_transport.name} relayer"
            running = self.tracker.run(plan, self.bridge_transport)
        else:

            async def dispatch(sink: ProgressSink) -> TransferReceipt:
                sink.publish(BridgeProgressState(1, 2, "Waiting for wallet signature"))
                receipt = await self._legacy_send(plan)
                sink.publish(BridgeProgressState(2, 2, "Bridge transaction submitted"))
                return receipt

            collaborator = "wallet signer"
            running = self.tracker.track(plan, dispatch)

        try:
            return await running
        except WalletError:
            raise
        except Exception as e:
            raise CollaboratorError(collaborator, e, plan=plan) from e
