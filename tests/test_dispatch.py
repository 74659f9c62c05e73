"""Tests for the transfer dispatch engine."""

import asyncio

import pytest
import pytest_asyncio

from multivault.bridge import BridgeStatus
from multivault.chains import (
    APTOS_TESTNET,
    ARBITRUM_SEPOLIA,
    BASE_SEPOLIA,
    OPTIMISM_SEPOLIA,
    SOLANA_DEVNET,
    ChainFamily,
)
from multivault.classifier import address_hint
from multivault.clients.simulated import SimulatedBridgeTransport, SimulatedLegacySigner
from multivault.dispatch import (
    DispatchMode,
    SelfTransferKind,
    SigningCapabilities,
    SigningMode,
    TransferIntent,
)
from multivault.dispatch.engine import TransferDispatchEngine, same_address
from multivault.errors import (
    BridgeInProgressError,
    CollaboratorError,
    InvalidAmountError,
    InvalidRecipientError,
    LockTimeoutError,
    NotAuthenticatedError,
    RouteNotSupportedError,
    SelfTransferError,
    SigningUnavailableError,
    UnknownChainError,
    VaultNotDeployedError,
)

EVM_RECIPIENT = "0x" + "ab" * 20
SOLANA_RECIPIENT = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


def intent(source=BASE_SEPOLIA, target=BASE_SEPOLIA, recipient=EVM_RECIPIENT, amount=1000, token="ETH"):
    return TransferIntent(
        source_chain_id=source,
        target_chain_id=target,
        token=token,
        recipient=recipient,
        amount=amount,
    )


@pytest_asyncio.fixture
async def ready(manager):
    """Manager with a signed-in identity and vaults deployed everywhere."""
    await manager.register("alice", "Alice")
    await manager.on_sponsored_vault_sync()
    return manager


@pytest.fixture
def make_engine(chain_clients, tracker, transport):
    def _make(manager, **kwargs):
        kwargs.setdefault("bridge_transport", transport)
        return TransferDispatchEngine(manager, chain_clients, tracker, **kwargs)

    return _make


@pytest.fixture
def engine(ready, make_engine):
    return make_engine(ready)


class TestSameAddress:
    """Per-family address equality."""

    def test_evm_is_case_insensitive(self):
        assert same_address(ChainFamily.EVM, EVM_RECIPIENT, EVM_RECIPIENT.upper().replace("0X", "0x"))

    def test_solana_is_exact(self):
        assert same_address(ChainFamily.SOLANA, SOLANA_RECIPIENT, SOLANA_RECIPIENT)
        assert not same_address(ChainFamily.SOLANA, SOLANA_RECIPIENT, SOLANA_RECIPIENT.lower())

    def test_aptos_ignores_leading_zeros(self):
        assert same_address(ChainFamily.APTOS, "0x1", "0x" + "0" * 63 + "1")

    def test_missing_side_never_matches(self):
        assert not same_address(ChainFamily.EVM, None, EVM_RECIPIENT)
        assert not same_address(ChainFamily.EVM, EVM_RECIPIENT, "")


class TestPlanValidation:
    """Everything rejected during planning, before any signature."""

    @pytest.mark.asyncio
    async def test_requires_identity(self, manager, make_engine):
        with pytest.raises(NotAuthenticatedError):
            make_engine(manager).plan_transfer(intent())

    @pytest.mark.asyncio
    async def test_invalid_recipient_carries_family_hint(self, engine, chain_clients):
        with pytest.raises(InvalidRecipientError) as exc_info:
            engine.plan_transfer(intent(recipient="0x123"))

        assert exc_info.value.hint == address_hint(ChainFamily.EVM)
        assert str(exc_info.value) == address_hint(ChainFamily.EVM)
        assert chain_clients[BASE_SEPOLIA].sent == []

    @pytest.mark.asyncio
    async def test_recipient_checked_against_target_family(self, engine):
        """A Solana address is not a valid Aptos recipient."""
        with pytest.raises(InvalidRecipientError) as exc_info:
            engine.plan_transfer(intent(target=APTOS_TESTNET, recipient=SOLANA_RECIPIENT))
        assert exc_info.value.hint == address_hint(ChainFamily.APTOS)

    @pytest.mark.parametrize("source,target", [(9999, BASE_SEPOLIA), (BASE_SEPOLIA, 9999)])
    @pytest.mark.asyncio
    async def test_unknown_chain(self, engine, source, target):
        with pytest.raises(UnknownChainError):
            engine.plan_transfer(intent(source=source, target=target))

    @pytest.mark.parametrize("amount", [0, -5, "0", "1.5", "abc"])
    @pytest.mark.asyncio
    async def test_bad_amount(self, engine, amount):
        with pytest.raises(InvalidAmountError):
            engine.plan_transfer(intent(amount=amount))

    @pytest.mark.asyncio
    async def test_string_amount_accepted(self, engine):
        assert engine.plan_transfer(intent(amount="1000")).amount == 1000


class TestModeSelection:
    """Same-chain versus bridge, including self-transfer detection."""

    @pytest.mark.asyncio
    async def test_same_chain_plan(self, engine, ready):
        plan = engine.plan_transfer(intent())
        assert plan.mode is DispatchMode.SAME_CHAIN
        assert plan.signing_mode is SigningMode.GASLESS
        assert plan.self_transfer is SelfTransferKind.NONE
        assert plan.source_vault_address == ready.vault_address(BASE_SEPOLIA)

    @pytest.mark.asyncio
    async def test_cross_chain_plan(self, engine):
        plan = engine.plan_transfer(intent(target=OPTIMISM_SEPOLIA))
        assert plan.mode is DispatchMode.BRIDGE
        assert not plan.is_self_transfer

    @pytest.mark.asyncio
    async def test_same_chain_self_send_is_a_warning(self, engine, ready):
        plan = engine.plan_transfer(intent(recipient=ready.vault_address(BASE_SEPOLIA)))
        assert plan.self_transfer is SelfTransferKind.SAME_CHAIN_WARNING
        assert plan.has_warning

    @pytest.mark.asyncio
    async def test_evm_self_detection_ignores_case(self, engine, ready):
        own = ready.vault_address(BASE_SEPOLIA).lower()
        assert engine.plan_transfer(intent(recipient=own)).has_warning

    @pytest.mark.asyncio
    async def test_cross_chain_self_bridge(self, engine, ready):
        """Bridging to your own vault elsewhere is legitimate."""
        plan = engine.plan_transfer(
            intent(target=OPTIMISM_SEPOLIA, recipient=ready.vault_address(OPTIMISM_SEPOLIA))
        )
        assert plan.self_transfer is SelfTransferKind.CROSS_CHAIN_SELF_BRIDGE
        assert plan.is_self_bridge
        assert not plan.has_warning

    @pytest.mark.asyncio
    async def test_source_vault_as_bridge_recipient_is_not_self(self, engine, ready):
        """Self-bridge compares against the target chain's vault only."""
        plan = engine.plan_transfer(
            intent(target=ARBITRUM_SEPOLIA, recipient=ready.vault_address(BASE_SEPOLIA))
        )
        assert plan.self_transfer is SelfTransferKind.NONE

    @pytest.mark.asyncio
    async def test_solana_cannot_bridge_out(self, engine):
        with pytest.raises(RouteNotSupportedError) as exc_info:
            engine.plan_transfer(intent(source=SOLANA_DEVNET, target=BASE_SEPOLIA))
        assert "Solana" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_solana_same_chain_works(self, engine, chain_clients):
        plan = engine.plan_transfer(
            intent(source=SOLANA_DEVNET, target=SOLANA_DEVNET, recipient=SOLANA_RECIPIENT, token="SOL")
        )
        outcome = await engine.execute_transfer(plan)
        assert outcome.receipt.tx_hash
        assert chain_clients[SOLANA_DEVNET].sent == [plan]

    @pytest.mark.asyncio
    async def test_bridge_into_solana_allowed(self, engine):
        plan = engine.plan_transfer(intent(target=SOLANA_DEVNET, recipient=SOLANA_RECIPIENT))
        assert plan.mode is DispatchMode.BRIDGE


class TestSigningPath:
    """Gasless preferred, legacy only when explicitly offered."""

    @pytest.mark.asyncio
    async def test_no_path_available(self, engine):
        with pytest.raises(SigningUnavailableError):
            engine.plan_transfer(intent(), SigningCapabilities())

    @pytest.mark.asyncio
    async def test_bridge_without_transport_or_signer(self, ready, make_engine):
        engine = make_engine(ready, bridge_transport=None)
        with pytest.raises(SigningUnavailableError):
            engine.plan_transfer(intent(target=OPTIMISM_SEPOLIA))

    @pytest.mark.asyncio
    async def test_gasless_preferred_over_legacy(self, ready, make_engine):
        engine = make_engine(ready, legacy_signer=SimulatedLegacySigner())
        assert engine.plan_transfer(intent()).signing_mode is SigningMode.GASLESS

    @pytest.mark.asyncio
    async def test_explicit_legacy_path(self, ready, make_engine, chain_clients):
        signer = SimulatedLegacySigner()
        engine = make_engine(ready, legacy_signer=signer)

        plan = engine.plan_transfer(intent(), SigningCapabilities(legacy=True))
        assert plan.signing_mode is SigningMode.LEGACY

        outcome = await engine.execute_transfer(plan)
        assert len(signer.prepared) == 1
        assert len(signer.executed) == 1
        assert outcome.receipt.tx_hash
        assert chain_clients[BASE_SEPOLIA].sent == []

    @pytest.mark.asyncio
    async def test_legacy_bridge_reports_two_steps(self, ready, make_engine, tracker):
        engine = make_engine(ready, bridge_transport=None, legacy_signer=SimulatedLegacySigner())
        plan = engine.plan_transfer(intent(target=OPTIMISM_SEPOLIA))
        assert plan.signing_mode is SigningMode.LEGACY

        outcome = await engine.execute_transfer(plan)
        assert outcome.bridge_result.status is BridgeStatus.COMPLETED
        assert outcome.bridge_result.last_progress.step == 2
        assert outcome.bridge_result.last_progress.total_steps == 2


class TestSameChainExecution:
    """Same-chain execution."""

    @pytest.mark.asyncio
    async def test_send(self, engine, chain_clients):
        plan = engine.plan_transfer(intent())
        outcome = await engine.execute_transfer(plan)

        assert outcome.plan is plan
        assert outcome.bridge_result is None
        assert outcome.receipt.tx_hash.startswith("0x")
        assert chain_clients[BASE_SEPOLIA].sent == [plan]

    @pytest.mark.asyncio
    async def test_self_send_rejected_before_signing(self, engine, ready, chain_clients):
        plan = engine.plan_transfer(intent(recipient=ready.vault_address(BASE_SEPOLIA)))

        with pytest.raises(SelfTransferError):
            await engine.execute_transfer(plan)
        assert chain_clients[BASE_SEPOLIA].sent == []

    @pytest.mark.asyncio
    async def test_undeployed_vault(self, manager, make_engine, chain_clients):
        await manager.register("alice", "Alice")
        engine = make_engine(manager)
        plan = engine.plan_transfer(intent())

        with pytest.raises(VaultNotDeployedError):
            await engine.execute_transfer(plan)
        assert chain_clients[BASE_SEPOLIA].sent == []

    @pytest.mark.asyncio
    async def test_client_failure_keeps_plan(self, engine, chain_clients):
        chain_clients[BASE_SEPOLIA].fail_on.add("send_same_chain")
        plan = engine.plan_transfer(intent())

        with pytest.raises(CollaboratorError) as exc_info:
            await engine.execute_transfer(plan)
        assert exc_info.value.plan is plan

        # the same plan can be retried once the client recovers
        chain_clients[BASE_SEPOLIA].fail_on.clear()
        assert (await engine.execute_transfer(plan)).receipt.tx_hash

    @pytest.mark.asyncio
    async def test_balances_refreshed_after_send(self, engine, ready, clock):
        clock.advance(minutes=5)
        await engine.execute_transfer(engine.plan_transfer(intent()))
        assert ready.record(BASE_SEPOLIA).last_refreshed_at == clock.now


class TestConcurrency:
    """Per-vault locking and single-active-bridge exclusivity."""

    @pytest.mark.asyncio
    async def test_concurrent_sends_from_same_vault_serialize(self, engine, chain_clients):
        chain_clients[BASE_SEPOLIA].latency = 0.02
        plans = [engine.plan_transfer(intent()) for _ in range(3)]

        outcomes = await asyncio.gather(*(engine.execute_transfer(p) for p in plans))

        assert len(outcomes) == 3
        assert len(chain_clients[BASE_SEPOLIA].sent) == 3

    @pytest.mark.asyncio
    async def test_lock_timeout(self, ready, make_engine, chain_clients):
        engine = make_engine(ready, lock_timeout=0.01)
        chain_clients[BASE_SEPOLIA].latency = 0.2
        first, second = engine.plan_transfer(intent()), engine.plan_transfer(intent())

        results = await asyncio.gather(
            engine.execute_transfer(first),
            engine.execute_transfer(second),
            return_exceptions=True,
        )

        assert sum(isinstance(r, LockTimeoutError) for r in results) == 1
        assert len(chain_clients[BASE_SEPOLIA].sent) == 1

    @pytest.mark.asyncio
    async def test_different_chains_do_not_block(self, ready, make_engine, chain_clients):
        engine = make_engine(ready, lock_timeout=0.01)
        chain_clients[BASE_SEPOLIA].latency = 0.1
        chain_clients[OPTIMISM_SEPOLIA].latency = 0.1

        results = await asyncio.gather(
            engine.execute_transfer(engine.plan_transfer(intent())),
            engine.execute_transfer(
                engine.plan_transfer(intent(source=OPTIMISM_SEPOLIA, target=OPTIMISM_SEPOLIA))
            ),
        )
        assert all(r.receipt.tx_hash for r in results)

    @pytest.mark.asyncio
    async def test_second_bridge_rejected_while_in_flight(self, ready, make_engine, tracker):
        engine = make_engine(ready, bridge_transport=SimulatedBridgeTransport(delay=0.05))
        queued = engine.plan_transfer(intent(target=ARBITRUM_SEPOLIA))
        first = engine.plan_transfer(intent(target=OPTIMISM_SEPOLIA))

        task = asyncio.ensure_future(engine.execute_transfer(first))
        await asyncio.sleep(0)
        assert tracker.is_active

        with pytest.raises(BridgeInProgressError):
            engine.plan_transfer(intent(target=ARBITRUM_SEPOLIA))
        with pytest.raises(BridgeInProgressError):
            await engine.execute_transfer(queued)

        # same-chain sends are not blocked by a bridge
        assert engine.plan_transfer(intent()).mode is DispatchMode.SAME_CHAIN

        outcome = await task
        assert outcome.bridge_result.status is BridgeStatus.COMPLETED
        assert not tracker.is_active
        assert engine.plan_transfer(intent(target=ARBITRUM_SEPOLIA)).mode is DispatchMode.BRIDGE

    @pytest.mark.asyncio
    async def test_failed_bridge_releases_exclusivity(self, ready, make_engine, tracker):
        engine = make_engine(ready, bridge_transport=SimulatedBridgeTransport(fail_at_step=2))
        plan = engine.plan_transfer(intent(target=OPTIMISM_SEPOLIA))

        with pytest.raises(CollaboratorError) as exc_info:
            await engine.execute_transfer(plan)

        assert exc_info.value.plan is plan
        assert exc_info.value.collaborator == "simulated relayer"
        assert not tracker.is_active
        (result,) = tracker.results()
        assert result.status is BridgeStatus.FAILED
        assert result.last_progress.step == 2
        engine.plan_transfer(intent(target=OPTIMISM_SEPOLIA))

    @pytest.mark.asyncio
    async def test_cancelled_bridge_releases_exclusivity(self, ready, make_engine, tracker):
        engine = make_engine(ready, bridge_transport=SimulatedBridgeTransport(delay=5))
        plan = engine.plan_transfer(intent(target=OPTIMISM_SEPOLIA))

        task = asyncio.ensure_future(engine.execute_transfer(plan))
        await asyncio.sleep(0)
        assert tracker.is_active

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not tracker.is_active
        (result,) = tracker.results()
        assert result.status is BridgeStatus.FAILED
        assert result.error.startswith("CancelledError")
        assert engine.plan_transfer(intent(target=ARBITRUM_SEPOLIA)).mode is DispatchMode.BRIDGE


class TestBridgeExecution:
    """Gasless bridge through the transport."""

    @pytest.mark.asyncio
    async def test_bridge_outcome(self, engine, transport, tracker):
        plan = engine.plan_transfer(intent(target=OPTIMISM_SEPOLIA))
        outcome = await engine.execute_transfer(plan)

        assert transport.dispatched == [plan]
        assert outcome.bridge_result.status is BridgeStatus.COMPLETED
        assert outcome.receipt.tx_hash == outcome.bridge_result.tx_hash
        assert outcome.receipt.sequence == 1
        assert tracker.progress is None
        assert len(tracker.results()) == 1
