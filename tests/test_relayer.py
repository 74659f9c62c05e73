"""Tests for the HTTP relayer bridge transport."""

import json

import httpx
import pytest

from multivault.bridge import BridgeStatus
from multivault.bridge.tracker import BridgeProgressTracker
from multivault.chains import BASE_SEPOLIA, OPTIMISM_SEPOLIA
from multivault.clients.relayer import HttpRelayerTransport, RelayerError
from multivault.clients.simulated import SimulatedBridgeTransport
from multivault.config import Settings
from multivault.dispatch import DispatchMode, DispatchPlan, SigningMode, TransferIntent
from multivault.dispatch.engine import TransferDispatchEngine
from multivault.errors import CollaboratorError
from multivault.factory import create_bridge_transport

from tests.conftest import make_identity

RELAYER_URL = "https://relayer.example"


def bridge_plan() -> DispatchPlan:
    return DispatchPlan(
        mode=DispatchMode.BRIDGE,
        signing_mode=SigningMode.GASLESS,
        intent=TransferIntent(
            source_chain_id=BASE_SEPOLIA,
            target_chain_id=OPTIMISM_SEPOLIA,
            token="ETH",
            recipient="0x" + "ab" * 20,
            amount=500,
        ),
        source_vault_address="0x" + "cd" * 20,
    )


class FakeRelayer:
    """Scripted relayer: answers POST with an id, then walks a status list."""

    def __init__(self, statuses, submit_status=200, submit_body=None):
        self.statuses = list(statuses)
        self.submit_status = submit_status
        self.submit_body = submit_body if submit_body is not None else {"id": "bridge-1"}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            return httpx.Response(self.submit_status, json=self.submit_body)
        return httpx.Response(200, json=self.statuses.pop(0))

    def transport(self, **kwargs) -> HttpRelayerTransport:
        kwargs.setdefault("poll_interval", 0)
        return HttpRelayerTransport(RELAYER_URL, transport=httpx.MockTransport(self), **kwargs)


class TestDispatch:
    """Submit and poll."""

    @pytest.mark.asyncio
    async def test_happy_path(self, sink):
        relayer = FakeRelayer(
            [
                {"status": "pending", "step": 2, "message": "Waiting for guardians"},
                {"status": "pending", "step": 2, "message": "Waiting for guardians"},
                {"status": "relaying", "step": 3, "message": "Relaying"},
                {"status": "completed", "txHash": "0xdead", "sequence": 42},
            ]
        )
        plan = bridge_plan()

        receipt = await relayer.transport(api_key="secret").dispatch_bridge(plan, sink)

        assert receipt.tx_hash == "0xdead"
        assert receipt.sequence == 42
        assert [s.step for s in sink.states] == [1, 2, 3, 4]
        assert all(s.total_steps == 4 for s in sink.states)

        submit = relayer.requests[0]
        assert str(submit.url) == f"{RELAYER_URL}/api/v1/bridge"
        assert submit.headers["x-api-key"] == "secret"
        assert json.loads(submit.content) == {
            "planId": plan.plan_id,
            "sourceChain": BASE_SEPOLIA,
            "targetChain": OPTIMISM_SEPOLIA,
            "token": "ETH",
            "recipient": "0x" + "ab" * 20,
            "amount": "500",
            "sender": "0x" + "cd" * 20,
        }
        assert str(relayer.requests[1].url) == f"{RELAYER_URL}/api/v1/bridge/bridge-1"

    @pytest.mark.asyncio
    async def test_no_api_key_header_when_unset(self, sink):
        relayer = FakeRelayer([{"status": "delivered", "destinationTxHash": "0x1"}])
        receipt = await relayer.transport().dispatch_bridge(bridge_plan(), sink)

        assert "x-api-key" not in relayer.requests[0].headers
        assert receipt.tx_hash == "0x1"
        assert [s.step for s in sink.states] == [1, 4]

    @pytest.mark.asyncio
    async def test_bridge_id_alias(self, sink):
        relayer = FakeRelayer([{"status": "success"}], submit_body={"bridgeId": 77})
        await relayer.transport().dispatch_bridge(bridge_plan(), sink)
        assert relayer.requests[1].url.path == "/api/v1/bridge/77"

    def test_prefixed_base_url_is_normalized(self):
        transport = HttpRelayerTransport(f"{RELAYER_URL}/api/v1/")
        assert transport.base_url == RELAYER_URL
        assert transport._url("bridge") == f"{RELAYER_URL}/api/v1/bridge"


class TestFailures:
    """Everything the relayer can get wrong."""

    @pytest.mark.asyncio
    async def test_failed_status(self, sink):
        relayer = FakeRelayer([{"status": "failed", "error": "VAA rejected"}])
        with pytest.raises(RelayerError) as exc_info:
            await relayer.transport().dispatch_bridge(bridge_plan(), sink)
        assert "VAA rejected" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_http_error_on_submit(self, sink):
        relayer = FakeRelayer([], submit_status=500, submit_body={"message": "boom"})
        with pytest.raises(RelayerError) as exc_info:
            await relayer.transport().dispatch_bridge(bridge_plan(), sink)
        assert exc_info.value.status_code == 500
        assert sink.states == []

    @pytest.mark.asyncio
    async def test_missing_bridge_id(self, sink):
        relayer = FakeRelayer([], submit_body={"ok": True})
        with pytest.raises(RelayerError):
            await relayer.transport().dispatch_bridge(bridge_plan(), sink)

    @pytest.mark.asyncio
    async def test_error_payload(self, sink):
        relayer = FakeRelayer([], submit_body={"error": "rate limited"})
        with pytest.raises(RelayerError) as exc_info:
            await relayer.transport().dispatch_bridge(bridge_plan(), sink)
        assert "rate limited" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_polling_gives_up(self, sink):
        relayer = FakeRelayer([{"status": "pending"}])
        with pytest.raises(RelayerError) as exc_info:
            await relayer.transport(max_wait=0).dispatch_bridge(bridge_plan(), sink)
        assert "still pending" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unreachable(self, sink):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = HttpRelayerTransport(RELAYER_URL, transport=httpx.MockTransport(handler))
        with pytest.raises(RelayerError) as exc_info:
            await transport.dispatch_bridge(bridge_plan(), sink)
        assert "unreachable" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_engine_wraps_relayer_failure(self, manager, chain_clients, clock):
        relayer = FakeRelayer([{"status": "rejected"}])
        tracker = BridgeProgressTracker(clock=clock)
        engine = TransferDispatchEngine(
            manager, chain_clients, tracker, bridge_transport=relayer.transport()
        )
        await manager.on_login(make_identity())
        plan = engine.plan_transfer(bridge_plan().intent)

        with pytest.raises(CollaboratorError) as exc_info:
            await engine.execute_transfer(plan)

        assert exc_info.value.plan is plan
        assert exc_info.value.collaborator == "http relayer"
        assert isinstance(exc_info.value.cause, RelayerError)
        assert tracker.results()[0].status is BridgeStatus.FAILED
        assert not tracker.is_active


class TestFactory:
    """Transport selection from settings."""

    def test_dry_run_uses_simulated(self):
        settings = Settings(dry_run=True, relayer_url=RELAYER_URL)
        assert isinstance(create_bridge_transport(settings), SimulatedBridgeTransport)

    def test_live_uses_relayer(self):
        settings = Settings(dry_run=False, relayer_url=RELAYER_URL, relayer_api_key="k")
        transport = create_bridge_transport(settings)
        assert isinstance(transport, HttpRelayerTransport)
        assert transport.api_key == "k"

    def test_live_without_url_falls_back(self):
        settings = Settings(dry_run=False, relayer_url="")
        assert isinstance(create_bridge_transport(settings), SimulatedBridgeTransport)
