"""HTTP relayer bridge transport.

Talks to the relayer REST API:
    POST {base}/api/v1/bridge           submit a bridge, returns its id
    GET  {base}/api/v1/bridge/{id}      poll status

The relayer pays the destination-chain fees and delivers the VAA; this
client only submits and then polls until a terminal status.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from multivault.bridge.models import BridgeProgressState
from multivault.chains import get_chain
from multivault.clients.base import BridgeTransport, ProgressSink
from multivault.dispatch.models import DispatchPlan, TransferReceipt

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
TOTAL_STEPS = 4

_COMPLETED = {"completed", "complete", "success", "delivered"}
_FAILED = {"failed", "error", "rejected"}


class RelayerError(Exception):
    """The relayer rejected a request or reported a failed bridge."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class HttpRelayerTransport(BridgeTransport):
    """Bridge transport backed by the relayer HTTP API."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        poll_interval: float = 2.0,
        max_wait: float = 900.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the transport.

        Args:
            base_url: Relayer root URL (without /api/v1)
            api_key: Sent as X-API-Key when set
            timeout: Per-request timeout in seconds
            poll_interval: Seconds between status polls
            max_wait: Give up polling after this many seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        base = base_url.rstrip("/")
        # callers sometimes pass the prefixed URL already
        if base.endswith(API_PREFIX):
            base = base[: -len(API_PREFIX)]
        self.base_url = base
        self.api_key = api_key
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self._transport = transport

    @property
    def name(self) -> str:
        return "http"

    def _url(self, path: str) -> str:
        return f"{self.base_url}{API_PREFIX}/{path.lstrip('/')}"

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json", "content-type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers=self._headers(),
            transport=self._transport,
        )

    @staticmethod
    def _payload(plan: DispatchPlan) -> dict:
        intent = plan.intent
        return {
            "planId": plan.plan_id,
            "sourceChain": intent.source_chain_id,
            "targetChain": intent.target_chain_id,
            "token": intent.token,
            "recipient": intent.recipient,
            "amount": str(plan.amount),
            "sender": plan.source_vault_address,
        }

    @staticmethod
    def _json(response: httpx.Response, action: str) -> dict:
        if response.status_code >= 400:
            raise RelayerError(
                f"Relayer {action} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise RelayerError(f"Relayer {action} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise RelayerError(f"Relayer {action} returned unexpected payload")
        if "error" in data and data.get("status") is None:
            raise RelayerError(f"Relayer {action} error: {data['error']}", response.status_code)
        return data

    async def submit(self, client: httpx.AsyncClient, plan: DispatchPlan) -> str:
        """Submit a bridge and return the relayer's id for it."""
        response = await client.post(self._url("bridge"), json=self._payload(plan))
        data = self._json(response, "submit")
        bridge_id = data.get("id") or data.get("bridgeId")
        if not bridge_id:
            raise RelayerError("Relayer submit response has no bridge id")
        return str(bridge_id)

    async def get_status(self, client: httpx.AsyncClient, bridge_id: str) -> dict:
        response = await client.get(self._url(f"bridge/{bridge_id}"))
        return self._json(response, "status")

    async def dispatch_bridge(self, plan: DispatchPlan, progress: ProgressSink) -> TransferReceipt:
        """Submit and poll until the relayer reports a terminal status.

        Raises:
            RelayerError: HTTP error, failed bridge or polling timeout
        """
        source = get_chain(plan.intent.source_chain_id)
        target = get_chain(plan.intent.target_chain_id)

        try:
            async with self._client() as client:
                bridge_id = await self.submit(client, plan)
                logger.info(f"Relayer accepted bridge {bridge_id}: {source.name} -> {target.name}")
                progress.publish(
                    BridgeProgressState(1, TOTAL_STEPS, f"Transfer submitted on {source.name}")
                )

                last_step = 1
                deadline = time.monotonic() + self.max_wait

                while True:
                    data = await self.get_status(client, bridge_id)
                    status = str(data.get("status", "pending")).lower()

                    if status in _COMPLETED:
                        if last_step < TOTAL_STEPS:
                            progress.publish(
                                BridgeProgressState(
                                    TOTAL_STEPS, TOTAL_STEPS, f"Delivered on {target.name}"
                                )
                            )
                        return TransferReceipt(
                            tx_hash=str(data.get("txHash") or data.get("destinationTxHash") or ""),
                            sequence=int(data.get("sequence") or 0),
                            chain_id=plan.intent.source_chain_id,
                        )

                    if status in _FAILED:
                        raise RelayerError(
                            f"Bridge {bridge_id} failed: {data.get('error') or 'relayer reported failure'}"
                        )

                    step = data.get("step")
                    if isinstance(step, int) and last_step < step < TOTAL_STEPS:
                        last_step = step
                        progress.publish(
                            BridgeProgressState(step, TOTAL_STEPS, str(data.get("message") or status))
                        )

                    if time.monotonic() >= deadline:
                        raise RelayerError(
                            f"Bridge {bridge_id} still pending after {self.max_wait:.0f}s"
                        )
                    await asyncio.sleep(self.poll_interval)

        except httpx.HTTPError as e:
            logger.error(f"Relayer request failed: {e}")
            raise RelayerError(f"Relayer unreachable: {type(e).__name__}: {e}") from e
