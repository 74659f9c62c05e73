"""Single-active-bridge progress tracking.

At most one bridge is in flight per session. Its progress is exposed as one
snapshot plus a pull-based stream of updates; finished bridges stay in the
result list until the UI dismisses them.

Bridge steps, once handed to the relayer, cannot be unsent, so the tracker
offers no cancel operation. A dispatch task that is cancelled anyway still
ends its bridge as failed, which frees the session for the next bridge.
"""

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable, Optional

from multivault.bridge.models import BridgeProgressState, BridgeStatus, CrossChainResult
from multivault.clients.base import BridgeTransport, ProgressSink
from multivault.dispatch.models import DispatchPlan, TransferReceipt
from multivault.errors import BridgeInProgressError

logger = logging.getLogger(__name__)

_DONE = object()

BridgeDispatch = Callable[[ProgressSink], Awaitable[TransferReceipt]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BridgeProgressTracker(ProgressSink):
    """Tracks the active bridge and keeps finished results for the session."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self.clock = clock
        self._active: Optional[CrossChainResult] = None
        self._progress: Optional[BridgeProgressState] = None
        self._results: list[CrossChainResult] = []
        self._subscribers: list[asyncio.Queue] = []

    # ----------------------------------------------------------------
    # Read-only views
    # ----------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._active is not None

    @property
    def progress(self) -> Optional[BridgeProgressState]:
        """Current snapshot, or None when no bridge is in flight."""
        return self._progress

    @property
    def active_result_id(self) -> Optional[str]:
        return self._active.result_id if self._active else None

    def results(self) -> list[CrossChainResult]:
        return [replace(r) for r in self._results]

    def pending(self) -> list[CrossChainResult]:
        return [replace(r) for r in self._results if not r.status.is_terminal]

    def get(self, result_id: str) -> Optional[CrossChainResult]:
        for r in self._results:
            if r.result_id == result_id:
                return replace(r)
        return None

    # ----------------------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------------------

    def ensure_idle(self) -> None:
        """Raise if a bridge is already in flight."""
        if self._active is not None:
            raise BridgeInProgressError(self._active.result_id)

    def begin(self, plan: DispatchPlan) -> CrossChainResult:
        """Register a new bridge.

        Raises:
            BridgeInProgressError: If another bridge is still in flight
        """
        self.ensure_idle()

        result = CrossChainResult(
            result_id=uuid.uuid4().hex,
            plan=plan,
            started_at=self.clock(),
        )
        self._active = result
        self._progress = None
        self._results.append(result)
        logger.info(
            f"Bridge {result.result_id[:8]} started: chain {result.source_chain_id} -> "
            f"{result.target_chain_id}"
        )
        return replace(result)

    def publish(self, state: BridgeProgressState) -> None:
        """Record a step update from the transport.

        Updates that would move the step backwards are dropped.
        """
        if self._active is None:
            logger.warning(f"Dropping progress update with no active bridge: {state}")
            return

        if self._progress is not None and state.step < self._progress.step:
            logger.warning(
                f"Dropping out-of-order bridge progress: step {state.step} after {self._progress.step}"
            )
            return

        self._progress = state
        self._active.last_progress = state
        for queue in self._subscribers:
            queue.put_nowait(state)
        logger.debug(f"Bridge progress {state.step}/{state.total_steps}: {state.message}")

    def _finish(self, result_id: str, **changes) -> CrossChainResult:
        if self._active is None or self._active.result_id != result_id:
            raise KeyError(f"No active bridge with id {result_id}")

        result = self._active
        for key, value in changes.items():
            setattr(result, key, value)
        result.finished_at = self.clock()

        self._active = None
        self._progress = None
        for queue in self._subscribers:
            queue.put_nowait(_DONE)
        self._subscribers = []
        return replace(result)

    def complete(self, result_id: str, receipt: TransferReceipt) -> CrossChainResult:
        result = self._finish(
            result_id,
            status=BridgeStatus.COMPLETED,
            tx_hash=receipt.tx_hash,
            sequence=receipt.sequence,
        )
        logger.info(
            f"Bridge {result_id[:8]} completed: tx={receipt.tx_hash} sequence={receipt.sequence}"
        )
        return result

    def fail(self, result_id: str, error: BaseException) -> CrossChainResult:
        result = self._finish(
            result_id,
            status=BridgeStatus.FAILED,
            error=f"{type(error).__name__}: {error}",
        )
        logger.error(f"Bridge {result_id[:8]} failed: {result.error}")
        return result

    async def track(self, plan: DispatchPlan, dispatch: BridgeDispatch) -> CrossChainResult:
        """Run a bridge dispatch from start to terminal state.

        Args:
            plan: The bridge plan
            dispatch: Coroutine function receiving this tracker as progress sink

        Returns:
            The completed result

        Raises:
            BridgeInProgressError: If another bridge is in flight
            Exception: Whatever the dispatch raised (result marked failed)
            asyncio.CancelledError: The awaiting task was cancelled (result marked failed)
        """
        result = self.begin(plan)
        try:
            receipt = await dispatch(self)
        except BaseException as e:
            self.fail(result.result_id, e)
            raise
        return self.complete(result.result_id, receipt)

    async def run(self, plan: DispatchPlan, transport: BridgeTransport) -> CrossChainResult:
        """Dispatch a bridge plan through a transport, reporting into this tracker."""

        async def dispatch(sink: ProgressSink) -> TransferReceipt:
            return await transport.dispatch_bridge(plan, sink)

        return await self.track(plan, dispatch)

    async def updates(self) -> AsyncIterator[BridgeProgressState]:
        """Pull progress updates for the active bridge until it finishes.

        Every subscriber gets its own copy of the stream, starting with the
        current snapshot. The stream follows the bridge that is in flight when
        iteration starts; with no active bridge it ends at once.

        Example:
            async for state in tracker.updates():
                render(state.step, state.total_steps, state.message)
        """
        if self._active is None:
            return

        queue: asyncio.Queue = asyncio.Queue()
        if self._progress is not None:
            queue.put_nowait(self._progress)
        self._subscribers.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    return
                yield item
        finally:
            if queue in self._subscribers:
                self._subscribers.remove(queue)

    def dismiss(self, result_id: str) -> bool:
        """Remove a finished result (explicit UI action only)."""
        for i, r in enumerate(self._results):
            if r.result_id == result_id:
                if not r.status.is_terminal:
                    raise ValueError("Cannot dismiss a bridge that is still in flight")
                del self._results[i]
                return True
        return False
