"""Session-scoped spending-limit cache and limit-change requests.

Every change goes through the on-chain accessor first and is reflected only
after a successful re-fetch; the cached snapshot is never edited locally.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from multivault.clients.base import SpendingLimitsAccessor
from multivault.errors import CollaboratorError
from multivault.spending.guard import (
    LimitCheckResult,
    SpendingLimitsSnapshot,
    SpendingView,
    build_view,
    evaluate,
)
from multivault.state import NOT_STARTED, PENDING, Failed, Ready, Resource, value_or_none

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SpendingLimitsService:
    """Owns the per-chain spending snapshots for one session."""

    def __init__(
        self,
        accessor: SpendingLimitsAccessor,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.accessor = accessor
        self.clock = clock
        self._snapshots: dict[int, Resource] = {}

    def state(self, chain_id: int) -> Resource:
        return self._snapshots.get(chain_id, NOT_STARTED)

    def snapshot(self, chain_id: int) -> Optional[SpendingLimitsSnapshot]:
        return value_or_none(self.state(chain_id))

    async def refresh(self, chain_id: int) -> SpendingLimitsSnapshot:
        """Re-fetch limits from chain.

        A loaded snapshot stays visible while the fetch is in flight; only a
        chain with nothing loaded yet goes to Pending.

        Raises:
            CollaboratorError: If the accessor fails (previous snapshot kept)
        """
        previous = self.state(chain_id)
        if not previous.is_ready:
            self._snapshots[chain_id] = PENDING
        try:
            snapshot = await self.accessor.get_limits(chain_id)
        except Exception as e:
            logger.error(f"Failed to fetch spending limits for chain {chain_id}: {e}")
            self._snapshots[chain_id] = previous if previous.is_ready else Failed(e)
            raise CollaboratorError("spending limits", e) from e

        self._snapshots[chain_id] = Ready(snapshot)
        logger.debug(
            f"Spending limits chain {chain_id}: limit={snapshot.daily_limit} "
            f"spent={snapshot.daily_spent} paused={snapshot.is_paused}"
        )
        return snapshot

    async def _ensure(self, chain_id: int) -> SpendingLimitsSnapshot:
        snapshot = self.snapshot(chain_id)
        if snapshot is None:
            snapshot = await self.refresh(chain_id)
        return snapshot

    def view(self, chain_id: int) -> Optional[SpendingView]:
        """UI view model, or None until a snapshot has loaded."""
        snapshot = self.snapshot(chain_id)
        if snapshot is None:
            return None
        return build_view(snapshot, self.clock())

    async def check(self, chain_id: int, amount: int, fresh: bool = False) -> LimitCheckResult:
        """Evaluate a spend against the cached snapshot, or a re-fetched one."""
        snapshot = await self.refresh(chain_id) if fresh else await self._ensure(chain_id)
        return evaluate(amount, snapshot, self.clock())

    async def _apply(self, chain_id: int, action: str, call) -> SpendingLimitsSnapshot:
        try:
            await call
        except Exception as e:
            logger.error(f"Spending limit {action} failed on chain {chain_id}: {e}")
            raise CollaboratorError(f"spending limits ({action})", e) from e
        logger.info(f"Spending limit {action} confirmed on chain {chain_id}")
        return await self.refresh(chain_id)

    async def request_limit_increase(self, chain_id: int, new_limit: int) -> SpendingLimitsSnapshot:
        """Ask the vault contract for a new daily limit, then re-fetch."""
        if new_limit < 0:
            raise ValueError("Daily limit must not be negative")
        return await self._apply(
            chain_id, "set_daily_limit", self.accessor.set_daily_limit(chain_id, new_limit)
        )

    async def set_transaction_limit(self, chain_id: int, new_limit: int) -> SpendingLimitsSnapshot:
        if new_limit < 0:
            raise ValueError("Transaction limit must not be negative")
        return await self._apply(
            chain_id,
            "set_transaction_limit",
            self.accessor.set_transaction_limit(chain_id, new_limit),
        )

    async def pause(self, chain_id: int) -> SpendingLimitsSnapshot:
        return await self._apply(chain_id, "pause", self.accessor.pause(chain_id))

    async def unpause(self, chain_id: int) -> SpendingLimitsSnapshot:
        return await self._apply(chain_id, "unpause", self.accessor.unpause(chain_id))

    def clear(self) -> None:
        self._snapshots.clear()
