"""Passkey sync risk assessment and weekly reminder scheduling.

Keeps the persisted SyncStatus for this device and answers the UI's
questions (show banner? show reminder? what risk level?). Storage failures
are logged and absorbed: this subsystem must never block wallet usage.
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel

from multivault.sync.heuristic import (
    PlatformSignals,
    SyncInstructions,
    SyncLikelihood,
    estimate_likelihood,
    platform_name,
    sync_instructions,
)
from multivault.sync.storage import KeyValueStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "veridex_sync_status"
DEFAULT_REMINDER_INTERVAL = timedelta(days=7)


class SyncUserChoice(str, Enum):
    YES = "yes"
    NO = "no"
    NOT_SURE = "not-sure"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


AT_RISK_CHOICES = (SyncUserChoice.NO, SyncUserChoice.NOT_SURE)


class SyncStatus(BaseModel):
    """Persisted passkey sync status (one per device)."""

    heuristic: Optional[SyncLikelihood] = None
    user_choice: Optional[SyncUserChoice] = None
    confirmed_at: Optional[datetime] = None
    last_reminder_at: Optional[datetime] = None
    reminder_dismissed: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncRiskScheduler:
    """Sync status owner for one device.

    Only ``confirm`` changes ``user_choice``; the reminder methods touch
    ``last_reminder_at`` and ``reminder_dismissed`` only.

    Usage:
        scheduler = SyncRiskScheduler(JsonFileStore(path), signals)
        if scheduler.should_show_weekly_reminder():
            scheduler.record_reminder_shown()
    """

    def __init__(
        self,
        store: KeyValueStore,
        signals: Optional[PlatformSignals] = None,
        clock: Callable[[], datetime] = _utcnow,
        reminder_interval: timedelta = DEFAULT_REMINDER_INTERVAL,
    ):
        self.store = store
        self.signals = signals
        self.clock = clock
        self.reminder_interval = reminder_interval

    # ----------------------------------------------------------------
    # Persistence
    # ----------------------------------------------------------------

    def _default_status(self) -> SyncStatus:
        return SyncStatus(heuristic=estimate_likelihood(self.signals))

    def status(self) -> SyncStatus:
        """Load the persisted status, falling back to defaults.

        A stored blob without a heuristic gets a fresh estimate for this device.
        """
        try:
            raw = self.store.get(STORAGE_KEY)
            if raw:
                status = SyncStatus.model_validate_json(raw)
                if status.heuristic is None:
                    status = status.model_copy(
                        update={"heuristic": estimate_likelihood(self.signals)}
                    )
                return status
        except Exception as e:
            logger.warning(f"Failed to read sync status, using defaults: {type(e).__name__}: {e}")
        return self._default_status()

    def _save(self, status: SyncStatus) -> None:
        try:
            self.store.set(STORAGE_KEY, status.model_dump_json())
        except Exception as e:
            logger.warning(f"Failed to save sync status: {type(e).__name__}: {e}")

    def clear(self) -> None:
        """Forget the status (only on permanent credential deletion)."""
        try:
            self.store.remove(STORAGE_KEY)
            logger.info("Sync status cleared")
        except Exception as e:
            logger.warning(f"Failed to clear sync status: {type(e).__name__}: {e}")

    # ----------------------------------------------------------------
    # Mutations
    # ----------------------------------------------------------------

    def confirm(self, choice: SyncUserChoice) -> SyncStatus:
        """Record the user's answer; restarts the reminder clock."""
        choice = SyncUserChoice(choice)
        status = self.status().model_copy(
            update={
                "user_choice": choice,
                "confirmed_at": self.clock(),
                "last_reminder_at": None,
                "reminder_dismissed": False,
            }
        )
        self._save(status)
        logger.info(f"Sync choice confirmed: {choice.value}")
        return status

    def record_reminder_shown(self) -> SyncStatus:
        status = self.status().model_copy(
            update={"last_reminder_at": self.clock(), "reminder_dismissed": False}
        )
        self._save(status)
        return status

    def dismiss_reminder(self) -> SyncStatus:
        status = self.status().model_copy(update={"reminder_dismissed": True})
        self._save(status)
        return status

    # ----------------------------------------------------------------
    # Queries
    # ----------------------------------------------------------------

    def needs_confirmation(self) -> bool:
        return self.status().user_choice is None

    def should_show_banner(self) -> bool:
        """Banner shows until the user reports their passkey is synced."""
        return self.status().user_choice != SyncUserChoice.YES

    def should_show_weekly_reminder(self) -> bool:
        """True for at-risk users once per reminder interval, unless dismissed."""
        status = self.status()

        if status.user_choice not in AT_RISK_CHOICES:
            return False

        if status.reminder_dismissed:
            return False

        anchors = [t for t in (status.last_reminder_at, status.confirmed_at) if t is not None]
        if not anchors:
            return True

        return self.clock() - max(anchors) >= self.reminder_interval

    def risk_level(self) -> RiskLevel:
        status = self.status()

        if status.user_choice == SyncUserChoice.YES:
            return RiskLevel.LOW

        if status.user_choice == SyncUserChoice.NO:
            return RiskLevel.HIGH

        # not-sure, unconfirmed-but-likely, and everything else
        return RiskLevel.MEDIUM

    def platform_name(self) -> str:
        return platform_name(self.signals)

    def instructions(self) -> SyncInstructions:
        return sync_instructions(self.signals)
