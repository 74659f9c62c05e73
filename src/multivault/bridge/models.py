"""Bridge progress snapshot and per-bridge result records."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from multivault.dispatch.models import DispatchPlan


@dataclass(frozen=True)
class BridgeProgressState:
    """One step of a multi-step cross-chain send."""

    step: int
    total_steps: int
    message: str = ""

    def __post_init__(self):
        if self.step < 1:
            raise ValueError(f"step must be >= 1, got {self.step}")
        if self.total_steps < self.step:
            raise ValueError(f"total_steps ({self.total_steps}) < step ({self.step})")

    @property
    def fraction(self) -> float:
        return self.step / self.total_steps


class BridgeStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not BridgeStatus.PENDING


@dataclass
class CrossChainResult:
    """Record of one bridge, retained for the session once terminal."""

    result_id: str
    plan: DispatchPlan
    started_at: datetime
    status: BridgeStatus = BridgeStatus.PENDING
    tx_hash: Optional[str] = None
    sequence: Optional[int] = None
    error: Optional[str] = None
    finished_at: Optional[datetime] = None
    last_progress: Optional[BridgeProgressState] = None

    @property
    def source_chain_id(self) -> int:
        return self.plan.intent.source_chain_id

    @property
    def target_chain_id(self) -> int:
        return self.plan.intent.target_chain_id
