"""Advisory spending-limit guard.

Turns an on-chain spending-limit snapshot into UI guidance and proposes
remediation when a spend would be rejected on-chain. This is UX only: the
vault contract is authoritative, and an "allowed" verdict here must never be
the only check before requesting a signature.

A daily limit of exactly 0 means "unlimited", not "nothing allowed".
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from multivault.errors import InsufficientAllowanceError, InvalidAmountError

logger = logging.getLogger(__name__)

UNLIMITED = 0


@dataclass(frozen=True)
class SpendingLimitsSnapshot:
    """Read-only projection of a vault's on-chain spending limits."""

    daily_limit: int
    daily_spent: int
    daily_remaining: int
    day_reset_time: datetime
    transaction_limit: int
    is_paused: bool
    chain_id: int

    @property
    def is_unlimited(self) -> bool:
        return self.daily_limit == UNLIMITED


class SuggestionAction(str, Enum):
    UNPAUSE_VAULT = "unpause_vault"
    SEND_PARTIAL = "send_partial"
    INCREASE_LIMIT = "increase_limit"
    WAIT_FOR_RESET = "wait_for_reset"


class UsageLevel(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"  # >= 70%
    CRITICAL = "critical"  # >= 90%


@dataclass(frozen=True)
class LimitSuggestion:
    """One remediation the UI can act on without re-querying."""

    action: SuggestionAction
    label: str
    amount: Optional[int] = None
    new_limit: Optional[int] = None
    wait_seconds: Optional[int] = None


@dataclass(frozen=True)
class LimitCheckResult:
    """Outcome of checking a requested spend against a snapshot."""

    allowed: bool
    message: str
    requested_amount: int
    reason: Optional[str] = None
    allowed_amount: int = 0
    excess_amount: int = 0
    wait_seconds: int = 0
    suggestions: list[LimitSuggestion] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        """True when the send cannot go through as-is (over limit or paused)."""
        return not self.allowed or self.reason == "vault_paused"

    def suggestion(self, action: SuggestionAction) -> Optional[LimitSuggestion]:
        return next((s for s in self.suggestions if s.action == action), None)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def remaining_allowance(snapshot: SpendingLimitsSnapshot) -> int:
    """Amount still spendable today; never negative.

    For an unlimited vault this is 0 as well; callers must check
    ``snapshot.is_unlimited`` before treating it as a cap.
    """
    return max(0, snapshot.daily_limit - snapshot.daily_spent)


def time_until_reset(snapshot: SpendingLimitsSnapshot, now: Optional[datetime] = None) -> timedelta:
    now = now or _now()
    return max(timedelta(0), snapshot.day_reset_time - now)


def format_duration(seconds: float) -> str:
    """Format a countdown as "3h 12m" or "45m"."""
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    minutes = rem // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def percentage_used(snapshot: SpendingLimitsSnapshot) -> float:
    """Share of the daily limit already spent, clamped to 0-100."""
    if snapshot.is_unlimited:
        return 0.0
    # basis points keep two decimals without float division of big ints
    percentage = (snapshot.daily_spent * 10000 // snapshot.daily_limit) / 100
    return min(100.0, max(0.0, percentage))


def usage_level(percentage: float) -> UsageLevel:
    if percentage >= 90:
        return UsageLevel.CRITICAL
    if percentage >= 70:
        return UsageLevel.WARNING
    return UsageLevel.NORMAL


def evaluate(
    requested_amount: int,
    snapshot: SpendingLimitsSnapshot,
    now: Optional[datetime] = None,
) -> LimitCheckResult:
    """Check a requested spend and build ranked suggestions.

    Ordering: unpause first (nothing else works while paused), then
    send_partial, increase_limit, wait_for_reset.

    Args:
        requested_amount: Amount in the token's smallest unit
        snapshot: Current spending limits for the source vault
        now: Reference time for the reset countdown

    Returns:
        LimitCheckResult with suggestions when the spend is blocked
    """
    if isinstance(requested_amount, bool) or not isinstance(requested_amount, int):
        raise InvalidAmountError(requested_amount, "Amount must be an integer")
    if requested_amount < 0:
        raise InvalidAmountError(requested_amount, "Amount must not be negative")

    remaining = remaining_allowance(snapshot)
    wait_seconds = int(time_until_reset(snapshot, now).total_seconds())
    allowed = snapshot.is_unlimited or requested_amount <= remaining

    suggestions: list[LimitSuggestion] = []

    if snapshot.is_paused:
        suggestions.append(
            LimitSuggestion(
                action=SuggestionAction.UNPAUSE_VAULT,
                label="Unpause your vault",
            )
        )

    if not allowed and not (snapshot.is_paused and remaining == 0):
        if remaining > 0:
            suggestions.append(
                LimitSuggestion(
                    action=SuggestionAction.SEND_PARTIAL,
                    label=f"Send {remaining} instead (your remaining limit)",
                    amount=remaining,
                )
            )
        new_limit = snapshot.daily_spent + requested_amount
        suggestions.append(
            LimitSuggestion(
                action=SuggestionAction.INCREASE_LIMIT,
                label=f"Increase daily limit to {new_limit}",
                new_limit=new_limit,
            )
        )
        suggestions.append(
            LimitSuggestion(
                action=SuggestionAction.WAIT_FOR_RESET,
                label=f"Wait {format_duration(wait_seconds)} for the daily reset",
                wait_seconds=wait_seconds,
            )
        )

    if not allowed:
        excess = requested_amount - remaining
        reason = "exceeds_daily_limit"
        message = (
            f"This transfer exceeds your daily limit by {excess}. "
            f"Remaining today: {remaining}."
        )
        if snapshot.is_paused:
            message += " Your vault is also paused."
    elif snapshot.is_paused:
        excess = 0
        reason = "vault_paused"
        message = "Your vault is paused; unpause it before sending."
    else:
        excess = 0
        reason = None
        message = "Within daily limit" if not snapshot.is_unlimited else "No daily limit set"

    result = LimitCheckResult(
        allowed=allowed,
        message=message,
        requested_amount=requested_amount,
        reason=reason,
        allowed_amount=requested_amount if snapshot.is_unlimited else min(requested_amount, remaining),
        excess_amount=excess,
        wait_seconds=wait_seconds,
        suggestions=suggestions,
    )

    if result.blocked:
        logger.debug(
            f"Limit check blocked on chain {snapshot.chain_id}: {reason} "
            f"(requested={requested_amount}, remaining={remaining}, "
            f"suggestions={[s.action.value for s in suggestions]})"
        )
    return result


def ensure_allowed(
    requested_amount: int,
    snapshot: SpendingLimitsSnapshot,
    now: Optional[datetime] = None,
) -> LimitCheckResult:
    """Like ``evaluate`` but raises when the spend is blocked.

    Raises:
        InsufficientAllowanceError: Carrying the result and its suggestions
    """
    result = evaluate(requested_amount, snapshot, now)
    if result.blocked:
        raise InsufficientAllowanceError(result)
    return result


@dataclass(frozen=True)
class SpendingView:
    """UI-facing projection of a snapshot."""

    chain_id: int
    unlimited: bool
    daily_limit: int
    daily_spent: int
    remaining: int
    percentage: float
    level: UsageLevel
    reset_in: timedelta
    reset_countdown: str
    transaction_limit: int
    is_paused: bool


def build_view(snapshot: SpendingLimitsSnapshot, now: Optional[datetime] = None) -> SpendingView:
    pct = percentage_used(snapshot)
    reset_in = time_until_reset(snapshot, now)
    return SpendingView(
        chain_id=snapshot.chain_id,
        unlimited=snapshot.is_unlimited,
        daily_limit=snapshot.daily_limit,
        daily_spent=snapshot.daily_spent,
        remaining=remaining_allowance(snapshot),
        percentage=pct,
        level=usage_level(pct),
        reset_in=reset_in,
        reset_countdown=format_duration(reset_in.total_seconds()),
        transaction_limit=snapshot.transaction_limit,
        is_paused=snapshot.is_paused,
    )
