"""Passkey cloud-sync heuristic.

No browser or OS API reports whether a passkey is actually synced. This
module only guesses from opaque platform signals:

- Apple devices (iPhone/iPad/Mac) -> likely (iCloud Keychain)
- Android + Chrome -> likely (Google Password Manager)
- Windows -> unlikely (Windows Hello credentials are device-bound)
- Hardware security keys, Linux, anything else -> unknown

The result is advisory and must never be treated as ground truth.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class SyncLikelihood(str, Enum):
    LIKELY = "likely"
    UNLIKELY = "unlikely"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PlatformSignals:
    """Opaque client signals the heuristic looks at."""

    user_agent: str = ""
    # "platform" for built-in authenticators, "cross-platform" for security keys
    authenticator_attachment: Optional[str] = None

    @property
    def is_security_key(self) -> bool:
        return self.authenticator_attachment == "cross-platform"


@dataclass(frozen=True)
class SyncInstructions:
    """Platform-specific guidance for enabling passkey sync."""

    platform: str
    steps: list[str] = field(default_factory=list)
    note: Optional[str] = None


_APPLE_RE = re.compile(r"iPhone|iPad|Mac")


def estimate_likelihood(signals: Optional[PlatformSignals]) -> SyncLikelihood:
    """Estimate whether a new passkey will survive loss of this device."""
    if signals is None or not signals.user_agent:
        return SyncLikelihood.UNKNOWN

    if signals.is_security_key:
        return SyncLikelihood.UNKNOWN

    ua = signals.user_agent

    if _APPLE_RE.search(ua):
        return SyncLikelihood.LIKELY

    if "Android" in ua and "Chrome" in ua:
        return SyncLikelihood.LIKELY

    if "Windows" in ua:
        return SyncLikelihood.UNLIKELY

    return SyncLikelihood.UNKNOWN


def platform_name(signals: Optional[PlatformSignals]) -> str:
    """Human-readable platform name for display."""
    if signals is None:
        return "Unknown"

    ua = signals.user_agent
    for name in ("iPhone", "iPad", "Mac", "Android", "Windows", "Linux"):
        if name in ua:
            return name
    return "Unknown"


def sync_instructions(signals: Optional[PlatformSignals]) -> SyncInstructions:
    """Get steps for turning on passkey sync on the detected platform."""
    platform = platform_name(signals)

    if platform in ("iPhone", "iPad", "Mac"):
        return SyncInstructions(
            platform="Apple",
            steps=[
                "Go to Settings > [Your Name] > iCloud",
                'Enable "Keychain"',
                "Your passkeys will sync across Apple devices signed in with the same Apple ID",
            ],
            note="Requires iOS 16+ / macOS Ventura+",
        )

    if platform == "Android":
        return SyncInstructions(
            platform="Android / Chrome",
            steps=[
                "Open Chrome Settings > Passwords",
                'Ensure "Offer to save passwords" is enabled',
                "Sign in to Google to sync across devices",
            ],
            note="Requires Android 14+ or Chrome 118+",
        )

    if platform == "Windows":
        return SyncInstructions(
            platform="Windows",
            steps=[
                "Windows Hello passkeys do not sync by default",
                "Consider registering a backup passkey on a mobile device",
                "Or use a cross-platform authenticator like a hardware security key",
            ],
            note="Windows passkeys are device-bound",
        )

    return SyncInstructions(
        platform="Unknown Platform",
        steps=[
            "Check your browser/OS settings for passkey sync options",
            "Consider registering a backup passkey on another device",
        ],
    )
