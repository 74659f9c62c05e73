"""Cross-chain bridge progress tracking."""

from multivault.bridge.models import BridgeProgressState, BridgeStatus, CrossChainResult

__all__ = [
    "BridgeProgressState",
    "BridgeStatus",
    "CrossChainResult",
]
