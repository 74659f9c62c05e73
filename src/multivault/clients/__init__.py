"""External collaborator interfaces and implementations."""

from multivault.clients.base import (
    BridgeTransport,
    ChainClient,
    LegacySigner,
    PasskeyProvider,
    ProgressSink,
    SpendingLimitsAccessor,
)

__all__ = [
    "BridgeTransport",
    "ChainClient",
    "LegacySigner",
    "PasskeyProvider",
    "ProgressSink",
    "SpendingLimitsAccessor",
]
