"""Passkey sync risk heuristic and reminder scheduler."""

from multivault.sync.heuristic import (
    PlatformSignals,
    SyncInstructions,
    SyncLikelihood,
    estimate_likelihood,
    platform_name,
    sync_instructions,
)
from multivault.sync.scheduler import (
    RiskLevel,
    SyncRiskScheduler,
    SyncStatus,
    SyncUserChoice,
)
from multivault.sync.storage import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    "PlatformSignals",
    "SyncInstructions",
    "SyncLikelihood",
    "estimate_likelihood",
    "platform_name",
    "sync_instructions",
    "RiskLevel",
    "SyncRiskScheduler",
    "SyncStatus",
    "SyncUserChoice",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
]
