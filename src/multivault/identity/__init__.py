"""Identity and per-chain vault state."""

from multivault.identity.models import (
    AuthState,
    Credential,
    Identity,
    VaultCreation,
    VaultCreationResult,
    VaultRecord,
    VaultState,
)

__all__ = [
    "AuthState",
    "Credential",
    "Identity",
    "VaultCreation",
    "VaultCreationResult",
    "VaultRecord",
    "VaultState",
]
