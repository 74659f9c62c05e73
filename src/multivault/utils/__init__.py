"""Utility modules for multivault."""

from multivault.utils.locks import VaultLock, VaultLockRegistry, vault_lock

__all__ = ["VaultLock", "VaultLockRegistry", "vault_lock"]
