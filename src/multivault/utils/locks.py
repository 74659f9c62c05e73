"""Concurrency control for vault dispatches.

Provides per-(identity, chain) locking so two same-chain sends from the same
vault cannot race past validation. Each session owns its own registry.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from multivault.errors import LockTimeoutError

logger = logging.getLogger(__name__)

VaultKey = tuple[str, int]  # (identity key hash, chain id)


class VaultLockRegistry:
    """Registry of locks keyed by (identity, chain)."""

    def __init__(self):
        self._locks: dict[VaultKey, asyncio.Lock] = {}
        self._registry_lock = asyncio.Lock()

    async def get_lock(self, key: VaultKey) -> asyncio.Lock:
        """Get or create the lock for a vault.

        Args:
            key: (identity key hash, chain id)

        Returns:
            asyncio.Lock for the vault
        """
        async with self._registry_lock:
            if key not in self._locks:
                self._locks[key] = asyncio.Lock()
            return self._locks[key]

    def is_locked(self, key: VaultKey) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    def clear(self) -> None:
        """Drop all locks (on logout)."""
        self._locks.clear()


class VaultLock:
    """Context manager for exclusive dispatch access to one vault.

    Example:
        async with VaultLock(registry, (identity.key_hash, chain_id)):
            # validate, then send
            ...
    """

    def __init__(
        self,
        registry: VaultLockRegistry,
        key: VaultKey,
        timeout: Optional[float] = 30.0,
        operation: str = "dispatch",
    ):
        """Initialize the lock.

        Args:
            registry: Session lock registry
            key: (identity key hash, chain id)
            timeout: Maximum time to wait for lock (None = wait forever)
            operation: Description of the operation for logging
        """
        self.registry = registry
        self.key = key
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "VaultLock":
        """Acquire the lock."""
        self._lock = await self.registry.get_lock(self.key)

        try:
            if self.timeout:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
            self._acquired = True

            logger.debug(f"Lock acquired for vault {self.key}: {self.operation}")
            return self

        except asyncio.TimeoutError:
            logger.warning(
                f"Lock timeout for vault {self.key} after {self.timeout}s: {self.operation}"
            )
            raise LockTimeoutError(
                f"Another transfer from this vault is still in progress (waited {self.timeout}s)"
            )

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Release the lock."""
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            logger.debug(f"Lock released for vault {self.key}: {self.operation}")
        return False


@asynccontextmanager
async def vault_lock(
    registry: VaultLockRegistry,
    key: VaultKey,
    timeout: Optional[float] = 30.0,
    operation: str = "dispatch",
):
    """Functional form of ``VaultLock``.

    Example:
        async with vault_lock(registry, key, operation="same_chain_send"):
            ...
    """
    async with VaultLock(registry, key, timeout=timeout, operation=operation):
        yield
