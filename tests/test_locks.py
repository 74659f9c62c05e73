"""Tests for per-vault dispatch locks."""

import asyncio

import pytest

from multivault.errors import LockTimeoutError
from multivault.utils import VaultLock, VaultLockRegistry, vault_lock

KEY = ("a" * 64, 10004)


class TestVaultLocks:
    """Tests for the vault lock registry and context managers."""

    @pytest.fixture
    def registry(self):
        return VaultLockRegistry()

    @pytest.mark.asyncio
    async def test_get_lock_returns_same_instance(self, registry):
        assert await registry.get_lock(KEY) is await registry.get_lock(KEY)

    @pytest.mark.asyncio
    async def test_different_chains_get_different_locks(self, registry):
        """Same identity, different chain: independent locks."""
        other = (KEY[0], 10005)
        assert await registry.get_lock(KEY) is not await registry.get_lock(other)

    @pytest.mark.asyncio
    async def test_context_manager_releases(self, registry):
        async with VaultLock(registry, KEY, operation="test"):
            assert registry.is_locked(KEY)

        assert not registry.is_locked(KEY)

    @pytest.mark.asyncio
    async def test_released_on_error(self, registry):
        with pytest.raises(RuntimeError):
            async with VaultLock(registry, KEY):
                raise RuntimeError("send failed")

        assert not registry.is_locked(KEY)

    @pytest.mark.asyncio
    async def test_prevents_concurrent_access(self, registry):
        results = []

        async def task(name, delay):
            async with VaultLock(registry, KEY, timeout=10.0, operation=f"task_{name}"):
                results.append(f"{name}_start")
                await asyncio.sleep(delay)
                results.append(f"{name}_end")

        await asyncio.gather(task("A", 0.05), task("B", 0.05))

        assert results in [
            ["A_start", "A_end", "B_start", "B_end"],
            ["B_start", "B_end", "A_start", "A_end"],
        ]

    @pytest.mark.asyncio
    async def test_timeout_raises(self, registry):
        async def hold_lock():
            async with VaultLock(registry, KEY, timeout=5.0):
                await asyncio.sleep(0.5)

        hold_task = asyncio.create_task(hold_lock())
        await asyncio.sleep(0.05)

        with pytest.raises(LockTimeoutError):
            async with VaultLock(registry, KEY, timeout=0.1):
                pass

        await hold_task

    @pytest.mark.asyncio
    async def test_functional_form(self, registry):
        async with vault_lock(registry, KEY, operation="test"):
            assert registry.is_locked(KEY)

        assert not registry.is_locked(KEY)

    @pytest.mark.asyncio
    async def test_clear(self, registry):
        await registry.get_lock(KEY)
        registry.clear()
        assert not registry.is_locked(KEY)
        assert not (await registry.get_lock(KEY)).locked()
