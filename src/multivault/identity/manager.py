"""Identity and per-chain vault state for the signed-in passkey.

The manager is the only writer of VaultRecords. It reconciles them after
register, login and sponsored vault creation; a failure on one chain only
downgrades that chain's record and never blocks the others.

Next to each record the manager keeps the chain's load state as a Resource:
``Pending`` while a reconcile is in flight, ``Ready(record)`` once the chain
answered, and ``Failed(error)`` when the vault query failed. A failed chain
still has its downgraded record, so callers can show the last known address.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from multivault.chains import get_chain
from multivault.clients.base import ChainClient, PasskeyProvider
from multivault.errors import CollaboratorError, NotAuthenticatedError
from multivault.identity.models import (
    AuthState,
    Identity,
    VaultCreationResult,
    VaultRecord,
)
from multivault.state import NOT_STARTED, PENDING, Failed, Ready, Resource

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IdentityVaultManager:
    """Owns the authenticated identity and its vault records.

    Usage:
        manager = IdentityVaultManager(passkey, clients)
        await manager.register("alice", "Alice")
        results = await manager.on_sponsored_vault_sync()
    """

    def __init__(
        self,
        passkey: PasskeyProvider,
        chain_clients: dict[int, ChainClient],
        chain_ids: Optional[list[int]] = None,
        on_credential_deleted: Optional[Callable[[], None]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the manager.

        Args:
            passkey: Passkey provider (ceremonies + local credential storage)
            chain_clients: Chain client per chain id
            chain_ids: Chains to maintain vaults on (default: all with a client)
            on_credential_deleted: Hook run after permanent credential deletion
            clock: Time source
        """
        self.passkey = passkey
        self.chain_clients = dict(chain_clients)
        self.chain_ids = list(chain_ids) if chain_ids is not None else list(self.chain_clients)
        for chain_id in self.chain_ids:
            get_chain(chain_id)
        self.on_credential_deleted = on_credential_deleted
        self.clock = clock

        self._identity: Optional[Identity] = None
        self._records: dict[int, VaultRecord] = {}
        self._states: dict[int, Resource] = {}

    # ----------------------------------------------------------------
    # Read-only projections
    # ----------------------------------------------------------------

    @property
    def auth_state(self) -> AuthState:
        return AuthState.AUTHENTICATED if self._identity else AuthState.UNAUTHENTICATED

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    def require_identity(self, operation: str = "This operation") -> Identity:
        if self._identity is None:
            raise NotAuthenticatedError(operation)
        return self._identity

    def records(self) -> dict[int, VaultRecord]:
        return dict(self._records)

    def record(self, chain_id: int) -> Optional[VaultRecord]:
        return self._records.get(chain_id)

    def vault_state(self, chain_id: int) -> Resource:
        """Load state of one chain's vault record."""
        return self._states.get(chain_id, NOT_STARTED)

    def vault_address(self, chain_id: int) -> Optional[str]:
        record = self._records.get(chain_id)
        return record.address if record else None

    def has_stored_credential(self) -> bool:
        try:
            return self.passkey.has_stored()
        except Exception as e:
            logger.warning(f"Could not read stored credential: {e}")
            return False

    # ----------------------------------------------------------------
    # Lifecycle events
    # ----------------------------------------------------------------

    async def register(self, username: str, display_name: str) -> Identity:
        """Create a passkey, persist it locally and reconcile all vaults."""
        try:
            credential = await self.passkey.register(username, display_name)
        except Exception as e:
            logger.error(f"Registration failed: {e}")
            raise CollaboratorError("passkey registration", e) from e

        self.passkey.save(credential)
        identity = Identity.from_credential(credential)
        await self.on_register(identity)
        return identity

    async def login(self) -> Identity:
        """Authenticate with an existing passkey and reconcile all vaults."""
        try:
            credential = await self.passkey.authenticate()
        except Exception as e:
            logger.error(f"Login failed: {e}")
            raise CollaboratorError("passkey authentication", e) from e

        # saved again in case it was never persisted on this device
        self.passkey.save(credential)
        identity = Identity.from_credential(credential)
        await self.on_login(identity)
        return identity

    async def restore(self) -> Optional[Identity]:
        """Resume a session from the stored credential, if any."""
        try:
            credential = self.passkey.load_stored()
        except Exception as e:
            logger.warning(f"Could not load stored credential: {e}")
            return None

        if credential is None:
            return None

        identity = Identity.from_credential(credential)
        await self.on_login(identity)
        return identity

    async def on_register(self, identity: Identity) -> list[VaultRecord]:
        logger.info(f"Registered identity {identity.short_id}")
        self._set_identity(identity)
        return await self.reconcile(identity)

    async def on_login(self, identity: Identity) -> list[VaultRecord]:
        logger.info(f"Signed in identity {identity.short_id}")
        self._set_identity(identity)
        return await self.reconcile(identity)

    async def on_sponsored_vault_sync(self) -> list[VaultCreationResult]:
        """Create missing vaults everywhere, then reconcile."""
        identity = self.require_identity("Vault creation")
        results = await self.ensure_deployed(identity)
        await self.reconcile(identity)
        return results

    def _is_current(self, identity: Identity) -> bool:
        return self._identity is not None and self._identity.key_hash == identity.key_hash

    def _set_identity(self, identity: Identity) -> None:
        if self._identity is not None and self._identity.key_hash != identity.key_hash:
            self._records.clear()
            self._states.clear()
        self._identity = identity

    def logout(self) -> None:
        """Forget this session. The stored credential stays on the device."""
        try:
            self.passkey.clear_session()
        except Exception as e:
            logger.warning(f"Passkey session clear failed: {e}")
        self._identity = None
        self._records.clear()
        self._states.clear()
        logger.info("Logged out")

    def delete_credential(self) -> None:
        """Permanently remove the stored credential from this device."""
        self.logout()
        self.passkey.remove_stored()
        if self.on_credential_deleted is not None:
            self.on_credential_deleted()
        logger.info("Stored credential deleted")

    # ----------------------------------------------------------------
    # Reconciliation
    # ----------------------------------------------------------------

    async def _reconcile_chain(
        self, identity: Identity, chain_id: int
    ) -> tuple[VaultRecord, Optional[Exception]]:
        client = self.chain_clients.get(chain_id)
        previous = self._records.get(chain_id)
        balances = previous.balances if previous else {}
        refreshed = previous.last_refreshed_at if previous else None

        if client is None:
            message = f"No chain client for chain {chain_id}"
            logger.warning(f"{message}; vault unresolved")
            return VaultRecord(chain_id=chain_id), LookupError(message)

        address: Optional[str] = None
        try:
            address = await client.compute_vault_address(identity)
            deployed = await client.vault_exists(address)
        except Exception as e:
            logger.warning(
                f"Vault query failed on chain {chain_id}: {type(e).__name__}: {e}"
            )
            downgraded = VaultRecord(
                chain_id=chain_id,
                address=address,
                deployed=False,
                last_refreshed_at=refreshed,
                balances=balances,
            )
            return downgraded, e

        record = VaultRecord(
            chain_id=chain_id,
            address=address,
            deployed=bool(deployed),
            last_refreshed_at=refreshed,
            balances=balances,
        )
        return record, None

    async def reconcile(self, identity: Optional[Identity] = None) -> list[VaultRecord]:
        """Recompute address and deployment status on every configured chain.

        Never raises for per-chain failures.

        Returns:
            One record per configured chain, in configuration order
        """
        identity = identity or self.require_identity("Vault reconciliation")

        if self._is_current(identity):
            for chain_id in self.chain_ids:
                self._states[chain_id] = PENDING

        outcomes = await asyncio.gather(
            *(self._reconcile_chain(identity, chain_id) for chain_id in self.chain_ids)
        )
        records = [record for record, _ in outcomes]

        # identity may have changed while we were awaiting
        if not self._is_current(identity):
            logger.info("Identity changed during reconciliation; discarding results")
            return records

        for record, error in outcomes:
            self._records[record.chain_id] = record
            self._states[record.chain_id] = Ready(record) if error is None else Failed(error)

        deployed = sum(1 for r in records if r.deployed)
        logger.info(
            f"Reconciled {len(records)} chain(s) for {identity.short_id}: {deployed} deployed"
        )
        return records

    async def _deploy_chain(self, identity: Identity, chain_id: int) -> VaultCreationResult:
        record = self._records.get(chain_id)
        if record is not None and record.deployed:
            return VaultCreationResult(
                chain_id=chain_id, success=True, address=record.address, already_exists=True
            )

        client = self.chain_clients.get(chain_id)
        if client is None:
            return VaultCreationResult(
                chain_id=chain_id, success=False, error="No chain client configured"
            )

        try:
            creation = await client.create_vault_sponsored(identity)
        except Exception as e:
            logger.warning(f"Sponsored vault creation failed on chain {chain_id}: {e}")
            return VaultCreationResult(
                chain_id=chain_id,
                success=False,
                address=record.address if record else None,
                error=f"{type(e).__name__}: {e}",
            )

        if not creation.already_exists:
            logger.info(f"Vault created on chain {chain_id}: {creation.address}")

        return VaultCreationResult(
            chain_id=chain_id,
            success=True,
            address=creation.address,
            already_exists=creation.already_exists,
            tx_hash=creation.tx_hash,
        )

    async def ensure_deployed(self, identity: Optional[Identity] = None) -> list[VaultCreationResult]:
        """Create a sponsored vault on every chain that lacks one.

        Raises:
            NotAuthenticatedError: Only if there is no identity at all
        """
        identity = identity or self.require_identity("Vault creation")

        results = await asyncio.gather(
            *(self._deploy_chain(identity, chain_id) for chain_id in self.chain_ids)
        )

        if self._is_current(identity):
            for result in results:
                if result.success and result.address:
                    current = self._records.get(result.chain_id) or VaultRecord(result.chain_id)
                    record = replace(current, address=result.address, deployed=True)
                    self._records[result.chain_id] = record
                    self._states[result.chain_id] = Ready(record)

        created = sum(1 for r in results if r.newly_created)
        failed = sum(1 for r in results if not r.success)
        logger.info(f"Sponsored vault sync: {created} created, {failed} failed")
        return list(results)

    # ----------------------------------------------------------------
    # Balances
    # ----------------------------------------------------------------

    async def refresh_balances(self, chain_id: int) -> Optional[VaultRecord]:
        """Refresh balances for one chain; failures keep the old balances."""
        record = self._records.get(chain_id)
        client = self.chain_clients.get(chain_id)
        if record is None or record.address is None or client is None:
            return record

        try:
            balances = await client.get_balances(record.address)
        except Exception as e:
            logger.warning(f"Balance refresh failed on chain {chain_id}: {e}")
            return record

        current = self._records.get(chain_id)
        if current is None or current.address != record.address:
            return current

        updated = replace(current, balances=dict(balances), last_refreshed_at=self.clock())
        self._records[chain_id] = updated
        if self.vault_state(chain_id).is_ready:
            self._states[chain_id] = Ready(updated)
        return updated

    async def refresh_all_balances(self) -> dict[int, VaultRecord]:
        await asyncio.gather(*(self.refresh_balances(c) for c in list(self._records)))
        return self.records()
