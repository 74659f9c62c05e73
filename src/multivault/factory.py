"""Factory for wiring a WalletSession from settings.

Uses the HTTP relayer when one is configured, otherwise falls back to
simulated collaborators. Chain clients and the passkey provider are SDK
integrations supplied by the host application; without them the simulated
ones are used. Simulated collaborators are refused in production.
"""

import logging
from datetime import timedelta
from pathlib import Path
from typing import Optional

from multivault.chains import get_all_chains
from multivault.clients.base import (
    BridgeTransport,
    ChainClient,
    PasskeyProvider,
    SpendingLimitsAccessor,
)
from multivault.config import Settings, get_settings
from multivault.errors import ConfigurationError
from multivault.session import WalletSession
from multivault.sync.heuristic import PlatformSignals
from multivault.sync.storage import JsonFileStore, KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)


def create_bridge_transport(settings: Optional[Settings] = None) -> BridgeTransport:
    """Create the bridge transport.

    The real relayer is used unless dry-run mode is on.
    """
    settings = settings or get_settings()

    if not settings.dry_run and settings.relayer_url:
        try:
            from multivault.clients.relayer import HttpRelayerTransport

            return HttpRelayerTransport(
                base_url=settings.relayer_url,
                api_key=settings.relayer_api_key,
                timeout=settings.relayer_timeout_seconds,
                poll_interval=settings.relayer_poll_interval_seconds,
            )
        except Exception as e:
            logger.warning(f"Failed to create relayer transport: {e}")

    if settings.is_production:
        raise ConfigurationError("Simulated bridge transport is not available in production")

    # Fallback to simulated
    from multivault.clients.simulated import SimulatedBridgeTransport

    return SimulatedBridgeTransport()


def create_chain_clients(
    settings: Optional[Settings] = None, chain_ids: Optional[list[int]] = None
) -> dict[int, ChainClient]:
    """Create simulated chain clients for the given (default: all) chains.

    Each client carries the configured RPC endpoint for its chain.
    """
    settings = settings or get_settings()
    if settings.is_production:
        raise ConfigurationError("Simulated chain clients are not available in production")

    from multivault.clients.simulated import SimulatedChainClient

    ids = chain_ids if chain_ids is not None else [c.id for c in get_all_chains()]
    clients = {}
    for chain_id in ids:
        rpc_url = settings.get_rpc_url(chain_id)
        if not rpc_url:
            logger.warning(f"No RPC URL configured for chain {chain_id}")
        clients[chain_id] = SimulatedChainClient(chain_id, rpc_url=rpc_url)
    return clients


def create_store(settings: Optional[Settings] = None, persistent: bool = True) -> KeyValueStore:
    settings = settings or get_settings()
    if persistent and settings.sync_status_path:
        return JsonFileStore(Path(settings.sync_status_path))
    return MemoryStore()


def create_session(
    settings: Optional[Settings] = None,
    chain_clients: Optional[dict[int, ChainClient]] = None,
    passkey: Optional[PasskeyProvider] = None,
    spending_accessor: Optional[SpendingLimitsAccessor] = None,
    platform_signals: Optional[PlatformSignals] = None,
    persistent: bool = True,
) -> WalletSession:
    """Build a session with everything the caller did not supply.

    Args:
        settings: Settings (default: cached environment settings)
        chain_clients: Real chain clients; simulated if omitted
        passkey: Passkey provider; in-memory if omitted
        spending_accessor: Spending-limit accessor; simulated if omitted
        platform_signals: Client signals for the sync heuristic
        persistent: Keep sync status and credential in the JSON store
    """
    from multivault.clients.simulated import InMemoryPasskeyProvider, SimulatedSpendingLimits

    settings = settings or get_settings()
    if settings.is_production and (passkey is None or spending_accessor is None):
        raise ConfigurationError(
            "A passkey provider and spending-limit accessor are required in production"
        )
    store = create_store(settings, persistent=persistent)

    if chain_clients is None:
        chain_clients = create_chain_clients(settings)
        logger.info(f"Using simulated chain clients for {len(chain_clients)} chain(s)")

    session = WalletSession(
        passkey=passkey or InMemoryPasskeyProvider(store),
        chain_clients=chain_clients,
        spending_accessor=spending_accessor or SimulatedSpendingLimits(),
        bridge_transport=create_bridge_transport(settings),
        sync_store=store,
        platform_signals=platform_signals,
        reminder_interval=timedelta(days=settings.sync_reminder_interval_days),
        lock_timeout=settings.dispatch_lock_timeout_seconds,
    )
    logger.info(
        f"Wallet session created (environment={settings.environment}, dry_run={settings.dry_run})"
    )
    return session
