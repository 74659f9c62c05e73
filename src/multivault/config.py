"""Application configuration using pydantic-settings.

Relayer endpoint, per-chain RPC endpoints, local storage location and the
advisory subsystems' tunables are all read from the environment (or .env).
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from multivault.chains import (
    APTOS_TESTNET,
    ARBITRUM_SEPOLIA,
    BASE_SEPOLIA,
    OPTIMISM_SEPOLIA,
    SOLANA_DEVNET,
    STARKNET_SEPOLIA,
    SUI_TESTNET,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug logging")
    dry_run: bool = Field(
        default=True, description="Use simulated collaborators (no network calls)"
    )

    # ======================
    # Relayer
    # ======================
    relayer_url: str = Field(
        default="http://localhost:3001", description="Relayer backend base URL"
    )
    relayer_api_key: Optional[str] = Field(
        default=None, description="Relayer API key (sent as X-API-Key)"
    )
    relayer_timeout_seconds: float = Field(
        default=30.0, description="Relayer request timeout"
    )
    relayer_poll_interval_seconds: float = Field(
        default=2.0, description="Bridge status polling interval"
    )

    # ======================
    # Chain RPC Endpoints
    # ======================
    base_rpc_url: str = Field(default="https://sepolia.base.org", description="Base Sepolia RPC URL")
    optimism_rpc_url: str = Field(
        default="https://sepolia.optimism.io", description="Optimism Sepolia RPC URL"
    )
    arbitrum_rpc_url: str = Field(
        default="https://sepolia-rollup.arbitrum.io/rpc", description="Arbitrum Sepolia RPC URL"
    )
    solana_rpc_url: str = Field(
        default="https://api.devnet.solana.com", description="Solana Devnet RPC URL"
    )
    sui_rpc_url: str = Field(
        default="https://fullnode.testnet.sui.io:443", description="Sui Testnet RPC URL"
    )
    aptos_rpc_url: str = Field(
        default="https://api.testnet.aptoslabs.com/v1", description="Aptos Testnet RPC URL"
    )
    starknet_rpc_url: str = Field(
        default="https://starknet-sepolia.public.blastapi.io", description="Starknet Sepolia RPC URL"
    )

    # ======================
    # Passkey Sync Reminders
    # ======================
    sync_status_path: str = Field(
        default="./data/sync_status.json", description="Device-local sync status file"
    )
    sync_reminder_interval_days: int = Field(
        default=7, description="Days between at-risk passkey reminders"
    )

    # ======================
    # Dispatch
    # ======================
    dispatch_lock_timeout_seconds: float = Field(
        default=30.0, description="Max wait for a per-vault dispatch lock"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_rpc_url(self, chain_id: int) -> str:
        """Get RPC URL for a chain (by Wormhole chain id)."""
        rpc_map = {
            BASE_SEPOLIA: self.base_rpc_url,
            OPTIMISM_SEPOLIA: self.optimism_rpc_url,
            ARBITRUM_SEPOLIA: self.arbitrum_rpc_url,
            SOLANA_DEVNET: self.solana_rpc_url,
            SUI_TESTNET: self.sui_rpc_url,
            APTOS_TESTNET: self.aptos_rpc_url,
            STARKNET_SEPOLIA: self.starknet_rpc_url,
        }
        return rpc_map.get(chain_id, "")

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "relayer": {
                "url": self.relayer_url,
                "api_key": "***" if self.relayer_api_key else "(not set)",
                "timeout": self.relayer_timeout_seconds,
            },
            "rpc": {
                "base": self.base_rpc_url,
                "optimism": self.optimism_rpc_url,
                "arbitrum": self.arbitrum_rpc_url,
                "solana": self.solana_rpc_url,
                "sui": self.sui_rpc_url,
                "aptos": self.aptos_rpc_url,
                "starknet": self.starknet_rpc_url,
            },
            "sync": {
                "status_path": self.sync_status_path,
                "reminder_interval_days": self.sync_reminder_interval_days,
            },
            "dispatch_lock_timeout": self.dispatch_lock_timeout_seconds,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
