"""multivault: client-side orchestrator for passkey-authenticated multi-chain vaults."""

__version__ = "0.1.0"
