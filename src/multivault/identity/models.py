"""Identity and per-chain vault records."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class VaultState(str, Enum):
    UNRESOLVED = "unresolved"  # address could not be computed
    VAULT_PENDING = "vault_pending"  # address known, not deployed
    VAULT_DEPLOYED = "vault_deployed"


@dataclass(frozen=True)
class Credential:
    """A passkey credential as returned by the identity provider.

    Only public material: the private key never leaves the authenticator.
    """

    credential_id: str
    public_key_hex: str
    username: str = ""
    display_name: str = ""

    def to_dict(self) -> dict:
        return {
            "credential_id": self.credential_id,
            "public_key_hex": self.public_key_hex,
            "username": self.username,
            "display_name": self.display_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Credential":
        return cls(
            credential_id=data["credential_id"],
            public_key_hex=data["public_key_hex"],
            username=data.get("username", ""),
            display_name=data.get("display_name", ""),
        )


@dataclass(frozen=True)
class Identity:
    """The authenticated identity all vault addresses derive from."""

    credential: Credential
    key_hash: str  # sha256 of the public key, hex

    @classmethod
    def from_credential(cls, credential: Credential) -> "Identity":
        digest = hashlib.sha256(bytes.fromhex(credential.public_key_hex)).hexdigest()
        return cls(credential=credential, key_hash=digest)

    @property
    def short_id(self) -> str:
        return self.key_hash[:12]


@dataclass(frozen=True)
class VaultRecord:
    """Vault state for one (identity, chain) pair.

    The address is deterministic, so it is usually known before the vault
    is deployed.
    """

    chain_id: int
    address: Optional[str] = None
    deployed: bool = False
    last_refreshed_at: Optional[datetime] = None
    balances: dict = field(default_factory=dict)

    def __post_init__(self):
        if self.deployed and self.address is None:
            raise ValueError(f"Deployed vault on chain {self.chain_id} must have an address")

    @property
    def state(self) -> VaultState:
        if self.address is None:
            return VaultState.UNRESOLVED
        if self.deployed:
            return VaultState.VAULT_DEPLOYED
        return VaultState.VAULT_PENDING


@dataclass(frozen=True)
class VaultCreation:
    """What a chain client reports for a sponsored vault creation."""

    address: str
    already_exists: bool = False
    tx_hash: Optional[str] = None


@dataclass(frozen=True)
class VaultCreationResult:
    """Per-chain outcome of ``ensure_deployed``."""

    chain_id: int
    success: bool
    address: Optional[str] = None
    already_exists: bool = False
    tx_hash: Optional[str] = None
    error: Optional[str] = None

    @property
    def newly_created(self) -> bool:
        return self.success and not self.already_exists
