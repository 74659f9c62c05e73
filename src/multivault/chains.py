"""Static chain table for all supported vault chains.

Supports 7 chains across 5 families:
- EVM: Base Sepolia (hub), Optimism Sepolia, Arbitrum Sepolia
- Solana Devnet
- Sui Testnet
- Aptos Testnet
- Starknet Sepolia (custom bridge, not Wormhole)

Chains are keyed by their Wormhole chain id. Starknet uses an id from the
50000+ range reserved for non-Wormhole chains.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from multivault.errors import UnknownChainError


class ChainFamily(str, Enum):
    """Architectural family of a chain."""

    EVM = "evm"
    SOLANA = "solana"
    SUI = "sui"
    APTOS = "aptos"
    STARKNET = "starknet"


@dataclass(frozen=True)
class ChainDescriptor:
    """Immutable description of a supported chain."""

    id: int  # Wormhole chain id
    family: ChainFamily
    name: str
    symbol: str
    explorer_url: str
    is_hub: bool = False
    decimals: int = 18
    tx_path: str = "/tx/{hash}"  # explorer path template
    native_chain_id: Optional[int] = None  # EVM chain id where applicable

    @property
    def is_evm(self) -> bool:
        return self.family is ChainFamily.EVM


# ======================
# Chain Table
# ======================

BASE_SEPOLIA = 10004
OPTIMISM_SEPOLIA = 10005
ARBITRUM_SEPOLIA = 10003
SOLANA_DEVNET = 1
SUI_TESTNET = 21
APTOS_TESTNET = 22
STARKNET_SEPOLIA = 50001

CHAINS: dict[int, ChainDescriptor] = {
    # Hub chain - vault factory also deployed here
    BASE_SEPOLIA: ChainDescriptor(
        id=BASE_SEPOLIA,
        family=ChainFamily.EVM,
        name="Base Sepolia",
        symbol="BASE",
        explorer_url="https://sepolia.basescan.org",
        is_hub=True,
        native_chain_id=84532,
    ),
    OPTIMISM_SEPOLIA: ChainDescriptor(
        id=OPTIMISM_SEPOLIA,
        family=ChainFamily.EVM,
        name="Optimism Sepolia",
        symbol="OP",
        explorer_url="https://sepolia-optimism.etherscan.io",
        native_chain_id=11155420,
    ),
    ARBITRUM_SEPOLIA: ChainDescriptor(
        id=ARBITRUM_SEPOLIA,
        family=ChainFamily.EVM,
        name="Arbitrum Sepolia",
        symbol="ARB",
        explorer_url="https://sepolia.arbiscan.io",
        native_chain_id=421614,
    ),
    SOLANA_DEVNET: ChainDescriptor(
        id=SOLANA_DEVNET,
        family=ChainFamily.SOLANA,
        name="Solana Devnet",
        symbol="SOL",
        explorer_url="https://explorer.solana.com",
        decimals=9,
        tx_path="/tx/{hash}?cluster=devnet",
    ),
    SUI_TESTNET: ChainDescriptor(
        id=SUI_TESTNET,
        family=ChainFamily.SUI,
        name="Sui Testnet",
        symbol="SUI",
        explorer_url="https://suiscan.xyz/testnet",
        decimals=9,
    ),
    APTOS_TESTNET: ChainDescriptor(
        id=APTOS_TESTNET,
        family=ChainFamily.APTOS,
        name="Aptos Testnet",
        symbol="APT",
        explorer_url="https://explorer.aptoslabs.com",
        decimals=8,
        tx_path="/txn/{hash}?network=testnet",
    ),
    STARKNET_SEPOLIA: ChainDescriptor(
        id=STARKNET_SEPOLIA,
        family=ChainFamily.STARKNET,
        name="Starknet Sepolia",
        symbol="STRK",
        explorer_url="https://sepolia.starkscan.co",
    ),
}


# ======================
# Helper Functions
# ======================

def get_chain(chain_id: int) -> ChainDescriptor:
    """Get chain descriptor by id.

    Raises:
        UnknownChainError: If the id is not in the static table
    """
    try:
        return CHAINS[chain_id]
    except (KeyError, TypeError):
        raise UnknownChainError(chain_id) from None


def family_of(chain_id: int) -> ChainFamily:
    """Map a chain id to its family."""
    return get_chain(chain_id).family


def is_known_chain(chain_id: int) -> bool:
    try:
        return chain_id in CHAINS
    except TypeError:
        return False


def get_all_chains() -> list[ChainDescriptor]:
    """Get all chain descriptors in table order."""
    return list(CHAINS.values())


def get_chains_by_family(family: ChainFamily) -> list[ChainDescriptor]:
    return [c for c in CHAINS.values() if c.family is family]


def get_hub_chain() -> ChainDescriptor:
    """Get the hub chain (Base Sepolia)."""
    return next(c for c in CHAINS.values() if c.is_hub)


def explorer_tx_url(chain_id: int, tx_hash: str) -> str:
    """Build a block explorer link for a transaction."""
    chain = get_chain(chain_id)
    return chain.explorer_url + chain.tx_path.format(hash=tx_hash)
