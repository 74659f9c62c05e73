"""Chain family classifier and per-family address rules.

All family-specific behaviour lives in one capability table so that adding a
family means adding one entry here instead of editing every call site.
"""

import re
from dataclasses import dataclass
from typing import Callable

from eth_utils import is_address

from multivault.chains import ChainFamily, family_of

__all__ = [
    "FELT252_BOUND",
    "FamilyCapabilities",
    "FAMILY_CAPABILITIES",
    "address_hint",
    "capabilities_for",
    "classify_chain",
    "supports_bridge_from",
    "validate_address",
]

# felt252 values must be strictly below the Stark field prime (2^251 + 17*2^192 + 1)
FELT252_BOUND = 0x0800000000000011000000000000000000000000000000000000000000000000

_EVM_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_SOLANA_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")  # base58, no 0 O I l
_SUI_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
_SHORT_HEX_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


def _validate_evm(address: str) -> bool:
    # eth_utils accepts all-lower / all-upper, and checks EIP-55 on mixed case
    return bool(_EVM_RE.match(address)) and is_address(address)


def _validate_solana(address: str) -> bool:
    return bool(_SOLANA_RE.match(address))


def _validate_sui(address: str) -> bool:
    return bool(_SUI_RE.match(address))


def _validate_aptos(address: str) -> bool:
    # Left-zero-padding is implied by the chain; not performed here
    return bool(_SHORT_HEX_RE.match(address))


def _validate_starknet(address: str) -> bool:
    if not _SHORT_HEX_RE.match(address):
        return False
    return int(address, 16) < FELT252_BOUND


@dataclass(frozen=True)
class FamilyCapabilities:
    """Everything the orchestrator needs to know about a chain family."""

    family: ChainFamily
    validate: Callable[[str], bool]
    address_hint: str  # shown when a recipient fails validation
    placeholder: str
    supports_bridge_from: bool = True


FAMILY_CAPABILITIES: dict[ChainFamily, FamilyCapabilities] = {
    ChainFamily.EVM: FamilyCapabilities(
        family=ChainFamily.EVM,
        validate=_validate_evm,
        address_hint="Invalid EVM address (0x + 40 hex chars)",
        placeholder="0x...",
    ),
    ChainFamily.SOLANA: FamilyCapabilities(
        family=ChainFamily.SOLANA,
        validate=_validate_solana,
        address_hint="Invalid Solana address (base58, 32-44 chars)",
        placeholder="Solana address...",
        # Solana -> other chains needs Token Bridge integration
        supports_bridge_from=False,
    ),
    ChainFamily.SUI: FamilyCapabilities(
        family=ChainFamily.SUI,
        validate=_validate_sui,
        address_hint="Invalid Sui address (0x + 64 hex chars)",
        placeholder="0x... (64 hex chars)",
    ),
    ChainFamily.APTOS: FamilyCapabilities(
        family=ChainFamily.APTOS,
        validate=_validate_aptos,
        address_hint="Invalid Aptos address (0x + up to 64 hex chars)",
        placeholder="0x...",
    ),
    ChainFamily.STARKNET: FamilyCapabilities(
        family=ChainFamily.STARKNET,
        validate=_validate_starknet,
        address_hint="Invalid Starknet address (0x + hex, felt252 range)",
        placeholder="0x...",
    ),
}


def capabilities_for(family: ChainFamily) -> FamilyCapabilities:
    return FAMILY_CAPABILITIES[ChainFamily(family)]


def classify_chain(chain_id: int) -> FamilyCapabilities:
    """Look up the capabilities of a chain's family.

    Raises:
        UnknownChainError: If the chain id is not registered
    """
    return capabilities_for(family_of(chain_id))


def validate_address(family: ChainFamily, address: str) -> bool:
    """Check an address against the syntax rules of a chain family.

    Args:
        family: Chain family the address must belong to
        address: Candidate address string

    Returns:
        True if the address is syntactically valid for the family
    """
    if not isinstance(address, str):
        return False
    return capabilities_for(family).validate(address)


def address_hint(family: ChainFamily) -> str:
    return capabilities_for(family).address_hint


def supports_bridge_from(family: ChainFamily) -> bool:
    return capabilities_for(family).supports_bridge_from
