"""Transfer intents, dispatch plans and receipts."""

import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from multivault.errors import InvalidAmountError


_DIGITS_RE = re.compile(r"^[0-9]+$")


class DispatchMode(str, Enum):
    SAME_CHAIN = "same_chain"
    BRIDGE = "bridge"


class SigningMode(str, Enum):
    GASLESS = "gasless"  # relayer pays the fee, passkey signature only
    LEGACY = "legacy"  # wallet-signed, prepare then execute


class SelfTransferKind(str, Enum):
    NONE = "none"
    SAME_CHAIN_WARNING = "same_chain_warning"
    CROSS_CHAIN_SELF_BRIDGE = "cross_chain_self_bridge"


@dataclass(frozen=True)
class TransferIntent:
    """What the user typed into the send form. Never persisted."""

    source_chain_id: int
    target_chain_id: int
    token: str
    recipient: str
    amount: Union[str, int]  # unsigned integer in the token's smallest unit

    @property
    def is_cross_chain(self) -> bool:
        return self.source_chain_id != self.target_chain_id

    @property
    def amount_units(self) -> int:
        """Parse the amount; must be a positive integer.

        Raises:
            InvalidAmountError: For zero, negative, fractional or garbage input
        """
        value = self.amount
        if isinstance(value, bool):
            raise InvalidAmountError(value)
        if isinstance(value, int):
            units = value
        elif isinstance(value, str) and _DIGITS_RE.match(value.strip()):
            units = int(value.strip())
        else:
            raise InvalidAmountError(value, "Amount must be a whole number of base units")
        if units <= 0:
            raise InvalidAmountError(value, "Amount must be greater than zero")
        return units


@dataclass(frozen=True)
class DispatchPlan:
    """How an intent will be executed. Lives for one send operation."""

    mode: DispatchMode
    signing_mode: SigningMode
    intent: TransferIntent
    self_transfer: SelfTransferKind = SelfTransferKind.NONE
    source_vault_address: Optional[str] = None
    plan_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def amount(self) -> int:
        return self.intent.amount_units

    @property
    def is_self_transfer(self) -> bool:
        return self.self_transfer is not SelfTransferKind.NONE

    @property
    def is_self_bridge(self) -> bool:
        return self.self_transfer is SelfTransferKind.CROSS_CHAIN_SELF_BRIDGE

    @property
    def has_warning(self) -> bool:
        return self.self_transfer is SelfTransferKind.SAME_CHAIN_WARNING


@dataclass(frozen=True)
class TransferReceipt:
    """Hash/sequence pair reported by a chain client or the relayer."""

    tx_hash: str
    sequence: int = 0
    chain_id: Optional[int] = None


@dataclass(frozen=True)
class SigningCapabilities:
    """Which signing paths the caller can offer for a plan."""

    gasless_same_chain: bool = False
    gasless_bridge: bool = False
    legacy: bool = False

    def gasless_for(self, mode: DispatchMode) -> bool:
        if mode is DispatchMode.SAME_CHAIN:
            return self.gasless_same_chain
        return self.gasless_bridge
