"""Error taxonomy for the wallet orchestrator.

Every error carries a single, specific message that can be shown to the
user as-is. Validation errors are raised before any signature prompt;
collaborator errors wrap failures from chain clients and the relayer.
"""

from typing import Any, Optional


class WalletError(Exception):
    """Base class for all orchestrator errors."""

    pass


class UnknownChainError(WalletError):
    """Raised when a chain id is not in the static chain table."""

    def __init__(self, chain_id: Any):
        self.chain_id = chain_id
        super().__init__(f"Unknown chain id: {chain_id}")


class InvalidRecipientError(WalletError):
    """Raised when a recipient fails the target family's address rules."""

    def __init__(self, recipient: str, family: Any, hint: str):
        self.recipient = recipient
        self.family = family
        self.hint = hint
        super().__init__(hint)


class InvalidAmountError(WalletError):
    """Raised for zero, negative or malformed transfer amounts."""

    def __init__(self, amount: Any, reason: str = "Amount must be a positive integer"):
        self.amount = amount
        super().__init__(f"{reason}: {amount!r}")


class RouteNotSupportedError(WalletError):
    """Raised when no transfer route exists for a chain pair."""

    def __init__(self, source_chain_id: int, target_chain_id: int, message: str = ""):
        self.source_chain_id = source_chain_id
        self.target_chain_id = target_chain_id
        super().__init__(
            message
            or f"Transfers from chain {source_chain_id} to chain {target_chain_id} are not supported"
        )


class SigningUnavailableError(RouteNotSupportedError):
    """Raised when neither a gasless nor an explicit legacy signing path exists."""

    def __init__(self, source_chain_id: int, target_chain_id: int, mode: str):
        self.mode = mode
        super().__init__(
            source_chain_id,
            target_chain_id,
            f"No signing path available for {mode.lower()} transfer: "
            f"connect the relayer or provide a wallet signer",
        )


class SelfTransferError(WalletError):
    """Raised when a same-chain transfer targets the sender's own vault."""

    def __init__(self, chain_id: int, address: str):
        self.chain_id = chain_id
        self.address = address
        super().__init__(
            f"Recipient {address} is your own vault on chain {chain_id}; "
            f"choose a different recipient or destination chain"
        )


class BridgeInProgressError(WalletError):
    """Raised when a bridge is requested while another one is in flight."""

    def __init__(self, active_result_id: Optional[str] = None):
        self.active_result_id = active_result_id
        super().__init__(
            "A cross-chain transfer is already in progress; wait for it to finish"
        )


class InsufficientAllowanceError(WalletError):
    """Raised by the spending guard when a spend exceeds the daily allowance.

    Not fatal: the attached check result always carries suggestions.
    """

    def __init__(self, result: Any):
        self.result = result
        self.suggestions = list(getattr(result, "suggestions", []))
        super().__init__(getattr(result, "message", "Spending limit exceeded"))


class VaultNotDeployedError(WalletError):
    """Raised when a same-chain send is attempted before the vault is deployed."""

    def __init__(self, chain_id: int, address: Optional[str] = None):
        self.chain_id = chain_id
        self.address = address
        super().__init__(
            f"Your vault on chain {chain_id} is not deployed yet; create it before sending"
        )


class NotAuthenticatedError(WalletError):
    """Raised when an operation needs an identity and none is loaded."""

    def __init__(self, operation: str = "This operation"):
        self.operation = operation
        super().__init__(f"{operation} requires a signed-in passkey identity")


class CollaboratorError(WalletError):
    """Wraps a failure reported by a chain client, relayer or other collaborator.

    The dispatch plan (if any) is preserved so the caller can retry without
    rebuilding the request.
    """

    def __init__(
        self,
        collaborator: str,
        cause: BaseException,
        plan: Any = None,
    ):
        self.collaborator = collaborator
        self.cause = cause
        self.plan = plan
        super().__init__(f"{collaborator} failed: {type(cause).__name__}: {cause}")


class LockTimeoutError(WalletError):
    """Raised when a vault dispatch lock cannot be acquired within the timeout."""

    pass


class ConfigurationError(WalletError):
    """Raised when settings do not allow the requested wiring."""

    pass
