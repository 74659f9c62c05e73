"""Transfer dispatch: intents, plans and the decision engine."""

from multivault.dispatch.models import (
    DispatchMode,
    DispatchPlan,
    SelfTransferKind,
    SigningCapabilities,
    SigningMode,
    TransferIntent,
    TransferReceipt,
)

__all__ = [
    "DispatchMode",
    "DispatchPlan",
    "SelfTransferKind",
    "SigningCapabilities",
    "SigningMode",
    "TransferIntent",
    "TransferReceipt",
]
