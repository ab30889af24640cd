"""
Services.

Business logic of the referral ledger.
"""

from referral_ledger.services.activation_service import (
    ActivationEvent,
    ActivationResult,
    ActivationService,
)
from referral_ledger.services.wallet_ledger import (
    SqlWalletLedger,
    WalletLedger,
    WalletSnapshot,
)


__all__ = [
    "ActivationEvent",
    "ActivationResult",
    "ActivationService",
    "SqlWalletLedger",
    "WalletLedger",
    "WalletSnapshot",
]
