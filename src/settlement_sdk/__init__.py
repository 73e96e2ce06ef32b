"""Client SDK for paying with creator tokens."""

from .client import SettlementClient
from .encoder import encode_approval, encode_payment
from .orchestrator import PaymentOrchestrator, PaymentOutcome, PaymentState, RetryPolicy
from .wallet import (
    EmbeddedWalletProvider,
    ExternalWalletProvider,
    WalletDetectionResult,
    WalletProvider,
    WalletType,
    detect_wallet_provider,
)

__all__ = [
    "EmbeddedWalletProvider",
    "ExternalWalletProvider",
    "PaymentOrchestrator",
    "PaymentOutcome",
    "PaymentState",
    "RetryPolicy",
    "SettlementClient",
    "WalletDetectionResult",
    "WalletProvider",
    "WalletType",
    "detect_wallet_provider",
    "encode_approval",
    "encode_payment",
]
