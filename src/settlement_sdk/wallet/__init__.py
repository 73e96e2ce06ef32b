"""Wallet providers and detection."""

from dataclasses import dataclass
from typing import Optional, Sequence

from src.logging_utils import get_logger

from .base import WalletProvider, WalletType
from .embedded import EmbeddedWalletProvider
from .external import ExternalWalletProvider, WalletRpcError

logger = get_logger(__name__)

# Detection order: the embedded signer wins when the runtime supplies one.
DETECTION_ORDER = (WalletType.EMBEDDED, WalletType.EXTERNAL)


@dataclass
class WalletDetectionResult:
    provider: Optional[WalletProvider] = None
    wallet_type: Optional[WalletType] = None
    available: bool = False


def default_providers() -> list[WalletProvider]:
    """Providers built from configuration, in detection order."""
    return [EmbeddedWalletProvider.from_environment(), ExternalWalletProvider()]


async def detect_wallet_provider(
    providers: Optional[Sequence[WalletProvider]] = None,
) -> WalletDetectionResult:
    """Return the first available provider, embedded before external."""
    candidates = sorted(
        providers if providers is not None else default_providers(),
        key=lambda p: DETECTION_ORDER.index(p.wallet_type),
    )
    for provider in candidates:
        if await provider.is_available():
            logger.info(f"Using {provider.wallet_type.value} wallet")
            return WalletDetectionResult(provider=provider, wallet_type=provider.wallet_type, available=True)

    logger.warning("No wallet provider available")
    return WalletDetectionResult()


__all__ = [
    "DETECTION_ORDER",
    "EmbeddedWalletProvider",
    "ExternalWalletProvider",
    "WalletDetectionResult",
    "WalletProvider",
    "WalletRpcError",
    "WalletType",
    "default_providers",
    "detect_wallet_provider",
]
