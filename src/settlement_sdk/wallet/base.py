"""Wallet provider interface.

A provider resolves the payer address and submits transactions on the target
chain. Expected failures (no signer, user declined, wrong chain, RPC errors)
come back as values: ``None`` addresses and unsuccessful ``TransactionResult``
objects. Only programming errors raise.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

from src.config import config
from src.errors import PaymentErrorCategory
from src.logging_utils import get_logger
from src.models import TransactionRequest, TransactionResult

logger = get_logger(__name__)

AccountChangeCallback = Callable[[Optional[str]], None]


class WalletType(str, Enum):
    """Signing backend variant."""

    EMBEDDED = "embedded"
    EXTERNAL = "external"


class WalletProvider(ABC):
    """Uniform async interface over the signing backends."""

    wallet_type: WalletType

    def __init__(self, chain_id: Optional[int] = None):
        self.chain_id = chain_id or config.chain_id
        self._account_callbacks: list[AccountChangeCallback] = []
        self._last_address: Optional[str] = None
        self._address_observed = False

    @abstractmethod
    async def is_available(self) -> bool:
        """Whether this backend can sign right now."""

    @abstractmethod
    async def get_address(self) -> Optional[str]:
        """Address of the active account, or None if it cannot be read."""

    @abstractmethod
    async def get_chain_id(self) -> Optional[int]:
        """Chain the backend is currently on, or None if it cannot be read."""

    @abstractmethod
    async def _submit(self, request: TransactionRequest) -> TransactionResult:
        """Sign and broadcast a request already known to target the active chain."""

    async def switch_chain(self, chain_id: int) -> bool:
        """Ask the backend to switch chains. Unsupported by default."""
        return False

    async def wait_for_receipt(self, transaction_hash: str, timeout: float) -> Optional[dict]:
        """Wait until a transaction is mined. Unsupported by default.

        Returns:
            The receipt, or None if it was not seen within ``timeout``.
        """
        return None

    def on_account_change(self, callback: AccountChangeCallback) -> Callable[[], None]:
        """Register a callback for account changes.

        Returns:
            A function that unregisters the callback.
        """
        self._account_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._account_callbacks:
                self._account_callbacks.remove(callback)

        return unsubscribe

    def _observe_address(self, address: Optional[str]) -> None:
        """Record the latest address and notify callbacks when it changed."""
        previous = self._last_address
        first = not self._address_observed
        self._last_address = address
        self._address_observed = True
        if first or previous == address:
            return
        logger.info(f"{self.wallet_type.value} wallet account changed: {previous} -> {address}")
        for callback in list(self._account_callbacks):
            callback(address)

    async def send_transaction(self, request: TransactionRequest) -> TransactionResult:
        """Submit a transaction on the request's chain (default: the configured chain).

        If the backend is on another chain it is asked to switch first; when
        switching is unsupported or declined nothing is submitted and the
        result carries the ``chain_mismatch`` category.
        """
        target_chain = request.chain_id or self.chain_id

        current_chain = await self.get_chain_id()
        if current_chain is None:
            return TransactionResult(
                success=False,
                error="Could not read the wallet's active network",
                category=PaymentErrorCategory.NETWORK,
            )

        if current_chain != target_chain:
            logger.info(f"Wallet on chain {current_chain}, requesting switch to {target_chain}")
            if not await self.switch_chain(target_chain):
                return TransactionResult(
                    success=False,
                    error=f"Wallet is on chain {current_chain}; switch to chain {target_chain} to continue",
                    category=PaymentErrorCategory.CHAIN_MISMATCH,
                )

        return await self._submit(request.model_copy(update={"chain_id": target_chain}))
