"""Embedded wallet backed by a signer the hosting runtime supplies.

The runtime injects the account key into the environment; the provider signs
locally with eth_account and broadcasts through web3. It cannot switch chains.
"""

from typing import Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted

from src.config import config
from src.errors import classify_payment_failure
from src.logging_utils import get_logger
from src.models import TransactionRequest, TransactionResult

from .base import WalletProvider, WalletType

logger = get_logger(__name__)


class EmbeddedWalletProvider(WalletProvider):
    """Signs with a runtime-supplied local account."""

    wallet_type = WalletType.EMBEDDED

    def __init__(
        self,
        account: Optional[LocalAccount] = None,
        web3: Optional[AsyncWeb3] = None,
        chain_id: Optional[int] = None,
    ):
        """Initialize the provider.

        Args:
            account: Local account supplied by the runtime; None when absent.
            web3: Connection used for chain reads and broadcasting.
            chain_id: Target chain. Defaults to config.chain_id.
        """
        super().__init__(chain_id)
        self.account = account
        self.web3 = web3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(config.rpc_url, request_kwargs={"timeout": config.rpc_timeout_seconds})
        )

    @classmethod
    def from_environment(cls, private_key: Optional[str] = None, **kwargs) -> "EmbeddedWalletProvider":
        """Build the provider from the key the runtime injected, if any."""
        key = private_key or config.embedded_signer_key
        account = Account.from_key(key) if key else None
        return cls(account=account, **kwargs)

    async def is_available(self) -> bool:
        return self.account is not None

    async def get_address(self) -> Optional[str]:
        if self.account is None:
            return None
        self._observe_address(self.account.address)
        return self.account.address

    async def get_chain_id(self) -> Optional[int]:
        try:
            return int(await self.web3.eth.chain_id)
        except Exception as e:
            logger.warning(f"Could not read chain id: {e}")
            return None

    async def _submit(self, request: TransactionRequest) -> TransactionResult:
        if self.account is None:
            return TransactionResult(success=False, error="No embedded signer available")

        try:
            tx = {
                "from": self.account.address,
                "to": AsyncWeb3.to_checksum_address(request.to),
                "data": request.data,
                "value": request.value,
                "chainId": request.chain_id,
                "nonce": await self.web3.eth.get_transaction_count(self.account.address, "pending"),
            }
            tx["gas"] = await self.web3.eth.estimate_gas(tx)
            tx["gasPrice"] = await self.web3.eth.gas_price

            signed = self.account.sign_transaction(tx)
            tx_hash = await self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            logger.error(f"Embedded transaction to {request.to} failed: {e}")
            return TransactionResult(success=False, error=str(e), category=classify_payment_failure(str(e)))

        transaction_hash = AsyncWeb3.to_hex(tx_hash)
        logger.info(f"Embedded transaction sent: {transaction_hash}")
        return TransactionResult(success=True, transaction_hash=transaction_hash)

    async def wait_for_receipt(self, transaction_hash: str, timeout: float) -> Optional[dict]:
        try:
            receipt = await self.web3.eth.wait_for_transaction_receipt(transaction_hash, timeout=timeout)
        except TimeExhausted:
            logger.warning(f"Transaction {transaction_hash} not mined within {timeout}s")
            return None
        except Exception as e:
            logger.warning(f"Receipt lookup for {transaction_hash} failed: {e}")
            return None
        return dict(receipt)
