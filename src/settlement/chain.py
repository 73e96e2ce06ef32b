"""On-chain reads for settlement.

Thin async gateway over web3 used by the split lookup, the confirmation
worker and the balance endpoint. It never signs or sends transactions.
"""

from typing import Any, Optional

from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound

from src.config import config
from src.logging_utils import get_logger

from .abis import CREATOR_TOKEN_ABI

logger = get_logger(__name__)


class ChainGateway:
    """Read-only access to the target chain."""

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        chain_id: Optional[int] = None,
        request_timeout: Optional[float] = None,
        web3: Optional[AsyncWeb3] = None,
    ):
        """Initialize the gateway.

        Args:
            rpc_url: JSON-RPC endpoint. Defaults to config.rpc_url.
            chain_id: Chain the gateway is expected to talk to.
            request_timeout: Per-request timeout in seconds.
            web3: Pre-built AsyncWeb3 instance (overrides rpc_url).
        """
        self.rpc_url = rpc_url or config.rpc_url
        self.chain_id = chain_id or config.chain_id
        timeout = request_timeout or config.rpc_timeout_seconds
        self.web3 = web3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(self.rpc_url, request_kwargs={"timeout": timeout})
        )

    def _token(self, token_address: str):
        return self.web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(token_address),
            abi=CREATOR_TOKEN_ABI,
        )

    async def read_revenue_split_bps(self, token_address: str) -> tuple[int, int, int]:
        """Read the (writer, platform, creatorPool) generation split in basis points."""
        writer, platform, creator_pool = await self._token(token_address).functions.revenueSplitBps().call()
        return int(writer), int(platform), int(creator_pool)

    async def read_mint_split_bps(self, token_address: str) -> tuple[int, int, int]:
        """Read the (writer, platform, creatorPool) mint split in basis points."""
        writer, platform, creator_pool = await self._token(token_address).functions.mintSplitBps().call()
        return int(writer), int(platform), int(creator_pool)

    async def get_token_balance(self, token_address: str, wallet_address: str) -> int:
        """ERC-20 balance of a wallet in smallest units."""
        balance = await self._token(token_address).functions.balanceOf(
            AsyncWeb3.to_checksum_address(wallet_address)
        ).call()
        return int(balance)

    async def get_transaction_receipt(self, transaction_hash: str) -> Optional[dict[str, Any]]:
        """Return the receipt, or None while the transaction is not mined."""
        try:
            receipt = await self.web3.eth.get_transaction_receipt(transaction_hash)
        except TransactionNotFound:
            return None
        return dict(receipt) if receipt else None
