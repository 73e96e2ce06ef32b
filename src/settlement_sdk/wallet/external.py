"""External wallet reached through an EIP-1193 JSON-RPC connector.

Browser extensions and desktop wallets expose the EIP-1193 request interface;
a connector relays it over HTTP JSON-RPC. The user approves each request in
the wallet, so any call may be declined (error code 4001).
"""

import asyncio
from itertools import count
from typing import Any, Optional

import httpx

from src.config import config
from src.errors import PaymentErrorCategory, classify_payment_failure
from src.logging_utils import get_logger
from src.models import TransactionRequest, TransactionResult

from .base import WalletProvider, WalletType

logger = get_logger(__name__)

USER_REJECTED_CODE = 4001
UNRECOGNIZED_CHAIN_CODE = 4902


class WalletRpcError(Exception):
    """JSON-RPC error returned by the wallet."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class ExternalWalletProvider(WalletProvider):
    """EIP-1193 signer over HTTP JSON-RPC."""

    wallet_type = WalletType.EXTERNAL

    def __init__(
        self,
        url: Optional[str] = None,
        chain_id: Optional[int] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the provider.

        Args:
            url: Connector endpoint. Defaults to config.external_signer_url.
            chain_id: Target chain. Defaults to config.chain_id.
            timeout: Request timeout; wallet prompts wait on the user.
            transport: Optional httpx transport (used by tests).
        """
        super().__init__(chain_id)
        self.url = url if url is not None else config.external_signer_url
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._ids = count(1)

    async def close(self):
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        """Send one EIP-1193 request.

        Raises:
            WalletRpcError: The wallet answered with an error.
            httpx.HTTPError: The connector could not be reached.
            ValueError: The connector did not answer with a JSON-RPC object.
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        response = await self._http.post(self.url, json=payload)
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict):
            raise ValueError(f"Malformed JSON-RPC response: {body!r}")
        if body.get("error"):
            error = body["error"]
            if not isinstance(error, dict):
                raise WalletRpcError(-32603, str(error))
            raise WalletRpcError(int(error.get("code", -32603)), str(error.get("message", "")))
        return body.get("result")

    async def is_available(self) -> bool:
        if not self.url:
            return False
        try:
            await self.request("eth_accounts")
        except (WalletRpcError, httpx.HTTPError, ValueError) as e:
            logger.debug(f"External wallet not available at {self.url}: {e}")
            return False
        return True

    async def get_address(self) -> Optional[str]:
        if not self.url:
            return None
        try:
            accounts = await self.request("eth_accounts")
            if not accounts:
                accounts = await self.request("eth_requestAccounts")
        except (WalletRpcError, httpx.HTTPError, ValueError) as e:
            logger.warning(f"Could not read external wallet address: {e}")
            return None

        address = accounts[0] if accounts else None
        self._observe_address(address)
        return address

    async def get_chain_id(self) -> Optional[int]:
        try:
            return int(await self.request("eth_chainId"), 16)
        except (WalletRpcError, httpx.HTTPError, ValueError, TypeError) as e:
            logger.warning(f"Could not read external wallet chain: {e}")
            return None

    async def switch_chain(self, chain_id: int) -> bool:
        try:
            await self.request("wallet_switchEthereumChain", [{"chainId": hex(chain_id)}])
        except WalletRpcError as e:
            if e.code == UNRECOGNIZED_CHAIN_CODE:
                logger.warning(f"Wallet does not know chain {chain_id}")
            else:
                logger.warning(f"Chain switch to {chain_id} declined: {e.message}")
            return False
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Chain switch to {chain_id} failed: {e}")
            return False
        return True

    async def _submit(self, request: TransactionRequest) -> TransactionResult:
        sender = await self.get_address()
        if not sender:
            return TransactionResult(
                success=False,
                error="No wallet account available",
                category=PaymentErrorCategory.ADDRESS_RESOLUTION_FAILED,
            )

        params = [
            {
                "from": sender,
                "to": request.to,
                "data": request.data,
                "value": hex(request.value),
                "chainId": hex(request.chain_id),
            }
        ]
        try:
            transaction_hash = await self.request("eth_sendTransaction", params)
        except WalletRpcError as e:
            if e.code == USER_REJECTED_CODE:
                category = PaymentErrorCategory.REJECTED_BY_USER
            else:
                category = classify_payment_failure(e.message)
            logger.warning(f"External transaction to {request.to} failed: {e}")
            return TransactionResult(success=False, error=e.message, category=category)
        except httpx.TimeoutException as e:
            return TransactionResult(
                success=False, error=f"Wallet request timed out: {e}", category=PaymentErrorCategory.TIMEOUT
            )
        except httpx.HTTPError as e:
            return TransactionResult(
                success=False, error=f"Wallet connection failed: {e}", category=PaymentErrorCategory.NETWORK
            )
        except ValueError as e:
            return TransactionResult(
                success=False, error=f"Unexpected wallet response: {e}", category=PaymentErrorCategory.NETWORK
            )

        if not isinstance(transaction_hash, str):
            return TransactionResult(
                success=False,
                error=f"Unexpected wallet response: {transaction_hash!r}",
                category=PaymentErrorCategory.NETWORK,
            )

        logger.info(f"External transaction sent: {transaction_hash}")
        return TransactionResult(success=True, transaction_hash=transaction_hash)

    async def wait_for_receipt(
        self, transaction_hash: str, timeout: float, poll_interval: float = 2.0
    ) -> Optional[dict]:
        polls = int(timeout // poll_interval) if poll_interval > 0 else 0
        for poll in range(polls + 1):
            try:
                receipt = await self.request("eth_getTransactionReceipt", [transaction_hash])
            except (WalletRpcError, httpx.HTTPError, ValueError) as e:
                logger.warning(f"Receipt lookup for {transaction_hash} failed: {e}")
                return None
            if isinstance(receipt, dict):
                status = receipt.get("status")
                if isinstance(status, str):
                    receipt = {**receipt, "status": int(status, 16)}
                return receipt
            if poll < polls:
                await asyncio.sleep(poll_interval)

        logger.warning(f"Transaction {transaction_hash} not mined within {timeout}s")
        return None
