"""HTTP client for the settlement service."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import httpx

from src.config import config
from src.errors import PaymentError, PaymentErrorCategory
from src.logging_utils import ATTEMPT_ID_HEADER, get_attempt_id, get_logger
from src.models import (
    TERMINAL_STATUSES,
    PaymentAction,
    PaymentQuote,
    PaymentStatusResponse,
    VerificationTicket,
)

logger = get_logger(__name__)


def _reported_category(value: Optional[str], default: PaymentErrorCategory) -> PaymentErrorCategory:
    try:
        return PaymentErrorCategory(value)
    except ValueError:
        return default


class SettlementClient:
    """Async client for the settlement HTTP API.

    Failures are raised as ``PaymentError`` with a category the orchestrator
    can act on: transport timeouts and connection errors become ``timeout`` and
    ``network``; error responses keep the category the server reported.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: The URL of the settlement service. Defaults to config.settlement_url.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.base_url = (base_url or config.settlement_url).rstrip("/")
        self._http = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def close(self):
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        failure_category: PaymentErrorCategory,
        **kwargs: Any,
    ) -> dict:
        headers = {}
        attempt_id = get_attempt_id()
        if attempt_id:
            headers[ATTEMPT_ID_HEADER] = attempt_id

        try:
            response = await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise PaymentError(
                f"Settlement service timed out on {method} {path}",
                category=PaymentErrorCategory.TIMEOUT,
                detail=str(e),
            )
        except httpx.TransportError as e:
            raise PaymentError(
                f"Network error calling {method} {path}: {e}",
                category=PaymentErrorCategory.NETWORK,
                detail=str(e),
            )

        if response.status_code in (200, 201):
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("error") or f"{method} {path} failed with HTTP {response.status_code}"
        detail = body.get("detail") or response.text

        if response.status_code == 404:
            category = PaymentErrorCategory.RECORD_NOT_FOUND
        elif response.status_code < 500:
            category = _reported_category(body.get("category"), failure_category)
        else:
            category = failure_category

        logger.error(f"{method} {path} -> {response.status_code}: {message}")
        raise PaymentError(message, category=category, detail=detail)

    async def initiate_payment(
        self,
        token_id: str,
        action: PaymentAction,
        user_address: Optional[str] = None,
    ) -> PaymentQuote:
        """Fetch the authoritative contract address, amount and split."""
        payload = {"tokenId": token_id, "action": PaymentAction(action).value}
        if user_address:
            payload["userAddress"] = user_address
        data = await self._request(
            "POST", "/payments/initiate", PaymentErrorCategory.PRICE_FETCH_FAILED, json=payload
        )
        return PaymentQuote.model_validate(data)

    async def verify_payment(
        self,
        transaction_hash: str,
        token_id: str,
        action: PaymentAction,
        user_id: Optional[str] = None,
    ) -> VerificationTicket:
        """Register a submitted transaction; the server confirms it in the background."""
        payload = {
            "transactionHash": transaction_hash,
            "tokenId": token_id,
            "action": PaymentAction(action).value,
        }
        if user_id:
            payload["userId"] = user_id
        data = await self._request(
            "POST", "/payments/verify", PaymentErrorCategory.VERIFICATION_REQUEST_FAILED, json=payload
        )
        return VerificationTicket.model_validate(data)

    async def get_status(
        self,
        payment_id: Optional[str] = None,
        transaction_hash: Optional[str] = None,
    ) -> PaymentStatusResponse:
        """Read the current status of a payment by id or transaction hash."""
        if not payment_id and not transaction_hash:
            raise ValueError("payment_id or transaction_hash is required")
        params = {"paymentId": payment_id} if payment_id else {"transactionHash": transaction_hash}
        data = await self._request(
            "GET", "/payments/verify", PaymentErrorCategory.VERIFICATION_REQUEST_FAILED, params=params
        )
        return PaymentStatusResponse.model_validate(data)

    async def wait_for_settlement(
        self,
        payment_id: str,
        timeout: float = 60.0,
        interval: float = 3.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> PaymentStatusResponse:
        """Poll the status endpoint until the payment is terminal or ``timeout`` passes.

        Polls once immediately and then every ``interval`` seconds, at most
        ``timeout // interval`` more times.

        Returns:
            The last status seen; still ``pending`` if the deadline passed first.
        """
        remaining_polls = int(timeout // interval) if interval > 0 else 0
        while True:
            status = await self.get_status(payment_id=payment_id)
            if status.status in TERMINAL_STATUSES:
                logger.info(f"Payment {payment_id} settled: {status.status}")
                return status
            if remaining_polls <= 0:
                logger.warning(f"Payment {payment_id} still pending after {timeout}s")
                return status
            remaining_polls -= 1
            await sleep(interval)

    async def get_tokens(self) -> list[dict]:
        """List configured tokens with their action prices."""
        data = await self._request("GET", "/tokens", PaymentErrorCategory.PRICE_FETCH_FAILED)
        return data.get("tokens", [])

    async def get_balance(self, token_id: str, wallet: str) -> dict:
        """ERC-20 balance of a wallet for a token."""
        return await self._request(
            "GET",
            f"/tokens/{token_id}/balance",
            PaymentErrorCategory.NETWORK,
            params={"wallet": wallet},
        )
