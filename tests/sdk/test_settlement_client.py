"""Unit tests for SettlementClient."""

import json

import httpx
import pytest

from src.errors import PaymentError, PaymentErrorCategory
from src.logging_utils import ATTEMPT_ID_HEADER, PaymentAttemptContext
from src.models import PaymentAction
from src.settlement_sdk.client import SettlementClient

TX_HASH = "0x" + "ab" * 32

QUOTE = {
    "contractAddress": "0x1111111111111111111111111111111111111111",
    "action": "generate-content",
    "amount": str(1000 * 10**18),
    "amountFormatted": "1000.00",
    "distribution": {
        "writerShare": str(600 * 10**18),
        "platformShare": str(200 * 10**18),
        "creatorShare": str(200 * 10**18),
        "payerRemainder": "0",
    },
    "chainId": 8453,
    "token": {
        "id": "avc",
        "name": "AVC",
        "symbol": "$AVC",
        "address": "0x06fc3d5d2369561e28f261148576520f5e49d6ea",
        "decimals": 18,
    },
}


def _client(handler) -> SettlementClient:
    return SettlementClient(base_url="http://settlement.test", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_initiate_payment_success():
    """Test fetching a quote, including the tracing header."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        seen["attempt"] = request.headers.get(ATTEMPT_ID_HEADER)
        return httpx.Response(200, json=QUOTE)

    async with _client(handler) as client:
        with PaymentAttemptContext("pay-test") as attempt_id:
            quote = await client.initiate_payment("avc", PaymentAction.GENERATE_CONTENT, "0xabc")

    assert seen["path"] == "/payments/initiate"
    assert seen["body"] == {"tokenId": "avc", "action": "generate-content", "userAddress": "0xabc"}
    assert seen["attempt"] == attempt_id
    assert int(quote.amount) == 1000 * 10**18
    assert quote.token.symbol == "$AVC"


@pytest.mark.asyncio
async def test_initiate_payment_unknown_token():
    """Test that a 400 keeps the category the server reported."""

    def handler(request):
        return httpx.Response(400, json={"error": 'Token "x" is not configured', "category": "configuration"})

    async with _client(handler) as client:
        with pytest.raises(PaymentError) as exc_info:
            await client.initiate_payment("x", PaymentAction.GENERATE_CONTENT)

    assert exc_info.value.category == PaymentErrorCategory.CONFIGURATION
    assert not exc_info.value.retryable


@pytest.mark.asyncio
async def test_verify_payment_server_error_is_retryable():
    """Test handling of server errors."""

    def handler(request):
        return httpx.Response(500, text="Internal Server Error")

    async with _client(handler) as client:
        with pytest.raises(PaymentError) as exc_info:
            await client.verify_payment(TX_HASH, "avc", PaymentAction.GENERATE_CONTENT)

    assert exc_info.value.category == PaymentErrorCategory.VERIFICATION_REQUEST_FAILED
    assert exc_info.value.retryable


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error,category",
    [
        (httpx.ConnectError("connection refused"), PaymentErrorCategory.NETWORK),
        (httpx.ReadTimeout("timed out"), PaymentErrorCategory.TIMEOUT),
    ],
)
async def test_transport_errors_are_categorized(error, category):
    def handler(request):
        raise error

    async with _client(handler) as client:
        with pytest.raises(PaymentError) as exc_info:
            await client.verify_payment(TX_HASH, "avc", PaymentAction.MINT_ARTIFACT)

    assert exc_info.value.category == category


@pytest.mark.asyncio
async def test_get_status_not_found():
    def handler(request):
        assert request.url.params["paymentId"] == "pmt-missing"
        return httpx.Response(404, json={"error": "Payment not found", "category": "record_not_found"})

    async with _client(handler) as client:
        with pytest.raises(PaymentError) as exc_info:
            await client.get_status(payment_id="pmt-missing")

    assert exc_info.value.category == PaymentErrorCategory.RECORD_NOT_FOUND


@pytest.mark.asyncio
async def test_wait_for_settlement_polls_until_terminal():
    responses = iter(["pending", "pending", "verified"])
    sleeps = []

    def handler(request):
        return httpx.Response(200, json={"paymentId": "pmt-1", "status": next(responses)})

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    async with _client(handler) as client:
        status = await client.wait_for_settlement("pmt-1", timeout=30, interval=2, sleep=fake_sleep)

    assert status.status == "verified"
    assert sleeps == [2, 2]


@pytest.mark.asyncio
async def test_wait_for_settlement_gives_up_after_timeout():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"paymentId": "pmt-1", "status": "pending", "message": "Waiting"})

    async def fake_sleep(seconds):
        pass

    async with _client(handler) as client:
        status = await client.wait_for_settlement("pmt-1", timeout=6, interval=2, sleep=fake_sleep)

    assert status.status == "pending"
    assert len(calls) == 4


@pytest.mark.asyncio
async def test_error_responses_are_logged_under_module_logger(caplog):
    def handler(request):
        return httpx.Response(503, json={"error": "Service unavailable"})

    async with _client(handler) as client:
        with pytest.raises(PaymentError):
            await client.get_status(payment_id="pmt-1")

    records = [r for r in caplog.records if r.name == "src.settlement_sdk.client"]
    assert records
    assert "503" in records[-1].getMessage()
