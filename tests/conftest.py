import os
from typing import Optional

import pytest

# Set dummy environment variables for testing
# This must run before src.config is imported by any test
os.environ.setdefault("PAYMENT_CONTRACT_ADDRESS", "0x1111111111111111111111111111111111111111")
os.environ.setdefault("RPC_URL", "http://127.0.0.1:8545")
os.environ.setdefault("SETTLEMENT_URL", "http://settlement.test")
os.environ.setdefault("LOG_FORMAT", "text")

from src.settlement.abis import TRANSFER_EVENT_TOPIC  # noqa: E402
from src.tokens import TokenRegistry  # noqa: E402

CONTRACT_ADDRESS = "0x1111111111111111111111111111111111111111"
PAYER_ADDRESS = "0x2222222222222222222222222222222222222222"
AVC_ADDRESS = "0x06fc3d5d2369561e28f261148576520f5e49d6ea"
GENERATION_PRICE = 1000 * 10**18
MINT_PRICE = 500 * 10**18


def tx_hash(n: int) -> str:
    """Deterministic, well-formed transaction hash."""
    return "0x" + format(n, "064x")


def _address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address.lower()[2:]


class FakeChain:
    """In-memory stand-in for ChainGateway."""

    def __init__(self):
        self.chain_id = 8453
        self.revenue_split = (6000, 2000, 2000)
        self.mint_split = (1500, 500, 3000)
        self.split_error: Optional[Exception] = None
        self.balances: dict[tuple[str, str], int] = {}
        self.receipts: dict[str, dict] = {}
        self.receipt_errors: set[str] = set()
        self.receipt_calls: list[str] = []

    async def read_revenue_split_bps(self, token_address: str):
        if self.split_error:
            raise self.split_error
        return self.revenue_split

    async def read_mint_split_bps(self, token_address: str):
        if self.split_error:
            raise self.split_error
        return self.mint_split

    async def get_token_balance(self, token_address: str, wallet_address: str) -> int:
        return self.balances.get((token_address.lower(), wallet_address.lower()), 0)

    async def get_transaction_receipt(self, transaction_hash: str):
        self.receipt_calls.append(transaction_hash)
        if transaction_hash in self.receipt_errors:
            raise ConnectionError("connection refused by rpc")
        return self.receipts.get(transaction_hash)


def make_receipt(
    amount: int,
    payer: str = PAYER_ADDRESS,
    to: str = CONTRACT_ADDRESS,
    token: str = AVC_ADDRESS,
    status: int = 1,
) -> dict:
    """Receipt of a payment that pulled ``amount`` of ``token`` from ``payer``."""
    return {
        "status": status,
        "from": payer,
        "to": to,
        "logs": [
            {
                "address": token,
                "topics": [TRANSFER_EVENT_TOPIC, _address_topic(payer), _address_topic(to)],
                "data": "0x" + amount.to_bytes(32, "big").hex(),
            }
        ],
    }


@pytest.fixture
def fake_chain():
    return FakeChain()


@pytest.fixture
def registry():
    return TokenRegistry.from_file()


@pytest.fixture
def receipt_factory():
    return make_receipt


@pytest.fixture
def hash_factory():
    return tx_hash
