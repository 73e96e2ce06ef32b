"""Calldata encoding for the payment contract.

Pure functions: the same inputs always produce the same hex string. Selectors
are frozen constants of the deployed contract, never recomputed here.
"""

from eth_abi import encode
from eth_utils import is_address, to_checksum_address

from src.models import PaymentAction
from src.settlement.abis import (
    APPROVE_SELECTOR,
    PAY_FOR_GENERATION_SELECTOR,
    PAY_FOR_MINTING_SELECTOR,
)

MAX_UINT256 = 2**256 - 1


def _checked_address(value: str, name: str) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"Invalid {name} address: {value!r}")
    return to_checksum_address(value)


def payment_selector(action: PaymentAction) -> str:
    """Selector of the payment function for an action."""
    if PaymentAction(action).is_mint_class:
        return PAY_FOR_MINTING_SELECTOR
    return PAY_FOR_GENERATION_SELECTOR


def encode_approval(spender: str, amount: int) -> str:
    """Encode ``approve(spender, amount)``.

    Args:
        spender: Address allowed to pull the tokens (the payment contract).
        amount: Allowance in the token's smallest unit.

    Returns:
        0x-prefixed calldata: selector, padded spender, 32-byte amount.

    Raises:
        ValueError: Invalid spender, or amount outside the uint256 range.
    """
    spender = _checked_address(spender, "spender")
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Amount must be an integer, got {type(amount).__name__}")
    if amount < 0 or amount > MAX_UINT256:
        raise ValueError(f"Amount out of uint256 range: {amount}")
    return APPROVE_SELECTOR + encode(["address", "uint256"], [spender, amount]).hex()


def encode_payment(coin_address: str, payer_address: str, action: PaymentAction) -> str:
    """Encode the payment call for an action.

    Generation-class actions call the generation payment function and the
    mint action calls the minting one; both take ``(token, payer)``.

    Raises:
        ValueError: Invalid address or unknown action.
    """
    selector = payment_selector(action)
    coin = _checked_address(coin_address, "token")
    payer = _checked_address(payer_address, "payer")
    return selector + encode(["address", "address"], [coin, payer]).hex()
