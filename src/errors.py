"""Payment error taxonomy and the shared classifier.

Every failure on the payment path is normalized into one
``PaymentErrorCategory``. The category decides the short message shown to the
user, whether the orchestrator may retry, and which HTTP status the settlement
service answers with.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel


class PaymentErrorCategory(str, Enum):
    """Category of a payment failure."""

    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    WALLET_UNAVAILABLE = "wallet_unavailable"
    ADDRESS_RESOLUTION_FAILED = "address_resolution_failed"
    PRICE_FETCH_FAILED = "price_fetch_failed"
    APPROVAL_FAILED = "approval_failed"
    REJECTED_BY_USER = "rejected_by_user"
    CHAIN_MISMATCH = "chain_mismatch"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    ALLOWANCE = "allowance"
    INVALID_ADDRESS = "invalid_address"
    REVERTED = "reverted"
    VERIFICATION_REQUEST_FAILED = "verification_request_failed"
    NETWORK = "network"
    TIMEOUT = "timeout"
    RECORD_NOT_FOUND = "record_not_found"
    UNKNOWN = "unknown"


RETRYABLE_CATEGORIES = frozenset(
    {
        PaymentErrorCategory.NETWORK,
        PaymentErrorCategory.TIMEOUT,
        PaymentErrorCategory.VERIFICATION_REQUEST_FAILED,
    }
)

USER_MESSAGES = {
    PaymentErrorCategory.CONFIGURATION: "This token or action is not supported.",
    PaymentErrorCategory.VALIDATION: "Please check your input and try again.",
    PaymentErrorCategory.WALLET_UNAVAILABLE: "No wallet detected. Open this in a supported app or connect a wallet.",
    PaymentErrorCategory.ADDRESS_RESOLUTION_FAILED: "Could not read your wallet address. Make sure your wallet is unlocked.",
    PaymentErrorCategory.PRICE_FETCH_FAILED: "Could not fetch the current price.",
    PaymentErrorCategory.APPROVAL_FAILED: "Token approval failed.",
    PaymentErrorCategory.REJECTED_BY_USER: "Payment was cancelled in your wallet.",
    PaymentErrorCategory.CHAIN_MISMATCH: "Switch your wallet to the supported network and try again.",
    PaymentErrorCategory.INSUFFICIENT_BALANCE: "Insufficient token balance.",
    PaymentErrorCategory.ALLOWANCE: "Token approval required.",
    PaymentErrorCategory.INVALID_ADDRESS: "Invalid wallet or token address.",
    PaymentErrorCategory.REVERTED: "Payment transaction failed.",
    PaymentErrorCategory.VERIFICATION_REQUEST_FAILED: "Payment sent, but verification could not be started.",
    PaymentErrorCategory.NETWORK: "Network connection failed. Check your connection and try again.",
    PaymentErrorCategory.TIMEOUT: "The request took too long. Please try again.",
    PaymentErrorCategory.RECORD_NOT_FOUND: "Payment not found.",
    PaymentErrorCategory.UNKNOWN: "Something went wrong. Please try again later.",
}

# Ordered: the first matching pattern wins.
_MESSAGE_PATTERNS = (
    (("user rejected", "user denied", "rejected the request", "user cancelled"), PaymentErrorCategory.REJECTED_BY_USER),
    (("insufficient balance", "exceeds balance", "insufficient funds"), PaymentErrorCategory.INSUFFICIENT_BALANCE),
    (("allowance",), PaymentErrorCategory.ALLOWANCE),
    (("invalid address", "invalid to address", "address format"), PaymentErrorCategory.INVALID_ADDRESS),
    (("switch to", "wrong chain", "chain mismatch"), PaymentErrorCategory.CHAIN_MISMATCH),
    (("timeout", "timed out", "took too long"), PaymentErrorCategory.TIMEOUT),
    (("network", "connection", "econnrefused", "failed to fetch"), PaymentErrorCategory.NETWORK),
    (("revert",), PaymentErrorCategory.REVERTED),
)


class ErrorInfo(BaseModel):
    """Normalized description of a failure."""

    category: PaymentErrorCategory
    message: str
    user_message: str
    retryable: bool
    detail: Optional[str] = None


class PaymentError(Exception):
    """Base exception for categorized payment failures."""

    category = PaymentErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        category: Optional[PaymentErrorCategory] = None,
        detail: Optional[str] = None,
    ):
        """
        Initialize the payment error.

        Args:
            message: Error message (may be raw backend text)
            category: Overrides the class default category
            detail: Optional additional details
        """
        if category is not None:
            self.category = category
        self.message = message
        self.detail = detail
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.category in RETRYABLE_CATEGORIES


class ConfigurationError(PaymentError):
    """Unknown token, unknown action or missing price."""

    category = PaymentErrorCategory.CONFIGURATION


class ValidationError(PaymentError):
    """Malformed input such as a bad transaction hash."""

    category = PaymentErrorCategory.VALIDATION


class WalletUnavailableError(PaymentError):
    """No signer variant responded."""

    category = PaymentErrorCategory.WALLET_UNAVAILABLE


class RecordNotFoundError(PaymentError):
    """No payment record matches the lookup key."""

    category = PaymentErrorCategory.RECORD_NOT_FOUND


def categorize_message(message: str) -> PaymentErrorCategory:
    """Map raw error text onto a category by substring match."""
    lower_message = message.lower()
    for patterns, category in _MESSAGE_PATTERNS:
        if any(pattern in lower_message for pattern in patterns):
            return category
    return PaymentErrorCategory.UNKNOWN


def classify_error(error: Union[BaseException, str, None], context: Optional[str] = None) -> ErrorInfo:
    """Normalize any failure into an ``ErrorInfo``.

    Args:
        error: A PaymentError (category kept), another exception or raw text.
        context: Optional step name, kept in ``detail``.

    Returns:
        ErrorInfo with the category, user message and retry flag.
    """
    if isinstance(error, PaymentError):
        category = error.category
        message = error.message
        detail = error.detail
    elif error is None:
        category = PaymentErrorCategory.UNKNOWN
        message = "An unexpected error occurred"
        detail = None
    else:
        message = str(error) or type(error).__name__
        category = categorize_message(message)
        detail = None

    if context and not detail:
        detail = f"Context: {context}"

    return ErrorInfo(
        category=category,
        message=message,
        user_message=USER_MESSAGES[category],
        retryable=category in RETRYABLE_CATEGORIES,
        detail=detail,
    )


def classify_payment_failure(message: Optional[str]) -> PaymentErrorCategory:
    """Categorize a failed payment submission.

    Unrecognized text becomes a generic revert rather than ``unknown``.
    """
    category = categorize_message(message or "")
    if category == PaymentErrorCategory.UNKNOWN:
        return PaymentErrorCategory.REVERTED
    return category


def http_status_for(category: PaymentErrorCategory) -> int:
    """HTTP status code the settlement service uses for a category."""
    if category in (PaymentErrorCategory.CONFIGURATION, PaymentErrorCategory.VALIDATION):
        return 400
    if category == PaymentErrorCategory.RECORD_NOT_FOUND:
        return 404
    return 500
