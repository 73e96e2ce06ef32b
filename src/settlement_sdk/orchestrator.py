"""Client-side payment orchestration.

One ``pay()`` call is one payment attempt:

    idle -> resolving_address -> initiating -> approving -> paying -> verifying
         -> succeeded | failed

Initiate-to-verify runs under a retry policy keyed by error category. Once a
payment transaction hash exists, retries resume at ``verifying``; the payment
itself is never submitted twice.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, Field

from src.config import config
from src.errors import (
    ErrorInfo,
    PaymentError,
    PaymentErrorCategory,
    WalletUnavailableError,
    classify_error,
    classify_payment_failure,
)
from src.logging_utils import PaymentAttemptContext, get_logger, log_payment_event
from src.models import PaymentAction, PaymentQuote, PaymentStatus, TransactionRequest

from .client import SettlementClient
from .encoder import encode_approval, encode_payment
from .wallet import WalletProvider

logger = get_logger(__name__)


class PaymentState(str, Enum):
    IDLE = "idle"
    RESOLVING_ADDRESS = "resolving_address"
    INITIATING = "initiating"
    APPROVING = "approving"
    PAYING = "paying"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RetryPolicy(BaseModel):
    """Bounded exponential backoff for transient failures."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.5, ge=0)
    multiplier: float = Field(default=2.0, ge=1)

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(max_attempts=config.retry_max_attempts, base_delay=config.retry_base_delay_seconds)

    def should_retry(self, error: ErrorInfo, attempt: int) -> bool:
        """Whether another attempt may follow ``attempt`` (1-based)."""
        return error.retryable and attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows ``attempt``."""
        return self.base_delay * (self.multiplier ** (attempt - 1))


class PaymentOutcome(BaseModel):
    """Result of one payment attempt."""

    attempt_id: str
    state: PaymentState = PaymentState.IDLE
    payer_address: Optional[str] = None
    transaction_hash: Optional[str] = None
    approval_hash: Optional[str] = None
    payment_id: Optional[str] = None
    status_url: Optional[str] = None
    settlement_status: Optional[PaymentStatus] = None
    attempts: int = 0
    error: Optional[ErrorInfo] = None
    history: list[PaymentState] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == PaymentState.SUCCEEDED


class PaymentOrchestrator:
    """Drives a payment from address resolution to server-side registration."""

    def __init__(
        self,
        wallet: Optional[WalletProvider],
        client: SettlementClient,
        retry_policy: Optional[RetryPolicy] = None,
        approval_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            wallet: Detected wallet provider, or None when none is available.
            client: Settlement service client.
            retry_policy: Retry policy. Defaults to the configured one.
            approval_timeout: How long to wait for the approval to be mined.
            sleep: Awaitable used for backoff waits.
        """
        self.wallet = wallet
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy.from_config()
        self.approval_timeout = (
            approval_timeout if approval_timeout is not None else config.approval_receipt_timeout_seconds
        )
        self._sleep = sleep
        self._outcome: Optional[PaymentOutcome] = None

    @property
    def state(self) -> PaymentState:
        return self._outcome.state if self._outcome else PaymentState.IDLE

    def _transition(self, outcome: PaymentOutcome, state: PaymentState) -> None:
        outcome.state = state
        outcome.history.append(state)
        log_payment_event(logger, "state", state=state.value, attempt=outcome.attempts or None)

    def _fail(self, outcome: PaymentOutcome, error, context: Optional[str] = None) -> PaymentOutcome:
        outcome.error = classify_error(error, context=context)
        self._transition(outcome, PaymentState.FAILED)
        logger.warning(
            f"Payment failed [{outcome.error.category.value}] at {context or 'unknown step'}: {outcome.error.message}"
        )
        return outcome

    async def pay(
        self,
        token_id: str,
        action: PaymentAction,
        user_id: Optional[str] = None,
        wait_for_confirmation: bool = False,
        confirmation_timeout: float = 60.0,
    ) -> PaymentOutcome:
        """Run one payment attempt.

        Args:
            token_id: Token to pay with.
            action: What is being paid for.
            user_id: Optional owner recorded with the payment.
            wait_for_confirmation: Also poll until the chain outcome is known.
            confirmation_timeout: Polling deadline in seconds.

        Returns:
            PaymentOutcome; failures are reported in ``error``, never raised.
        """
        action = PaymentAction(action)

        with PaymentAttemptContext() as attempt_id:
            outcome = PaymentOutcome(attempt_id=attempt_id)
            self._outcome = outcome
            outcome.history.append(PaymentState.IDLE)
            log_payment_event(logger, "start", token_id=token_id, action=action.value)

            self._transition(outcome, PaymentState.RESOLVING_ADDRESS)
            if self.wallet is None:
                return self._fail(outcome, WalletUnavailableError("No wallet provider available"), "resolving_address")

            address = await self.wallet.get_address()
            if not address:
                return self._fail(
                    outcome,
                    PaymentError(
                        "Wallet did not return an address",
                        category=PaymentErrorCategory.ADDRESS_RESOLUTION_FAILED,
                    ),
                    "resolving_address",
                )
            outcome.payer_address = address

            while True:
                outcome.attempts += 1
                try:
                    await self._attempt(outcome, token_id, action, user_id)
                    break
                except PaymentError as e:
                    info = classify_error(e)
                    if not self.retry_policy.should_retry(info, outcome.attempts):
                        return self._fail(outcome, e, outcome.state.value)
                    delay = self.retry_policy.delay_for(outcome.attempts)
                    logger.info(
                        f"Retrying after {info.category.value} at {outcome.state.value} "
                        f"(attempt {outcome.attempts}/{self.retry_policy.max_attempts}, wait {delay:.1f}s)"
                    )
                    await self._sleep(delay)

            if wait_for_confirmation:
                try:
                    status = await self.client.wait_for_settlement(outcome.payment_id, timeout=confirmation_timeout)
                except PaymentError as e:
                    return self._fail(outcome, e, "verifying")
                outcome.settlement_status = status.status
                if status.status == "failed":
                    return self._fail(
                        outcome,
                        PaymentError(status.message or "Payment failed on-chain", category=PaymentErrorCategory.REVERTED),
                        "verifying",
                    )

            self._transition(outcome, PaymentState.SUCCEEDED)
            log_payment_event(
                logger,
                "succeeded",
                payment_id=outcome.payment_id,
                transaction_hash=outcome.transaction_hash,
                attempts=outcome.attempts,
            )
            return outcome

    async def _attempt(
        self,
        outcome: PaymentOutcome,
        token_id: str,
        action: PaymentAction,
        user_id: Optional[str],
    ) -> None:
        if outcome.transaction_hash is None:
            self._transition(outcome, PaymentState.INITIATING)
            quote = await self.client.initiate_payment(token_id, action, outcome.payer_address)
            log_payment_event(
                logger,
                "quoted",
                amount=quote.amount,
                contract=quote.contractAddress,
                token=quote.token.address,
            )

            self._transition(outcome, PaymentState.APPROVING)
            await self._approve(outcome, quote)

            self._transition(outcome, PaymentState.PAYING)
            outcome.transaction_hash = await self._submit_payment(outcome, quote, action)

        self._transition(outcome, PaymentState.VERIFYING)
        ticket = await self.client.verify_payment(outcome.transaction_hash, token_id, action, user_id)
        outcome.payment_id = ticket.paymentId
        outcome.status_url = ticket.statusCheckUrl
        log_payment_event(logger, "registered", payment_id=ticket.paymentId, status=ticket.status)

    async def _approve(self, outcome: PaymentOutcome, quote: PaymentQuote) -> None:
        """Best-effort allowance for the payment contract; failure does not stop the flow.

        A sent approval is waited on until mined, so the payment is built
        against chain state that already holds the allowance.
        """
        try:
            data = encode_approval(quote.contractAddress, int(quote.amount))
        except ValueError as e:
            log_payment_event(logger, "approval_failed", reason=str(e))
            return

        result = await self.wallet.send_transaction(
            TransactionRequest(to=quote.token.address, data=data, chain_id=quote.chainId)
        )
        if not result.success:
            log_payment_event(
                logger,
                "approval_failed",
                category=PaymentErrorCategory.APPROVAL_FAILED.value,
                reason=result.error,
            )
            return

        outcome.approval_hash = result.transaction_hash
        receipt = await self.wallet.wait_for_receipt(result.transaction_hash, self.approval_timeout)
        if receipt is None:
            log_payment_event(logger, "approval_unconfirmed", approval_hash=result.transaction_hash)
        elif receipt.get("status") != 1:
            log_payment_event(
                logger,
                "approval_failed",
                category=PaymentErrorCategory.APPROVAL_FAILED.value,
                approval_hash=result.transaction_hash,
                reason="Approval reverted on-chain",
            )
        else:
            log_payment_event(logger, "approved", approval_hash=result.transaction_hash)

    async def _submit_payment(self, outcome: PaymentOutcome, quote: PaymentQuote, action: PaymentAction) -> str:
        try:
            data = encode_payment(quote.token.address, outcome.payer_address, action)
        except ValueError as e:
            raise PaymentError(str(e), category=PaymentErrorCategory.INVALID_ADDRESS)

        result = await self.wallet.send_transaction(
            TransactionRequest(to=quote.contractAddress, data=data, chain_id=quote.chainId)
        )
        if not result.success:
            message = result.error or "Payment transaction failed"
            raise PaymentError(message, category=result.category or classify_payment_failure(message))

        log_payment_event(logger, "paid", transaction_hash=result.transaction_hash)
        return result.transaction_hash
