"""Payment verification service.

Registers submitted payment transactions and answers status polls. This
service never talks to the chain: it creates ``pending`` records and reports
whatever the confirmation worker has decided so far.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from src.database import PaymentRecordRepository, new_payment_id
from src.errors import ConfigurationError, RecordNotFoundError, ValidationError
from src.logging_utils import get_logger, log_payment_event
from src.models import TRANSACTION_HASH_PATTERN, PaymentAction, PaymentRecord, PaymentStatus

from .calculator import PaymentCalculator

logger = get_logger(__name__)

_TRANSACTION_HASH_RE = re.compile(TRANSACTION_HASH_PATTERN)

PENDING_MESSAGE = "Waiting for blockchain confirmation. Check back in a few seconds."
FAILED_MESSAGE = "Transaction failed or was not mined"


class InitiateResult(BaseModel):
    """Outcome of registering a transaction for verification."""

    record_id: str
    transaction_hash: str
    status: PaymentStatus
    poll_url: str
    created: bool


class StatusResult(BaseModel):
    """Current verification status of a payment record."""

    payment_id: str
    status: PaymentStatus
    verified_at: Optional[datetime] = None
    message: Optional[str] = None


def status_poll_url(payment_id: str) -> str:
    return f"/payments/verify?paymentId={payment_id}"


def validate_transaction_hash(transaction_hash: str) -> str:
    """Return the lower-cased hash or raise ValidationError."""
    if not isinstance(transaction_hash, str) or not _TRANSACTION_HASH_RE.fullmatch(transaction_hash):
        raise ValidationError(
            "Invalid transaction hash",
            detail="Expected 0x followed by 64 hex characters",
        )
    return transaction_hash.lower()


class VerificationService:
    """Creates payment records and reports their status."""

    def __init__(self, repository: PaymentRecordRepository, calculator: PaymentCalculator):
        """Initialize the service.

        Args:
            repository: Payment record store.
            calculator: Used to record the authoritative expected amount.
        """
        self.repository = repository
        self.calculator = calculator

    async def initiate(
        self,
        transaction_hash: str,
        token_id: str,
        action: PaymentAction,
        user_id: Optional[str] = None,
    ) -> InitiateResult:
        """Register a submitted payment transaction.

        Validation happens before the store is touched. Repeating the call with
        the same hash returns the existing record and its current status.

        Raises:
            ValidationError: Malformed transaction hash.
            ConfigurationError: Unknown token or action price.
        """
        transaction_hash = validate_transaction_hash(transaction_hash)
        try:
            action = PaymentAction(action)
        except ValueError:
            raise ConfigurationError(f"Unsupported payment action: {action}")
        cost = self.calculator.calculate_cost(token_id, action)

        record = PaymentRecord(
            id=new_payment_id(),
            transaction_hash=transaction_hash,
            action=action,
            token_id=token_id,
            status="pending",
            amount=cost.amount,
            user_id=user_id,
        )
        stored, created = await self.repository.create_payment(record)

        log_payment_event(
            logger,
            "record_created" if created else "record_exists",
            payment_id=stored.id,
            transaction_hash=stored.transaction_hash,
            action=stored.action.value,
            status=stored.status,
            user_id=stored.user_id,
        )

        return InitiateResult(
            record_id=stored.id,
            transaction_hash=stored.transaction_hash,
            status=stored.status,
            poll_url=status_poll_url(stored.id),
            created=created,
        )

    async def status(
        self,
        payment_id: Optional[str] = None,
        transaction_hash: Optional[str] = None,
    ) -> StatusResult:
        """Report the stored status of a payment.

        Raises:
            ValidationError: Neither key given, or a malformed hash.
            RecordNotFoundError: No record matches.
        """
        if payment_id:
            record = await self.repository.get_payment(payment_id)
        elif transaction_hash:
            record = await self.repository.get_payment_by_hash(validate_transaction_hash(transaction_hash))
        else:
            raise ValidationError("Either paymentId or transactionHash is required")

        if record is None:
            raise RecordNotFoundError("Payment not found", detail=payment_id or transaction_hash)

        if record.status == "verified":
            return StatusResult(payment_id=record.id, status="verified", verified_at=record.verified_at)

        if record.status == "failed":
            return StatusResult(
                payment_id=record.id,
                status="failed",
                verified_at=record.verified_at,
                message=record.failure_reason or FAILED_MESSAGE,
            )

        return StatusResult(payment_id=record.id, status="pending", message=PENDING_MESSAGE)
