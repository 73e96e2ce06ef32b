"""Background chain confirmation for pending payments.

The worker is the only writer of terminal payment status. Each pass reads the
receipts of pending records concurrently and decides verified / failed /
still pending. Because status updates only apply to pending rows, running a
pass twice over the same record is harmless.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from src.config import config
from src.database import PaymentRecordRepository
from src.errors import ConfigurationError
from src.logging_utils import get_logger, log_payment_event
from src.models import PaymentRecord, PaymentStatus
from src.tokens import TokenRegistry

from .abis import TRANSFER_EVENT_TOPIC
from .chain import ChainGateway

logger = get_logger(__name__)


def _to_hex(value: Any) -> str:
    """Normalize HexBytes / bytes / str to a lower-case 0x-prefixed string."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value).lower()
    return text if text.startswith("0x") else "0x" + text


def _topic_address(topic: Any) -> str:
    return "0x" + _to_hex(topic)[-40:]


def transferred_from(receipt: dict[str, Any], token_address: str, payer: str) -> int:
    """Sum the token ``Transfer`` amounts sent by ``payer`` within a receipt."""
    token_address = token_address.lower()
    payer = payer.lower()
    total = 0
    for log in receipt.get("logs") or []:
        if _to_hex(log.get("address", "")) != token_address:
            continue
        topics = log.get("topics") or []
        if len(topics) < 3 or _to_hex(topics[0]) != TRANSFER_EVENT_TOPIC:
            continue
        if _topic_address(topics[1]) != payer:
            continue
        data = _to_hex(log.get("data", "0x"))
        total += int(data[2:] or "0", 16)
    return total


class ConfirmationWorker:
    """Moves pending payment records to verified or failed."""

    def __init__(
        self,
        repository: PaymentRecordRepository,
        chain: ChainGateway,
        registry: TokenRegistry,
        payment_contract_address: Optional[str] = None,
        interval_seconds: Optional[float] = None,
        concurrency: Optional[int] = None,
        pending_timeout_seconds: Optional[float] = None,
        batch_size: int = 100,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """Initialize the worker.

        Args:
            repository: Payment record store.
            chain: Gateway used to read receipts.
            registry: Token registry, to find the token contract of a record.
            payment_contract_address: Expected receipt recipient.
            interval_seconds: Pause between passes when running in the background.
            concurrency: Maximum receipts read at once.
            pending_timeout_seconds: Age after which an unmined payment fails.
            batch_size: Maximum pending records read per pass.
            clock: Returns the current naive UTC time.
        """
        self.repository = repository
        self.chain = chain
        self.registry = registry
        self.payment_contract_address = (payment_contract_address or config.payment_contract_address).lower()
        self.interval_seconds = interval_seconds or config.confirmation_interval_seconds
        self.pending_timeout = timedelta(
            seconds=pending_timeout_seconds or config.pending_timeout_seconds
        )
        self.batch_size = batch_size
        self.clock = clock
        self._semaphore = asyncio.Semaphore(concurrency or config.confirmation_concurrency)
        self._task: Optional[asyncio.Task] = None

    def evaluate(
        self, record: PaymentRecord, receipt: Optional[dict[str, Any]]
    ) -> tuple[Optional[PaymentStatus], Optional[str]]:
        """Decide the outcome for a record given its receipt.

        Returns:
            (status, reason); status is None while the record should stay pending.
        """
        if receipt is None:
            if self.clock() - record.created_at > self.pending_timeout:
                return "failed", "Transaction was not mined in time"
            return None, None

        if receipt.get("status") != 1:
            return "failed", "Transaction reverted on-chain"

        recipient = receipt.get("to")
        if not recipient or _to_hex(recipient) != self.payment_contract_address:
            return "failed", "Transaction was not sent to the payment contract"

        try:
            token = self.registry.get(record.token_id)
        except ConfigurationError as e:
            return "failed", e.message

        transferred = transferred_from(receipt, token.address, _to_hex(receipt.get("from", "")))
        if transferred < record.amount:
            return "failed", f"Transferred {transferred}, expected {record.amount}"

        return "verified", None

    async def confirm(self, record: PaymentRecord) -> Optional[PaymentStatus]:
        """Evaluate one record and persist a terminal outcome.

        RPC errors are logged and leave the record pending for the next pass.

        Returns:
            The terminal status written, or None if nothing changed.
        """
        async with self._semaphore:
            try:
                receipt = await self.chain.get_transaction_receipt(record.transaction_hash)
            except Exception as e:
                logger.warning(f"Receipt lookup failed for {record.transaction_hash}: {e}")
                return None

        status, reason = self.evaluate(record, receipt)
        if status is None:
            return None

        changed = await self.repository.update_payment_status(
            record.id, status, verified_at=self.clock(), failure_reason=reason
        )
        if not changed:
            return None

        log_payment_event(
            logger,
            "record_" + status,
            payment_id=record.id,
            transaction_hash=record.transaction_hash,
            reason=reason,
        )
        return status

    async def run_once(self) -> int:
        """Run one confirmation pass.

        Returns:
            Number of records moved to a terminal status.
        """
        pending = await self.repository.list_pending_payments(limit=self.batch_size)
        if not pending:
            return 0

        results = await asyncio.gather(*(self.confirm(record) for record in pending))
        resolved = sum(1 for status in results if status is not None)
        logger.debug(f"Confirmation pass: {len(pending)} pending, {resolved} resolved")
        return resolved

    async def _run(self) -> None:
        logger.info(f"Confirmation worker started (interval {self.interval_seconds}s)")
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Confirmation pass failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Start the background loop on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background loop and wait for it to exit."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Confirmation worker stopped")
