"""SQLite payment record store.

Records are created once by the verification service and moved to a terminal
status once by the confirmation worker. The unique index on the transaction
hash makes creation idempotent; status updates only ever apply to pending
rows, which keeps transitions monotonic.
"""

import sqlite3
import uuid
from datetime import datetime
from typing import Optional, Protocol

import aiosqlite

from .config import config
from .logging_utils import get_logger
from .models import PaymentRecord, PaymentStatus

logger = get_logger(__name__)

# SQL Schema
SCHEMA_SQL = """
-- Payment records (one per submitted transaction)
CREATE TABLE IF NOT EXISTS payments (
    id TEXT PRIMARY KEY,
    transaction_hash TEXT NOT NULL,
    action TEXT NOT NULL CHECK(action IN ('generate-content', 'mint-artifact', 'play-minigame')),
    token_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending' CHECK(status IN ('pending', 'verified', 'failed')),
    amount TEXT NOT NULL,
    user_id TEXT,
    created_at TEXT NOT NULL,
    verified_at TEXT,
    failure_reason TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_payments_transaction_hash ON payments(transaction_hash);
CREATE INDEX IF NOT EXISTS idx_payments_status ON payments(status);
CREATE INDEX IF NOT EXISTS idx_payments_user_id ON payments(user_id);
"""


def new_payment_id() -> str:
    return f"pmt-{uuid.uuid4().hex[:16]}"


class PaymentRecordRepository(Protocol):
    """Storage interface used by the verification service and confirmation worker."""

    async def create_payment(self, record: PaymentRecord) -> tuple[PaymentRecord, bool]: ...

    async def get_payment(self, payment_id: str) -> Optional[PaymentRecord]: ...

    async def get_payment_by_hash(self, transaction_hash: str) -> Optional[PaymentRecord]: ...

    async def list_pending_payments(self, limit: int = 100) -> list[PaymentRecord]: ...

    async def update_payment_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        verified_at: datetime,
        failure_reason: Optional[str] = None,
    ) -> bool: ...


def _row_to_record(row: aiosqlite.Row) -> PaymentRecord:
    return PaymentRecord(
        id=row["id"],
        transaction_hash=row["transaction_hash"],
        action=row["action"],
        token_id=row["token_id"],
        status=row["status"],
        amount=int(row["amount"]),
        user_id=row["user_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
        verified_at=(
            datetime.fromisoformat(row["verified_at"])
            if row["verified_at"]
            else None
        ),
        failure_reason=row["failure_reason"],
    )


class Database:
    """Async SQLite implementation of PaymentRecordRepository."""

    def __init__(self, db_path: str = None):
        """Initialize database connection settings.

        Args:
            db_path: Path to SQLite database file. Defaults to config.database_path.
        """
        self.db_path = db_path or config.database_path

    async def initialize(self) -> None:
        """Initialize database schema."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.executescript(SCHEMA_SQL)
            await db.commit()
        logger.info(f"Database initialized at {self.db_path}")

    async def create_payment(self, record: PaymentRecord) -> tuple[PaymentRecord, bool]:
        """Create a payment record, or return the one already stored for its hash.

        Args:
            record: Record to create. Its transaction hash is lower-cased.

        Returns:
            (stored record, True) on first creation, (existing record, False) on repeat.
        """
        transaction_hash = record.transaction_hash.lower()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """
                    INSERT INTO payments
                    (id, transaction_hash, action, token_id, status, amount,
                     user_id, created_at, verified_at, failure_reason)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        transaction_hash,
                        record.action.value,
                        record.token_id,
                        record.status,
                        str(record.amount),
                        record.user_id,
                        record.created_at.isoformat(),
                        record.verified_at.isoformat() if record.verified_at else None,
                        record.failure_reason,
                    ),
                )
                await db.commit()
        except sqlite3.IntegrityError:
            existing = await self.get_payment_by_hash(transaction_hash)
            if existing is None:
                raise
            logger.info(f"Payment already recorded for {transaction_hash} (idempotent): {existing.id}")
            return existing, False

        logger.info(f"Created payment record {record.id} for {transaction_hash}")
        return record.model_copy(update={"transaction_hash": transaction_hash}), True

    async def get_payment(self, payment_id: str) -> Optional[PaymentRecord]:
        """Get a payment record by id."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM payments WHERE id = ?", (payment_id,))
            row = await cursor.fetchone()
            return _row_to_record(row) if row else None

    async def get_payment_by_hash(self, transaction_hash: str) -> Optional[PaymentRecord]:
        """Get a payment record by transaction hash (case-insensitive)."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM payments WHERE transaction_hash = ?",
                (transaction_hash.lower(),),
            )
            row = await cursor.fetchone()
            return _row_to_record(row) if row else None

    async def list_pending_payments(self, limit: int = 100) -> list[PaymentRecord]:
        """List the oldest pending records first."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM payments WHERE status = 'pending' ORDER BY created_at LIMIT ?",
                (limit,),
            )
            rows = await cursor.fetchall()
            return [_row_to_record(row) for row in rows]

    async def update_payment_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        verified_at: datetime,
        failure_reason: Optional[str] = None,
    ) -> bool:
        """Move a pending record to a terminal status.

        Args:
            payment_id: Record to update.
            status: Terminal status (verified or failed).
            verified_at: Time the outcome was decided.
            failure_reason: Why the payment failed, if it did.

        Returns:
            True if the record transitioned, False if it was not pending.
        """
        if status == "pending":
            raise ValueError("status updates must move a record to a terminal state")

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                UPDATE payments
                SET status = ?, verified_at = ?, failure_reason = ?
                WHERE id = ? AND status = 'pending'
                """,
                (status, verified_at.isoformat(), failure_reason, payment_id),
            )
            await db.commit()
            changed = cursor.rowcount > 0

        if changed:
            logger.info(f"Updated payment {payment_id} status to {status}")
        else:
            logger.info(f"Payment {payment_id} was not pending; status left unchanged")
        return changed
