"""Unit tests for monotonic payment status transitions."""

from datetime import datetime, timedelta

import pytest

from src.database import Database, new_payment_id
from src.models import PaymentAction, PaymentRecord
from src.settlement.calculator import PaymentCalculator
from src.settlement.verification import VerificationService


@pytest.mark.unit
class TestStatusTransitions:
    """Test that terminal statuses are written once and never re-opened."""

    @pytest.fixture
    async def test_db(self, tmp_path):
        """Create a temporary test database."""
        db_path = tmp_path / "test.db"
        db = Database(str(db_path))
        await db.initialize()
        return db

    @pytest.fixture
    async def pending_record(self, test_db):
        record = PaymentRecord(
            id=new_payment_id(),
            transaction_hash="0x" + "12" * 32,
            action=PaymentAction.GENERATE_CONTENT,
            token_id="avc",
            amount=1000 * 10**18,
        )
        stored, _ = await test_db.create_payment(record)
        return stored

    @pytest.mark.asyncio
    async def test_pending_to_verified(self, test_db, pending_record):
        verified_at = datetime.utcnow()

        changed = await test_db.update_payment_status(pending_record.id, "verified", verified_at=verified_at)

        retrieved = await test_db.get_payment(pending_record.id)
        assert changed is True
        assert retrieved.status == "verified"
        assert retrieved.verified_at == verified_at
        assert retrieved.amount == 1000 * 10**18

    @pytest.mark.asyncio
    async def test_terminal_status_is_never_overwritten(self, test_db, pending_record):
        """Test that a second transition is detected and ignored."""
        first_time = datetime.utcnow()
        await test_db.update_payment_status(
            pending_record.id, "failed", verified_at=first_time, failure_reason="Transaction reverted on-chain"
        )

        changed = await test_db.update_payment_status(
            pending_record.id, "verified", verified_at=first_time + timedelta(minutes=5)
        )

        retrieved = await test_db.get_payment(pending_record.id)
        assert changed is False
        assert retrieved.status == "failed"
        assert retrieved.verified_at == first_time
        assert retrieved.failure_reason == "Transaction reverted on-chain"

    @pytest.mark.asyncio
    async def test_cannot_reopen_to_pending(self, test_db, pending_record):
        with pytest.raises(ValueError):
            await test_db.update_payment_status(pending_record.id, "pending", verified_at=datetime.utcnow())

    @pytest.mark.asyncio
    async def test_terminal_polls_are_stable(self, test_db, pending_record, registry):
        service = VerificationService(test_db, PaymentCalculator(registry))
        await test_db.update_payment_status(pending_record.id, "verified", verified_at=datetime.utcnow())

        first = await service.status(payment_id=pending_record.id)
        second = await service.status(payment_id=pending_record.id)

        assert first == second
        assert first.status == "verified"
        assert first.verified_at is not None

    @pytest.mark.asyncio
    async def test_failed_status_reports_reason(self, test_db, pending_record, registry):
        service = VerificationService(test_db, PaymentCalculator(registry))
        await test_db.update_payment_status(pending_record.id, "failed", verified_at=datetime.utcnow())

        status = await service.status(payment_id=pending_record.id)

        assert status.status == "failed"
        assert status.message == "Transaction failed or was not mined"

    @pytest.mark.asyncio
    async def test_pending_list_excludes_terminal(self, test_db, pending_record):
        assert [r.id for r in await test_db.list_pending_payments()] == [pending_record.id]

        await test_db.update_payment_status(pending_record.id, "verified", verified_at=datetime.utcnow())

        assert await test_db.list_pending_payments() == []
