"""Unit tests for background chain confirmation."""

from datetime import datetime, timedelta

import pytest

from src.database import Database, new_payment_id
from src.models import PaymentAction, PaymentRecord
from src.settlement.confirmation import ConfirmationWorker, transferred_from

CONTRACT = "0x1111111111111111111111111111111111111111"
PAYER = "0x2222222222222222222222222222222222222222"
PRICE = 1000 * 10**18
NOW = datetime(2026, 1, 1, 12, 0, 0)


@pytest.mark.unit
class TestConfirmationWorker:
    """Test receipt evaluation and pending record transitions."""

    @pytest.fixture
    async def test_db(self, tmp_path):
        """Create a temporary test database."""
        db = Database(str(tmp_path / "test.db"))
        await db.initialize()
        return db

    @pytest.fixture
    def worker(self, test_db, fake_chain, registry):
        return ConfirmationWorker(
            test_db,
            fake_chain,
            registry,
            payment_contract_address=CONTRACT,
            concurrency=2,
            pending_timeout_seconds=600,
            clock=lambda: NOW,
        )

    @pytest.fixture
    def add_record(self, test_db, hash_factory):
        async def _add(n: int, age: timedelta = timedelta(seconds=30), amount: int = PRICE) -> PaymentRecord:
            record = PaymentRecord(
                id=new_payment_id(),
                transaction_hash=hash_factory(n),
                action=PaymentAction.GENERATE_CONTENT,
                token_id="avc",
                amount=amount,
                created_at=NOW - age,
            )
            stored, _ = await test_db.create_payment(record)
            return stored

        return _add

    @pytest.mark.asyncio
    async def test_matching_receipt_is_verified(self, worker, test_db, fake_chain, add_record, receipt_factory):
        record = await add_record(1)
        fake_chain.receipts[record.transaction_hash] = receipt_factory(PRICE)

        resolved = await worker.run_once()

        stored = await test_db.get_payment(record.id)
        assert resolved == 1
        assert stored.status == "verified"
        assert stored.verified_at == NOW

    @pytest.mark.asyncio
    async def test_young_unmined_stays_pending(self, worker, test_db, add_record):
        record = await add_record(2)

        assert await worker.run_once() == 0
        assert (await test_db.get_payment(record.id)).status == "pending"

    @pytest.mark.asyncio
    async def test_old_unmined_fails(self, worker, test_db, add_record):
        record = await add_record(3, age=timedelta(hours=1))

        await worker.run_once()

        stored = await test_db.get_payment(record.id)
        assert stored.status == "failed"
        assert "not mined" in stored.failure_reason

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "receipt_kwargs,amount,reason",
        [
            ({"status": 0}, PRICE, "reverted"),
            ({"to": "0x9999999999999999999999999999999999999999"}, PRICE, "payment contract"),
            ({}, PRICE // 2, "expected"),
            ({"token": "0x8888888888888888888888888888888888888888"}, PRICE, "expected"),
            ({"payer": "0x7777777777777777777777777777777777777777"}, PRICE, "expected"),
        ],
    )
    async def test_mismatched_receipts_fail(
        self, worker, test_db, fake_chain, add_record, receipt_factory, receipt_kwargs, amount, reason
    ):
        record = await add_record(4)
        receipt = receipt_factory(amount, **receipt_kwargs)
        if "payer" in receipt_kwargs:
            # Transfer came from someone other than the transaction sender
            receipt["from"] = PAYER
        fake_chain.receipts[record.transaction_hash] = receipt

        await worker.run_once()

        stored = await test_db.get_payment(record.id)
        assert stored.status == "failed"
        assert reason in stored.failure_reason

    @pytest.mark.asyncio
    async def test_rpc_error_leaves_record_pending(self, worker, test_db, fake_chain, add_record):
        record = await add_record(5, age=timedelta(hours=2))
        fake_chain.receipt_errors.add(record.transaction_hash)

        assert await worker.run_once() == 0
        assert (await test_db.get_payment(record.id)).status == "pending"

    @pytest.mark.asyncio
    async def test_many_records_in_one_pass(self, worker, test_db, fake_chain, add_record, receipt_factory):
        records = [await add_record(n) for n in range(10, 16)]
        for record in records[:4]:
            fake_chain.receipts[record.transaction_hash] = receipt_factory(PRICE)

        resolved = await worker.run_once()

        assert resolved == 4
        assert len(fake_chain.receipt_calls) == 6
        assert len(await test_db.list_pending_payments()) == 2

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, worker, test_db, fake_chain, add_record, receipt_factory):
        record = await add_record(20)
        fake_chain.receipts[record.transaction_hash] = receipt_factory(PRICE)

        assert await worker.confirm(record) == "verified"
        # A stale copy of the record evaluated again must not write anything
        assert await worker.confirm(record) is None

        stored = await test_db.get_payment(record.id)
        assert stored.status == "verified"
        assert stored.verified_at == NOW

    @pytest.mark.asyncio
    async def test_start_and_stop(self, worker):
        worker.start()
        await worker.stop()
        assert worker._task is None

    def test_transferred_from_handles_bytes(self, receipt_factory):
        receipt = receipt_factory(PRICE)
        log = receipt["logs"][0]
        log["topics"] = [bytes.fromhex(topic[2:]) for topic in log["topics"]]
        log["data"] = bytes.fromhex(log["data"][2:])
        receipt["logs"].append(dict(log))

        assert transferred_from(receipt, "0x06FC3D5D2369561E28F261148576520F5E49D6EA", PAYER) == 2 * PRICE
