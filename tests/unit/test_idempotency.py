"""Unit tests for idempotency logic (one record per transaction hash)."""

import pytest

from src.database import Database, new_payment_id
from src.errors import ConfigurationError, RecordNotFoundError, ValidationError
from src.models import PaymentAction, PaymentRecord
from src.settlement.calculator import PaymentCalculator
from src.settlement.verification import PENDING_MESSAGE, VerificationService

TX_HASH = "0x" + "ab" * 32


@pytest.mark.unit
class TestIdempotency:
    """Test payment record idempotency guarantees."""

    @pytest.fixture
    async def test_db(self, tmp_path):
        """Create a temporary test database."""
        db_path = tmp_path / "test.db"
        db = Database(str(db_path))
        await db.initialize()
        return db

    @pytest.fixture
    def service(self, test_db, registry):
        return VerificationService(test_db, PaymentCalculator(registry))

    @pytest.mark.asyncio
    async def test_duplicate_hash_returns_existing_record(self, test_db):
        """Test that a second insert with the same hash returns the first record."""
        first = PaymentRecord(
            id=new_payment_id(),
            transaction_hash=TX_HASH,
            action=PaymentAction.GENERATE_CONTENT,
            token_id="avc",
            amount=10,
        )
        second = first.model_copy(update={"id": new_payment_id(), "transaction_hash": TX_HASH.upper().replace("0X", "0x")})

        stored, created = await test_db.create_payment(first)
        again, created_again = await test_db.create_payment(second)

        assert created is True
        assert created_again is False
        assert again.id == stored.id
        assert await test_db.get_payment(second.id) is None

    @pytest.mark.asyncio
    async def test_initiate_twice_creates_one_record(self, service, test_db):
        first = await service.initiate(TX_HASH, "avc", PaymentAction.GENERATE_CONTENT, user_id="user-1")
        second = await service.initiate(TX_HASH, "avc", PaymentAction.GENERATE_CONTENT, user_id="user-1")

        assert first.created is True
        assert second.created is False
        assert second.record_id == first.record_id
        assert second.status == "pending"
        assert first.poll_url == f"/payments/verify?paymentId={first.record_id}"
        assert len(await test_db.list_pending_payments()) == 1

    @pytest.mark.asyncio
    async def test_repeat_after_terminal_returns_current_status(self, service, test_db):
        first = await service.initiate(TX_HASH, "avc", PaymentAction.MINT_ARTIFACT)
        record = await test_db.get_payment(first.record_id)
        await test_db.update_payment_status(record.id, "verified", verified_at=record.created_at)

        again = await service.initiate(TX_HASH, "avc", PaymentAction.MINT_ARTIFACT)

        assert again.record_id == first.record_id
        assert again.status == "verified"

    @pytest.mark.asyncio
    async def test_record_amount_is_authoritative_cost(self, service, test_db):
        result = await service.initiate(TX_HASH, "avc", PaymentAction.PLAY_MINIGAME)

        record = await test_db.get_payment(result.record_id)
        assert record.amount == 1000 * 10**18
        assert record.action == PaymentAction.PLAY_MINIGAME

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_hash", ["0x123", "ab" * 32, "0x" + "zz" * 32, "0x" + "ab" * 33, "0x" + "ab" * 32 + "\n"])
    async def test_malformed_hash_rejected_before_store(self, service, test_db, bad_hash):
        with pytest.raises(ValidationError):
            await service.initiate(bad_hash, "avc", PaymentAction.GENERATE_CONTENT)

        assert await test_db.list_pending_payments() == []

    @pytest.mark.asyncio
    async def test_unknown_token_or_action_rejected(self, service, test_db):
        with pytest.raises(ConfigurationError):
            await service.initiate(TX_HASH, "unknown", PaymentAction.GENERATE_CONTENT)
        with pytest.raises(ConfigurationError):
            await service.initiate(TX_HASH, "avc", "buy-coffee")

        assert await test_db.get_payment_by_hash(TX_HASH) is None

    @pytest.mark.asyncio
    async def test_status_of_pending_record(self, service):
        result = await service.initiate(TX_HASH, "avc", PaymentAction.GENERATE_CONTENT)

        by_id = await service.status(payment_id=result.record_id)
        by_hash = await service.status(transaction_hash=TX_HASH.replace("ab", "AB"))

        assert by_id.status == "pending"
        assert by_id.message == PENDING_MESSAGE
        assert by_hash.payment_id == result.record_id

    @pytest.mark.asyncio
    async def test_unknown_record_is_not_found(self, service):
        with pytest.raises(RecordNotFoundError):
            await service.status(payment_id="pmt-missing")
        with pytest.raises(RecordNotFoundError):
            await service.status(transaction_hash="0x" + "cd" * 32)

    @pytest.mark.asyncio
    async def test_status_requires_a_key(self, service):
        with pytest.raises(ValidationError):
            await service.status()
