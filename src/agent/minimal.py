import asyncio
import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from src.config import config, validate_config_for_service
from src.logging_utils import setup_logging
from src.models import PaymentAction
from src.settlement_sdk import PaymentOrchestrator, SettlementClient, detect_wallet_provider


async def main(token_id: str = "avc", action: str = PaymentAction.GENERATE_CONTENT.value):
    setup_logging(config.log_level, "text")
    print("🚀 Starting minimal payment agent...")

    try:
        validate_config_for_service("client")
    except ValueError as e:
        print(f"❌ {e}")
        return

    # 1. Detect a wallet
    detection = await detect_wallet_provider()
    if not detection.available:
        print("❌ Error: no wallet available (set EMBEDDED_SIGNER_KEY or EXTERNAL_SIGNER_URL)")
        return
    print(f"🔐 Wallet: {detection.wallet_type.value}")

    # 2. Pay and wait for the chain outcome
    async with SettlementClient() as client:
        orchestrator = PaymentOrchestrator(detection.provider, client)
        print(f"📡 Paying for {action} with {token_id}...")
        outcome = await orchestrator.pay(token_id, PaymentAction(action), wait_for_confirmation=True)

    if outcome.succeeded:
        print(f"\n✅ Success! Payment {outcome.payment_id}")
        print(f"🔗 Transaction: {outcome.transaction_hash}")
        print(f"📋 Status: {outcome.settlement_status} (after {outcome.attempts} attempt(s))")
    else:
        print(f"\n❌ Failed at {outcome.history[-2].value}: {outcome.error.user_message}")
        print(f"   {outcome.error.category.value}: {outcome.error.message}")
        if outcome.transaction_hash:
            print(f"   Transaction: {outcome.transaction_hash}")


if __name__ == "__main__":
    asyncio.run(main(*sys.argv[1:3]))
