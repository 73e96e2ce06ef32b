"""
Simple settlement SDK example.

Lists the configured tokens and, given a payment id or transaction hash,
prints its current status. It assumes a local settlement service is running
(e.g. `python -m src.settlement.server`).
"""
import asyncio
import sys

from src.errors import PaymentError
from src.settlement_sdk import SettlementClient


async def main(lookup: str = None):
    print("🚀 Initializing settlement client...")

    async with SettlementClient(base_url="http://localhost:4030") as client:
        try:
            tokens = await client.get_tokens()
        except PaymentError as e:
            print(f"❌ Could not reach the service: {e.message}")
            return

        for token in tokens:
            print(f"🪙 {token['symbol']} ({token['id']}) by {token['writer']}")
            for action, price in token["prices"].items():
                print(f"   {action}: {price['amountFormatted']}")

        if not lookup:
            return

        try:
            if lookup.startswith("0x"):
                status = await client.get_status(transaction_hash=lookup)
            else:
                status = await client.get_status(payment_id=lookup)
        except PaymentError as e:
            print(f"❌ {e.category.value}: {e.message}")
            return

        print(f"\n📋 {status.paymentId}: {status.status}")
        if status.message:
            print(f"   {status.message}")


if __name__ == "__main__":
    asyncio.run(main(*sys.argv[1:2]))
