"""Database initialization script.

Run this to create the payment record store and check the token configuration.
"""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import config
from src.database import Database
from src.logging_utils import get_logger, setup_logging
from src.settlement.calculator import PaymentCalculator
from src.tokens import TokenRegistry

setup_logging(config.log_level, config.log_format)
logger = get_logger(__name__)


async def main():
    """Initialize the database."""
    db = Database(config.database_path)
    logger.info("Initializing settlement database...")
    logger.info(f"Database path: {db.db_path}")

    await db.initialize()

    registry = TokenRegistry.from_file()
    if not len(registry):
        logger.error(f"No tokens configured in {config.token_config_path}")
        sys.exit(1)

    calculator = PaymentCalculator(registry)
    for token in registry:
        logger.info(f"- {token.id}: {token.name} ({token.symbol}) at {token.address}")
        for cost in calculator.quote_all(token.id):
            logger.info(f"    {cost.action.value}: {cost.amount_formatted} {token.symbol}")

    pending = await db.list_pending_payments()
    logger.info(f"{len(pending)} payment(s) currently pending")
    logger.info("Database initialization complete!")


if __name__ == "__main__":
    asyncio.run(main())
