"""Run a single confirmation pass over pending payments.

Useful when the settlement service is down or to settle a backlog by hand.
"""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import config, validate_config_for_service
from src.database import Database
from src.logging_utils import get_logger, setup_logging
from src.settlement.chain import ChainGateway
from src.settlement.confirmation import ConfirmationWorker
from src.tokens import TokenRegistry

setup_logging(config.log_level, config.log_format)
logger = get_logger(__name__)


async def main():
    validate_config_for_service("settlement")

    db = Database(config.database_path)
    await db.initialize()

    worker = ConfirmationWorker(db, ChainGateway(), TokenRegistry.from_file())
    resolved = await worker.run_once()
    remaining = await db.list_pending_payments()

    logger.info(f"Resolved {resolved} payment(s); {len(remaining)} still pending")


if __name__ == "__main__":
    asyncio.run(main())
