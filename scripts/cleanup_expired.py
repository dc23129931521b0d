"""
Remove staged transactions that expired without being executed.

Meant for cron, e.g. every 15 minutes:
    */15 * * * * cd /srv/blockserved && python scripts/cleanup_expired.py
"""
import asyncio
import logging
import sys
sys.path.insert(0, ".")

from blockserved.core.config import get_settings
from blockserved.core.database import close_db, init_db
from blockserved.core.logging_config import setup_logging
from blockserved.services.transaction_staging import TransactionStager

logger = logging.getLogger("blockserved.cleanup")


async def main() -> int:
    settings = get_settings()
    setup_logging(level=settings.log_level, json_format=settings.log_json_format)
    try:
        await init_db()
        result = await TransactionStager(settings).cleanup_expired_transactions()
    except Exception:
        logger.exception("Cleanup failed")
        return 1
    finally:
        await close_db()

    logger.info("Cleanup finished: %d transaction(s) removed", result["cleaned"])
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
