"""
Delete expired QR sessions.

Meant to run from cron when the HTTP cleanup endpoint is not used.

Usage:
    python -m scripts.sweep_sessions [--database-url sqlite:///./qrorder.db]
"""

import argparse
import asyncio
import logging

from qrorder.config import get_settings
from qrorder.services import QRSessionManager
from qrorder.storage import SQLAlchemyStorage

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def sweep(database_url: str) -> int:
    storage = SQLAlchemyStorage(database_url)
    try:
        return await QRSessionManager(storage).sweep_expired()
    finally:
        await storage.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete expired QR sessions")
    parser.add_argument("--database-url", default=get_settings().database_url)
    args = parser.parse_args()

    deleted = asyncio.run(sweep(args.database_url))
    logger.info("Deleted %d expired session(s)", deleted)


if __name__ == "__main__":
    main()
