"""Main entry point for the daily crypto digest."""
import asyncio
import sys

from crypto_digest.api import RateLimitedClient, create_transport
from crypto_digest.report import DailyDataGenerator, RunResult
from crypto_digest.utils import setup_logger

logger = setup_logger(__name__)


async def run() -> RunResult:
    """Generate today's report with a fresh client."""
    async with RateLimitedClient(create_transport()) as client:
        return await DailyDataGenerator(client).generate()


def main():
    """Run once and exit 0 on success, 1 on failure."""
    result = asyncio.run(run())

    if not result.success:
        logger.error(f"💥 Data generation failed: {result.error}")
        sys.exit(1)

    logger.info("🎉 Data generation completed successfully!")
    sys.exit(0)


if __name__ == "__main__":
    main()
