"""
Scheduler Service - periodically triggers the offline sweep
Runs as a standalone process alongside the API:

    python -m greenhouse.services.scheduler
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from greenhouse.core.config import settings
from greenhouse.core.database import async_session_maker
from greenhouse.core.errors import DeviceServiceError
from greenhouse.services.sweeper import SweepResult, sweep_offline_devices

logger = logging.getLogger(__name__)


class OfflineSweepScheduler:
    """Scheduler for the offline device sweep."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
        interval_seconds: int = settings.sweep_interval_seconds,
        threshold_seconds: int = settings.offline_threshold_seconds,
    ):
        self.session_maker = session_maker
        self.interval_seconds = interval_seconds
        self.threshold_seconds = threshold_seconds
        self.running = False

    async def start(self):
        """Start the scheduler loop."""
        self.running = True
        logger.info(f"Offline sweep scheduler started (every {self.interval_seconds}s)")

        while self.running:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def stop(self):
        """Stop the scheduler."""
        self.running = False
        logger.info("Offline sweep scheduler stopped")

    async def run_once(self) -> SweepResult | None:
        """Run a single sweep. Failures are logged; the next tick retries."""
        async with self.session_maker() as session:
            try:
                result = await sweep_offline_devices(session, threshold_seconds=self.threshold_seconds)
            except DeviceServiceError as e:
                logger.error(f"Sweep failed: {e.error}: {e.details}")
                return None

        if result.processed:
            logger.info(f"Sweep marked offline: {', '.join(result.device_ids)}")
        return result


async def run_scheduler():
    """Run the offline sweep scheduler."""
    scheduler = OfflineSweepScheduler()
    await scheduler.start()


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level)
    asyncio.run(run_scheduler())
