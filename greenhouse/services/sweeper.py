"""
Offline Sweeper - marks devices offline when their heartbeats stop

Triggered from outside (scheduler loop or the detect-offline-devices
endpoint). A run either flips every stale device or none of them.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from greenhouse.core.errors import SweepQueryFailed, SweepUpdateFailed
from greenhouse.models.device import Device, STATUS_OFFLINE, STATUS_ONLINE, utcnow

logger = logging.getLogger(__name__)

OFFLINE_THRESHOLD_SECONDS = 120


@dataclass
class SweepResult:
    processed: int
    threshold_seconds: int
    timestamp: datetime
    device_ids: list[str]

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "threshold_seconds": self.threshold_seconds,
            "timestamp": self.timestamp.isoformat(),
        }


async def sweep_offline_devices(
    session: AsyncSession,
    now: datetime | None = None,
    threshold_seconds: int = OFFLINE_THRESHOLD_SECONDS,
) -> SweepResult:
    """
    Flip online devices with last_seen_at strictly older than now - threshold.

    Raises:
        SweepQueryFailed: stale devices could not be selected
        SweepUpdateFailed: bulk update failed, nothing was changed
    """
    now = now or utcnow()
    cutoff = now - timedelta(seconds=threshold_seconds)
    is_stale = (Device.status == STATUS_ONLINE, Device.last_seen_at < cutoff)

    try:
        result = await session.execute(select(Device.id, Device.composite_device_id).where(*is_stale))
        stale = result.all()
    except SQLAlchemyError as e:
        logger.error(f"Sweep query error: {e}")
        raise SweepQueryFailed(str(e)) from e

    flipped = []
    if stale:
        ids = [row.id for row in stale]
        try:
            # Staleness re-checked so a heartbeat landing mid-sweep wins
            result = await session.execute(
                update(Device)
                .where(Device.id.in_(ids), *is_stale)
                .values(status=STATUS_OFFLINE)
                .returning(Device.id, Device.composite_device_id)
                .execution_options(synchronize_session=False)
            )
            flipped = result.all()
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Sweep update error: {e}")
            raise SweepUpdateFailed(str(e)) from e

        if len(flipped) < len(stale):
            logger.info(f"{len(stale) - len(flipped)} devices reported in during the sweep")
        logger.info(f"Marked {len(flipped)} devices as offline")

    return SweepResult(
        processed=len(flipped),
        threshold_seconds=threshold_seconds,
        timestamp=now,
        device_ids=[row.composite_device_id or str(row.id) for row in flipped],
    )
