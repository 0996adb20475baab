"""
Telemetry Recorder - stores heartbeat events and refreshes device liveness

The heartbeat row is the durable record and must be written; the device
status update afterwards is best-effort.
"""

import json
import logging
import math
from datetime import datetime

from pydantic import BaseModel, field_validator
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from greenhouse.core.errors import StatusUpdateFailed, TelemetryWriteFailed
from greenhouse.models.device import Device, STATUS_ONLINE, utcnow
from greenhouse.models.heartbeat import Heartbeat
from greenhouse.services.registry import DeviceRecord

logger = logging.getLogger(__name__)


class HeartbeatPayload(BaseModel):
    """
    Optional telemetry sent in the heartbeat body.

    Fields of the wrong type decode to None instead of failing validation.
    """

    rssi: float | None = None
    fw_version: str | None = None
    ip_address: str | None = None
    device_hostname: str | None = None

    @field_validator("rssi", mode="before")
    @classmethod
    def _numeric_or_absent(cls, value):
        # bool is an int subclass but not a signal strength
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        try:
            finite = math.isfinite(value)
        except OverflowError:
            # Integer beyond float range
            return None
        return value if finite else None

    @field_validator("fw_version", "ip_address", "device_hostname", mode="before")
    @classmethod
    def _string_or_absent(cls, value):
        return value if isinstance(value, str) else None


def decode_heartbeat_payload(raw_body: bytes | str | None) -> HeartbeatPayload:
    """Parse the request body, treating anything unusable as an empty payload."""
    if not raw_body:
        return HeartbeatPayload()

    try:
        data = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        return HeartbeatPayload()

    if not isinstance(data, dict):
        return HeartbeatPayload()

    known = {name: data[name] for name in HeartbeatPayload.model_fields if name in data}
    return HeartbeatPayload(**known)


async def _insert_heartbeat(
    session: AsyncSession, device: DeviceRecord, payload: HeartbeatPayload, now: datetime
) -> None:
    heartbeat = Heartbeat(
        device_id=device.id,
        composite_device_id=device.canonical_id,
        rssi=payload.rssi,
        fw_version=payload.fw_version,
        ip_address=payload.ip_address,
        hostname=payload.device_hostname,
        ts=now,
    )
    try:
        session.add(heartbeat)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Heartbeat insert failed for {device.canonical_id}: {e}")
        raise TelemetryWriteFailed(str(e)) from e


async def _mark_online(
    session: AsyncSession, device: DeviceRecord, payload: HeartbeatPayload, now: datetime
) -> None:
    values = {"last_seen_at": now, "status": STATUS_ONLINE}
    if payload.fw_version:
        values["firmware_version"] = payload.fw_version
    if payload.device_hostname:
        values["hostname"] = payload.device_hostname

    try:
        await session.execute(
            update(Device)
            .where(Device.id == device.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise StatusUpdateFailed(str(e)) from e


async def record_heartbeat(
    session: AsyncSession,
    device: DeviceRecord,
    payload: HeartbeatPayload,
    now: datetime | None = None,
) -> datetime:
    """
    Record an authenticated heartbeat.

    Returns:
        Timestamp stored on the heartbeat event

    Raises:
        TelemetryWriteFailed: the heartbeat event could not be stored
    """
    now = now or utcnow()

    await _insert_heartbeat(session, device, payload, now)

    try:
        await _mark_online(session, device, payload, now)
    except StatusUpdateFailed as e:
        # Heartbeat is already durable, liveness catches up on the next one
        logger.error(f"Device status update failed for {device.canonical_id}: {e}")

    return now


async def list_heartbeats(session: AsyncSession, device_id, limit: int = 100) -> list[Heartbeat]:
    """Most recent heartbeat events for a device, newest first."""
    result = await session.execute(
        select(Heartbeat)
        .where(Heartbeat.device_id == device_id)
        .order_by(Heartbeat.ts.desc(), Heartbeat.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
