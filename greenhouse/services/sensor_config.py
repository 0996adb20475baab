"""
Sensor Configuration - cloud-side source of truth for device sensors

Every change bumps the owning device's config_version in the same
transaction, which is how devices learn (on their next heartbeat) that
they need to pull a fresh configuration.
"""

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from greenhouse.core.errors import SensorConfigWriteFailed, SensorNotFound
from greenhouse.models.device import Device, utcnow
from greenhouse.models.sensor_config import SensorConfig

logger = logging.getLogger(__name__)


async def list_active_sensors(session: AsyncSession, device_id: uuid.UUID) -> list[SensorConfig]:
    result = await session.execute(
        select(SensorConfig)
        .where(SensorConfig.device_id == device_id, SensorConfig.is_active.is_(True))
        .order_by(SensorConfig.sensor_type, SensorConfig.port_id)
    )
    return list(result.scalars().all())


async def get_config_version(session: AsyncSession, device_id: uuid.UUID) -> int:
    return await session.scalar(select(Device.config_version).where(Device.id == device_id))


async def _bump_and_commit(session: AsyncSession, device_id: uuid.UUID) -> int:
    await session.execute(
        update(Device)
        .where(Device.id == device_id)
        .values(config_version=Device.config_version + 1)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return await get_config_version(session, device_id)


async def configure_sensor(
    session: AsyncSession, device_id: uuid.UUID, port_id: str, sensor_type: str
) -> int:
    """
    Assign a sensor type to a device port (insert or update).

    Returns:
        New config_version of the device
    """
    try:
        result = await session.execute(
            select(SensorConfig).where(
                SensorConfig.device_id == device_id, SensorConfig.port_id == port_id
            )
        )
        sensor = result.scalar_one_or_none()

        if sensor:
            sensor.sensor_type = sensor_type
            sensor.is_active = True
            sensor.configured_at = utcnow()
        else:
            session.add(SensorConfig(device_id=device_id, port_id=port_id, sensor_type=sensor_type))

        version = await _bump_and_commit(session, device_id)
    except SQLAlchemyError as e:
        await session.rollback()
        raise SensorConfigWriteFailed(str(e)) from e

    logger.info(f"Sensor {port_id}={sensor_type} configured for {device_id}, config_version={version}")
    return version


async def deactivate_sensor(session: AsyncSession, device_id: uuid.UUID, port_id: str) -> int:
    """
    Deactivate the sensor on a port.

    Raises:
        SensorNotFound: no active sensor on that port
    """
    try:
        result = await session.execute(
            update(SensorConfig)
            .where(
                SensorConfig.device_id == device_id,
                SensorConfig.port_id == port_id,
                SensorConfig.is_active.is_(True),
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await session.rollback()
            raise SensorNotFound(f"No active sensor on port {port_id}")

        version = await _bump_and_commit(session, device_id)
    except SQLAlchemyError as e:
        await session.rollback()
        raise SensorConfigWriteFailed(str(e)) from e

    logger.info(f"Sensor on {port_id} deactivated for {device_id}, config_version={version}")
    return version
