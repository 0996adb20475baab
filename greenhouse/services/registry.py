"""
Device Registry - resolves inbound identifiers to device records

Devices identify themselves either by the legacy UUID (x-device-uuid) or by
the project-scoped composite id (x-composite-device-id, e.g. "PROJ1-ESP5").
"""

import logging
import re
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from greenhouse.core.errors import (
    DeviceLookupFailed,
    DeviceNotFound,
    InvalidIdentifierFormat,
    MissingIdentifier,
)
from greenhouse.models.device import Device

logger = logging.getLogger(__name__)

# PROJ1-ESP5 or P1000-ESP20: 4-5 uppercase alphanumerics, device number 1-20
COMPOSITE_ID_REGEX = re.compile(r"^[A-Z0-9]{4,5}-ESP(1[0-9]|20|[1-9])$")

LEGACY = "legacy"
COMPOSITE = "composite"


@dataclass(frozen=True)
class DeviceIdentifier:
    kind: str
    value: str


@dataclass(frozen=True)
class DeviceRecord:
    """What the authenticator needs to know about a device."""

    id: uuid.UUID
    key_digest: str | None
    config_version: int
    canonical_id: str

    @classmethod
    def from_device(cls, device: Device) -> "DeviceRecord":
        return cls(
            id=device.id,
            key_digest=device.key_digest,
            config_version=device.config_version,
            canonical_id=device.canonical_id,
        )


def is_valid_composite_id(value: str) -> bool:
    return COMPOSITE_ID_REGEX.fullmatch(value) is not None


def resolve_identifier(device_uuid: str | None, composite_device_id: str | None) -> DeviceIdentifier:
    """
    Pick the identifier to look up.

    The composite id wins when both headers are present.

    Raises:
        InvalidIdentifierFormat: composite id does not match PROJECT-ESPn
        MissingIdentifier: neither header supplied
    """
    if composite_device_id:
        if not is_valid_composite_id(composite_device_id):
            raise InvalidIdentifierFormat(
                "Expected format: PROJ1-ESP5 (project ID + device number 1-20)"
            )
        return DeviceIdentifier(COMPOSITE, composite_device_id)

    if device_uuid:
        return DeviceIdentifier(LEGACY, device_uuid)

    raise MissingIdentifier("Provide either x-device-uuid or x-composite-device-id header")


def parse_identifier(value: str) -> DeviceIdentifier:
    """Classify a bare identifier (admin routes accept either form)."""
    if is_valid_composite_id(value):
        return DeviceIdentifier(COMPOSITE, value)
    return DeviceIdentifier(LEGACY, value)


async def load_device(session: AsyncSession, identifier: DeviceIdentifier) -> Device:
    """Fetch the device row for an identifier."""
    if identifier.kind == COMPOSITE:
        stmt = select(Device).where(Device.composite_device_id == identifier.value)
    else:
        try:
            device_uuid = uuid.UUID(identifier.value)
        except ValueError:
            # Malformed UUID can't match any row
            raise DeviceNotFound(f"Device {identifier.value} is not registered")
        stmt = select(Device).where(Device.id == device_uuid)

    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        logger.error(f"Device lookup failed ({identifier.kind} {identifier.value}): {e}")
        raise DeviceLookupFailed(str(e)) from e

    device = result.scalar_one_or_none()
    if device is None:
        logger.warning(f"Unknown device: {identifier.value}")
        raise DeviceNotFound(f"Device {identifier.value} is not registered")

    return device


async def lookup_device(session: AsyncSession, identifier: DeviceIdentifier) -> DeviceRecord:
    device = await load_device(session, identifier)
    return DeviceRecord.from_device(device)
