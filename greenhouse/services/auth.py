"""
Heartbeat Authenticator - device key registration and verification

A device ships with a self-generated secret key. The first heartbeat stores
the SHA-256 digest of that key (first contact); every later request must
present a key with the same digest. There is no rotation through this path:
only the admin reset clears a stored digest.
"""

import hashlib
import hmac
import logging
from dataclasses import replace

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from greenhouse.core.errors import CredentialMismatch, KeyRegistrationFailed, MissingCredential
from greenhouse.models.device import Device
from greenhouse.services.registry import DeviceRecord

logger = logging.getLogger(__name__)


def hash_device_key(device_key: str) -> str:
    """SHA-256 hex digest of a device key."""
    return hashlib.sha256(device_key.encode("utf-8")).hexdigest()


def require_device_key(device_key: str | None) -> str:
    if not device_key:
        raise MissingCredential("x-device-key header is required")
    return device_key


def _verify(device: DeviceRecord, digest: str) -> None:
    if not hmac.compare_digest(device.key_digest, digest):
        logger.warning(f"Device key mismatch for {device.canonical_id}")
        raise CredentialMismatch("Device key does not match stored hash")


async def _register_key(session: AsyncSession, device: DeviceRecord, digest: str) -> DeviceRecord:
    """
    First contact: store the digest, but only if no other request got there first.

    The write is conditioned on key_digest still being NULL. When it matches
    no row, a concurrent first heartbeat already registered a key and this
    request is verified against that one instead.
    """
    stmt = (
        update(Device)
        .where(Device.id == device.id, Device.key_digest.is_(None))
        .values(key_digest=digest)
        .execution_options(synchronize_session=False)
    )
    try:
        result = await session.execute(stmt)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to register device key for {device.canonical_id}: {e}")
        raise KeyRegistrationFailed(str(e)) from e

    if result.rowcount == 1:
        logger.info(f"First heartbeat from {device.canonical_id}, device key registered")
        return replace(device, key_digest=digest)

    logger.warning(f"Concurrent key registration for {device.canonical_id}, verifying against stored key")
    try:
        stored = await session.scalar(select(Device.key_digest).where(Device.id == device.id))
    except SQLAlchemyError as e:
        raise KeyRegistrationFailed(str(e)) from e

    if stored is None:
        # Row vanished or was reset between our read and write
        raise KeyRegistrationFailed("Device key registration did not apply")

    current = replace(device, key_digest=stored)
    _verify(current, digest)
    return current


async def authenticate_device(
    session: AsyncSession,
    device: DeviceRecord,
    device_key: str | None,
    verify_only: bool = False,
) -> DeviceRecord:
    """
    Run the NO_KEY -> FIRST_CONTACT / HAS_KEY -> VERIFY state machine.

    Args:
        session: Database session
        device: Resolved device record
        device_key: Value of the x-device-key header
        verify_only: Reject unregistered devices instead of registering them

    Returns:
        Device record with the digest now in effect

    Raises:
        MissingCredential, CredentialMismatch, KeyRegistrationFailed
    """
    key = require_device_key(device_key)
    digest = hash_device_key(key)

    if device.key_digest is None:
        if verify_only:
            raise CredentialMismatch("Device has no registered key yet, send a heartbeat first")
        return await _register_key(session, device, digest)

    _verify(device, digest)
    return device


async def reset_device_key(session: AsyncSession, device_id) -> None:
    """
    Admin operation: forget the stored digest.

    The next heartbeat from the device goes through first contact again
    and registers whatever key it presents.
    """
    try:
        await session.execute(
            update(Device)
            .where(Device.id == device_id)
            .values(key_digest=None)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise KeyRegistrationFailed(str(e)) from e

    logger.warning(f"Device key reset for {device_id}")
