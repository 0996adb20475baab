"""
Device model - represents a physical greenhouse controller (ESP8266)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, DateTime, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from greenhouse.core.database import Base


STATUS_ONLINE = "online"
STATUS_OFFLINE = "offline"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Device(Base):
    """Physical device reporting heartbeats."""

    __tablename__ = "devices"

    # Legacy identifier (x-device-uuid)
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Project-scoped identifier (e.g., "PROJ1-ESP5")
    composite_device_id: Mapped[str | None] = mapped_column(String(16), unique=True, index=True, nullable=True)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # SHA-256 hex of the device key, NULL until first heartbeat
    key_digest: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Bumped on every sensor configuration change
    config_version: Mapped[int] = mapped_column(Integer, default=1)

    # Device info
    firmware_version: Mapped[str | None] = mapped_column(Text, nullable=True)
    hostname: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status
    status: Mapped[str] = mapped_column(String(10), default=STATUS_OFFLINE, index=True)
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow
    )

    @property
    def canonical_id(self) -> str:
        return self.composite_device_id or str(self.id)

    def __repr__(self) -> str:
        return f"<Device {self.canonical_id} ({self.status})>"
