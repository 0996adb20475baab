"""
Heartbeat model - immutable liveness/telemetry events from devices
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Text, Float, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from greenhouse.core.database import Base
from greenhouse.models.device import utcnow


class Heartbeat(Base):
    """One accepted heartbeat request."""

    __tablename__ = "device_heartbeats"

    id: Mapped[int] = mapped_column(primary_key=True)
    device_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("devices.id", ondelete="CASCADE"), index=True
    )
    composite_device_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # Telemetry (all optional)
    rssi: Mapped[float | None] = mapped_column(Float, nullable=True)  # dBm
    fw_version: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    hostname: Mapped[str | None] = mapped_column(Text, nullable=True)

    ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        index=True
    )

    def __repr__(self) -> str:
        return f"<Heartbeat device={self.device_id} rssi={self.rssi}>"
