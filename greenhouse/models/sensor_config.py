"""
Sensor configuration model - which sensor is wired to which device port
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Boolean, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from greenhouse.core.database import Base
from greenhouse.models.device import utcnow


class SensorConfig(Base):
    """Cloud-side sensor assignment pulled by devices on config sync."""

    __tablename__ = "device_sensor_configs"
    __table_args__ = (
        UniqueConstraint("device_id", "port_id", name="uq_sensor_config_device_port"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    device_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("devices.id", ondelete="CASCADE"), index=True
    )

    port_id: Mapped[str] = mapped_column(String(10))  # "GPIO4", "D1", "A0"
    sensor_type: Mapped[str] = mapped_column(String(50))  # "dht22_temp", "soil_moisture", ...
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    configured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow
    )

    def to_dict(self) -> dict:
        return {
            "sensor_type": self.sensor_type,
            "port_id": self.port_id,
            "configured_at": self.configured_at.isoformat() if self.configured_at else None,
        }

    def __repr__(self) -> str:
        return f"<SensorConfig {self.port_id}={self.sensor_type}>"
