# Database models
from greenhouse.models.device import Device
from greenhouse.models.heartbeat import Heartbeat
from greenhouse.models.sensor_config import SensorConfig

__all__ = ["Device", "Heartbeat", "SensorConfig"]
