"""
Tests for cloud sensor configuration and config_version tracking.
"""

import pytest

from greenhouse.core.errors import SensorNotFound
from greenhouse.services.sensor_config import (
    configure_sensor,
    deactivate_sensor,
    get_config_version,
    list_active_sensors,
)


class TestConfigureSensor:

    def test_new_sensor_bumps_version(self, make_device, run):
        device = make_device()

        version = run(configure_sensor, device.id, "GPIO4", "dht22_temp")

        assert version == 2
        sensors = run(list_active_sensors, device.id)
        assert [(s.port_id, s.sensor_type) for s in sensors] == [("GPIO4", "dht22_temp")]

    def test_each_change_bumps_once(self, make_device, run):
        device = make_device(config_version=5)

        run(configure_sensor, device.id, "GPIO4", "dht22_temp")
        run(configure_sensor, device.id, "A0", "soil_moisture")
        run(configure_sensor, device.id, "GPIO4", "dht22_humidity")

        assert run(get_config_version, device.id) == 8

    def test_update_replaces_type_on_port(self, make_device, run):
        device = make_device()
        run(configure_sensor, device.id, "GPIO4", "dht22_temp")
        run(configure_sensor, device.id, "GPIO4", "water_level")

        sensors = run(list_active_sensors, device.id)

        assert [(s.port_id, s.sensor_type) for s in sensors] == [("GPIO4", "water_level")]

    def test_sensors_ordered_by_type(self, make_device, run):
        device = make_device()
        run(configure_sensor, device.id, "A0", "soil_moisture")
        run(configure_sensor, device.id, "GPIO4", "dht22_temp")

        sensors = run(list_active_sensors, device.id)

        assert [s.sensor_type for s in sensors] == ["dht22_temp", "soil_moisture"]

    def test_other_devices_untouched(self, make_device, run):
        device = make_device(composite_device_id="PROJ1-ESP1")
        other = make_device(composite_device_id="PROJ1-ESP2")

        run(configure_sensor, device.id, "GPIO4", "dht22_temp")

        assert run(get_config_version, other.id) == 1
        assert run(list_active_sensors, other.id) == []


class TestDeactivateSensor:

    def test_deactivate_bumps_version(self, make_device, run):
        device = make_device()
        run(configure_sensor, device.id, "GPIO4", "dht22_temp")

        version = run(deactivate_sensor, device.id, "GPIO4")

        assert version == 3
        assert run(list_active_sensors, device.id) == []

    def test_reactivate_after_deactivate(self, make_device, run):
        device = make_device()
        run(configure_sensor, device.id, "GPIO4", "dht22_temp")
        run(deactivate_sensor, device.id, "GPIO4")

        run(configure_sensor, device.id, "GPIO4", "dht22_temp")

        assert len(run(list_active_sensors, device.id)) == 1

    def test_unknown_port(self, make_device, run):
        device = make_device()

        with pytest.raises(SensorNotFound):
            run(deactivate_sensor, device.id, "GPIO5")

        assert run(get_config_version, device.id) == 1

    def test_already_inactive(self, make_device, run):
        device = make_device()
        run(configure_sensor, device.id, "GPIO4", "dht22_temp")
        run(deactivate_sensor, device.id, "GPIO4")

        with pytest.raises(SensorNotFound):
            run(deactivate_sensor, device.id, "GPIO4")
