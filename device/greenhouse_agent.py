#!/usr/bin/env python3
"""
Greenhouse Device Agent
Runs on the device (Raspberry Pi / ESP gateway)

This script:
1. Sends a heartbeat every HEARTBEAT_INTERVAL seconds
2. Compares the server's config_version with the locally cached one
3. Pulls and applies sensor configuration when the server has a newer one

Only uses the standard library so it runs on a bare device install.
"""

import json
import os
import secrets
import socket
import sys
import time
from pathlib import Path
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

# ==================== CONFIGURATION ====================

INSTALL_DIR = Path(__file__).parent
CONFIG_FILE = INSTALL_DIR / "config.json"
CACHE_FILE = INSTALL_DIR / "sensor_config.json"
KEY_FILE = INSTALL_DIR / ".device_key"

FIRMWARE_VERSION = "v3.2.0"

HEARTBEAT_PATH = "/functions/v1/device-heartbeat"
CONFIG_PATH = "/api/device/config"

MAX_SENSORS = 4
MAX_CONFIG_VERSION = 10000  # anything above is a corrupted cache

# Default config (overridden by config.json)
DEFAULT_CONFIG = {
    "server_url": "http://localhost:8000",
    "composite_device_id": "",
    "device_uuid": "",
    "heartbeat_interval": 60,
    "timeout": 15,
}


def load_config() -> dict:
    """Load configuration from file."""
    config = DEFAULT_CONFIG.copy()

    if CONFIG_FILE.exists():
        try:
            with open(CONFIG_FILE) as f:
                config.update(json.load(f))
        except (OSError, ValueError) as e:
            print(f"Warning: Could not load config: {e}")

    # Environment overrides
    config["server_url"] = os.getenv("SERVER_URL", config["server_url"])
    config["composite_device_id"] = os.getenv("COMPOSITE_DEVICE_ID", config["composite_device_id"])
    config["device_uuid"] = os.getenv("DEVICE_UUID", config["device_uuid"])
    config["heartbeat_interval"] = int(os.getenv("HEARTBEAT_INTERVAL", str(config["heartbeat_interval"])))

    return config


def get_device_key(key_file: Path = KEY_FILE) -> str:
    """Get or generate the device secret (registered by the first heartbeat)."""
    if key_file.exists():
        key = key_file.read_text().strip()
        if key:
            return key

    key = secrets.token_hex(16)
    key_file.write_text(key)
    return key


def get_local_ip() -> str | None:
    """Get device IP address."""
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except OSError:
        return None


# ==================== CONFIG CACHE ====================

class ConfigCache:
    """Locally persisted copy of the cloud sensor configuration."""

    def __init__(self, path: Path = CACHE_FILE):
        self.path = path
        self.config_version = 0
        self.sensors: list[dict] = []

    def load(self) -> "ConfigCache":
        if self.path.exists():
            try:
                data = json.loads(self.path.read_text())
                if not isinstance(data, dict):
                    raise ValueError(f"expected an object, got {type(data).__name__}")
                self.config_version = int(data.get("config_version", 0))
                self.sensors = list(data.get("sensors", []))
            except (OSError, ValueError, TypeError) as e:
                print(f"Warning: Could not read config cache: {e}")
                self.config_version = 0
                self.sensors = []

        if not 0 <= self.config_version <= MAX_CONFIG_VERSION:
            print(f"Invalid config_version {self.config_version}, resetting to force cloud sync")
            self.config_version = 0

        return self

    def save(self):
        self.path.write_text(json.dumps({
            "config_version": self.config_version,
            "sensors": self.sensors,
        }, indent=2))


# ==================== SERVER CLIENT ====================

class HeartbeatClient:
    """Talks to the heartbeat and config endpoints."""

    def __init__(self, server_url: str, device_key: str, composite_device_id: str = "",
                 device_uuid: str = "", timeout: int = 15):
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", "x-device-key": device_key}
        if composite_device_id:
            self.headers["x-composite-device-id"] = composite_device_id
        elif device_uuid:
            self.headers["x-device-uuid"] = device_uuid
        else:
            raise ValueError("composite_device_id or device_uuid is required")

    def _request(self, method: str, path: str, body: dict | None = None) -> dict | None:
        data = json.dumps(body).encode() if body is not None else None
        request = Request(self.server_url + path, data=data, headers=self.headers, method=method)
        try:
            with urlopen(request, timeout=self.timeout) as response:
                payload = json.loads(response.read())
            if isinstance(payload, dict):
                return payload
            print(f"{method} {path} returned unexpected body: {payload!r}")
        except HTTPError as e:
            # 4xx: fix the request, 5xx: retry on next tick
            print(f"{method} {path} failed: {e.code} {e.read().decode(errors='replace')}")
        except (URLError, OSError, ValueError) as e:
            print(f"{method} {path} error: {e}")
        return None

    def send_heartbeat(self, telemetry: dict | None = None) -> dict | None:
        """Send heartbeat, returns the server response on success."""
        response = self._request("POST", HEARTBEAT_PATH, telemetry or {})
        if response and response.get("success"):
            return response
        return None

    def fetch_config(self) -> dict | None:
        return self._request("GET", CONFIG_PATH)


# ==================== CONFIG SYNC ====================

class ConfigSyncNegotiator:
    """
    Pull-based config sync: compare the server's config_version with the
    cached one, fetch and apply when the server is ahead.
    """

    def __init__(self, client: HeartbeatClient, cache: ConfigCache):
        self.client = client
        self.cache = cache

    def needs_sync(self, server_version: int | None) -> bool:
        if server_version is None:
            return False
        return server_version > self.cache.config_version

    @staticmethod
    def select_sensors(configs: list) -> list[dict]:
        """Keep usable sensor entries, at most MAX_SENSORS."""
        sensors = []
        if not isinstance(configs, list):
            return sensors
        for config in configs:
            if not isinstance(config, dict):
                continue
            sensor_type = config.get("sensor_type")
            port_id = config.get("port_id")
            if not sensor_type or not port_id or sensor_type == "unconfigured":
                continue
            if len(sensors) >= MAX_SENSORS:
                print("Max sensors reached, ignoring remaining configs")
                break
            sensors.append({"sensor_type": sensor_type, "port_id": port_id})
        return sensors

    def sync(self, server_version: int) -> bool:
        """
        Fetch and apply the server configuration.

        The cached version only advances after a successful apply, so a
        failed fetch is retried on the next heartbeat.
        """
        response = self.client.fetch_config()
        if response is None:
            print("Config fetch failed, keeping cached config")
            return False

        self.cache.sensors = self.select_sensors(response.get("sensors", []))
        version = response.get("config_version")
        self.cache.config_version = version if isinstance(version, int) else server_version
        self.cache.save()

        print(f"Cloud config applied (config_version={self.cache.config_version}, "
              f"{len(self.cache.sensors)} sensors)")
        return True

    def on_heartbeat(self, response: dict) -> bool:
        """Handle a heartbeat response. Returns True if a sync happened."""
        server_version = response.get("config_version")
        if not isinstance(server_version, int) or not self.needs_sync(server_version):
            return False
        print(f"Config changed: local={self.cache.config_version} cloud={server_version}")
        return self.sync(server_version)


# ==================== MAIN LOOP ====================

class DeviceAgent:
    def __init__(self, client: HeartbeatClient, negotiator: ConfigSyncNegotiator,
                 heartbeat_interval: int = 60):
        self.client = client
        self.negotiator = negotiator
        self.heartbeat_interval = heartbeat_interval
        self.running = False

    def telemetry(self) -> dict:
        data = {"fw_version": FIRMWARE_VERSION, "device_hostname": socket.gethostname()}
        ip = get_local_ip()
        if ip:
            data["ip_address"] = ip
        return data

    def tick(self) -> dict | None:
        response = self.client.send_heartbeat(self.telemetry())
        if response is None:
            return None
        self.negotiator.on_heartbeat(response)
        return response

    def run(self):
        self.running = True
        print(f"Greenhouse agent {FIRMWARE_VERSION} started, heartbeat every {self.heartbeat_interval}s")
        while self.running:
            self.tick()
            time.sleep(self.heartbeat_interval)


def main() -> int:
    config = load_config()
    try:
        client = HeartbeatClient(
            config["server_url"],
            get_device_key(),
            composite_device_id=config["composite_device_id"],
            device_uuid=config["device_uuid"],
            timeout=config["timeout"],
        )
    except ValueError as e:
        print(f"Configuration error: {e}")
        return 1

    negotiator = ConfigSyncNegotiator(client, ConfigCache().load())
    agent = DeviceAgent(client, negotiator, config["heartbeat_interval"])
    try:
        agent.run()
    except KeyboardInterrupt:
        print("Stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
