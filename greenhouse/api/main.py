"""
Greenhouse Devices - API Server

Provides endpoints for:
- Device heartbeat (key registration/verification + telemetry)
- Offline detection sweep (called by an external scheduler)
- Device sensor configuration pull (config sync)
- Admin: key reset, sensor configuration, heartbeat history
"""

import hmac
import logging
from datetime import datetime

from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from greenhouse.core.config import settings
from greenhouse.core.database import get_db
from greenhouse.core.errors import AdminAccessDenied, DeviceServiceError, SweepQueryFailed, SweepUpdateFailed
from greenhouse.services.auth import authenticate_device, require_device_key, reset_device_key
from greenhouse.services.registry import load_device, lookup_device, parse_identifier, resolve_identifier
from greenhouse.services.sensor_config import (
    configure_sensor,
    deactivate_sensor,
    get_config_version,
    list_active_sensors,
)
from greenhouse.services.sweeper import sweep_offline_devices
from greenhouse.services.telemetry import decode_heartbeat_payload, list_heartbeats, record_heartbeat

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

SERVICE_VERSION = "1.0.0"

DEVICE_HEADERS = [
    "authorization",
    "x-client-info",
    "apikey",
    "content-type",
    "x-device-key",
    "x-device-uuid",
    "x-composite-device-id",
]


# ==================== APP ====================

app = FastAPI(
    title="Greenhouse Devices API",
    description="Heartbeat, liveness and config sync for greenhouse devices",
    version=SERVICE_VERSION,
)

# Devices and the dashboard call from anywhere
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=DEVICE_HEADERS,
)


@app.exception_handler(DeviceServiceError)
async def device_service_error_handler(request: Request, exc: DeviceServiceError):
    return JSONResponse(exc.to_body(), status_code=exc.status_code)


def _timestamp(value: datetime) -> str:
    return value.isoformat()


# ==================== DEVICE HEARTBEAT ====================

@app.options("/functions/v1/device-heartbeat")
async def device_heartbeat_preflight():
    return Response(status_code=204)


@app.post("/functions/v1/device-heartbeat")
async def device_heartbeat(
    request: Request,
    x_device_key: str | None = Header(None),
    x_device_uuid: str | None = Header(None),
    x_composite_device_id: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Accept a device heartbeat.

    First heartbeat registers the device key (stores its SHA-256 digest),
    later heartbeats must present the same key. The response carries the
    current config_version so the device can decide to pull its sensor config.
    """
    device_key = require_device_key(x_device_key)
    identifier = resolve_identifier(x_device_uuid, x_composite_device_id)

    device = await lookup_device(db, identifier)
    device = await authenticate_device(db, device, device_key)

    payload = decode_heartbeat_payload(await request.body())
    timestamp = await record_heartbeat(db, device, payload)

    return {
        "success": True,
        "device_id": device.canonical_id,
        "status": "online",
        "timestamp": _timestamp(timestamp),
        "config_version": device.config_version,
    }


# ==================== OFFLINE DETECTION ====================

@app.api_route("/functions/v1/detect-offline-devices", methods=["GET", "POST"])
async def detect_offline_devices(db: AsyncSession = Depends(get_db)):
    """Mark devices offline that missed heartbeats for longer than the threshold."""
    try:
        result = await sweep_offline_devices(db, threshold_seconds=settings.offline_threshold_seconds)
    except (SweepQueryFailed, SweepUpdateFailed) as e:
        return JSONResponse({"error": e.details or e.error}, status_code=500)

    return result.to_dict()


# ==================== DEVICE CONFIG SYNC ====================

@app.get("/api/device/config")
async def get_device_config(
    x_device_key: str | None = Header(None),
    x_device_uuid: str | None = Header(None),
    x_composite_device_id: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Active sensor configuration for the calling device.
    Device calls this when the heartbeat reports a newer config_version.
    """
    device_key = require_device_key(x_device_key)
    identifier = resolve_identifier(x_device_uuid, x_composite_device_id)

    device = await lookup_device(db, identifier)
    device = await authenticate_device(db, device, device_key, verify_only=True)

    sensors = await list_active_sensors(db, device.id)
    return {
        "device_id": device.canonical_id,
        "config_version": await get_config_version(db, device.id),
        "heartbeat_interval": settings.heartbeat_interval_seconds,
        "sensors": [sensor.to_dict() for sensor in sensors],
    }


# ==================== ADMIN ====================

async def require_admin(x_admin_token: str | None = Header(None)):
    """Check the shared admin token. No token configured = admin API disabled."""
    if not settings.admin_enabled:
        raise AdminAccessDenied("Admin API is disabled")
    if not x_admin_token or not hmac.compare_digest(x_admin_token, settings.admin_token):
        raise AdminAccessDenied("Invalid admin token")


class SensorAssignment(BaseModel):
    sensor_type: str = Field(min_length=1, max_length=50)


@app.post("/api/admin/devices/{device_id}/reset-key", dependencies=[Depends(require_admin)])
async def admin_reset_key(device_id: str, db: AsyncSession = Depends(get_db)):
    """Clear the stored key digest; the device re-registers on its next heartbeat."""
    device = await load_device(db, parse_identifier(device_id))
    await reset_device_key(db, device.id)
    return {"success": True, "device_id": device.canonical_id, "key_registered": False}


@app.put("/api/admin/devices/{device_id}/sensors/{port_id}", dependencies=[Depends(require_admin)])
async def admin_configure_sensor(
    device_id: str,
    port_id: str,
    assignment: SensorAssignment,
    db: AsyncSession = Depends(get_db),
):
    device = await load_device(db, parse_identifier(device_id))
    version = await configure_sensor(db, device.id, port_id, assignment.sensor_type)
    return {"success": True, "device_id": device.canonical_id, "config_version": version}


@app.delete("/api/admin/devices/{device_id}/sensors/{port_id}", dependencies=[Depends(require_admin)])
async def admin_deactivate_sensor(device_id: str, port_id: str, db: AsyncSession = Depends(get_db)):
    device = await load_device(db, parse_identifier(device_id))
    version = await deactivate_sensor(db, device.id, port_id)
    return {"success": True, "device_id": device.canonical_id, "config_version": version}


@app.get("/api/admin/devices/{device_id}/heartbeats", dependencies=[Depends(require_admin)])
async def admin_list_heartbeats(
    device_id: str,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Recent heartbeat events for a device, newest first."""
    device = await load_device(db, parse_identifier(device_id))
    heartbeats = await list_heartbeats(db, device.id, limit)
    return {
        "device_id": device.canonical_id,
        "heartbeats": [
            {
                "rssi": hb.rssi,
                "fw_version": hb.fw_version,
                "ip_address": hb.ip_address,
                "hostname": hb.hostname,
                "ts": _timestamp(hb.ts),
            }
            for hb in heartbeats
        ],
    }


# ==================== HEALTH CHECK ====================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": SERVICE_VERSION}


@app.get("/")
async def root():
    """Root endpoint with the endpoint map."""
    return {
        "service": "Greenhouse Devices API",
        "version": SERVICE_VERSION,
        "offline_threshold_seconds": settings.offline_threshold_seconds,
        "endpoints": {
            "heartbeat": "/functions/v1/device-heartbeat",
            "detect_offline": "/functions/v1/detect-offline-devices",
            "config": "/api/device/config",
            "admin": "/api/admin/devices/{device_id}",
            "health": "/health",
        }
    }


# ==================== MAIN ====================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
