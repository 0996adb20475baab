"""
Greenhouse Devices - Error taxonomy

Every error carries the HTTP status and the short `error` string that the
device firmware sees in the JSON body, so it can tell "fix your request"
(4xx) from "retry later" (5xx).
"""


class DeviceServiceError(Exception):
    """Base class for errors reported to devices and operators."""

    status_code: int = 500
    error: str = "Internal error"

    def __init__(self, details: str | None = None):
        super().__init__(details or self.error)
        self.details = details

    def to_body(self) -> dict:
        body = {"success": False, "error": self.error}
        if self.details:
            body["details"] = self.details
        return body


# ==================== REQUEST / LOOKUP ====================

class MissingIdentifier(DeviceServiceError):
    status_code = 400
    error = "Missing device identifier"


class InvalidIdentifierFormat(DeviceServiceError):
    status_code = 400
    error = "Invalid composite device ID format"


class DeviceNotFound(DeviceServiceError):
    status_code = 404
    error = "Device not found"


class DeviceLookupFailed(DeviceServiceError):
    status_code = 500
    error = "Failed to look up device"


# ==================== AUTHENTICATION ====================

class MissingCredential(DeviceServiceError):
    status_code = 401
    error = "Missing device key"


class CredentialMismatch(DeviceServiceError):
    status_code = 401
    error = "Invalid device key"


class KeyRegistrationFailed(DeviceServiceError):
    status_code = 500
    error = "Failed to register device key"


# ==================== TELEMETRY ====================

class TelemetryWriteFailed(DeviceServiceError):
    status_code = 500
    error = "Failed to record heartbeat"


class StatusUpdateFailed(DeviceServiceError):
    """Liveness bookkeeping failed after the heartbeat was stored. Never surfaced."""

    status_code = 500
    error = "Failed to update device status"


# ==================== SWEEP ====================

class SweepQueryFailed(DeviceServiceError):
    status_code = 500
    error = "Failed to query stale devices"


class SweepUpdateFailed(DeviceServiceError):
    status_code = 500
    error = "Failed to mark devices offline"


# ==================== SENSOR CONFIG / ADMIN ====================

class SensorNotFound(DeviceServiceError):
    status_code = 404
    error = "Sensor not found"


class SensorConfigWriteFailed(DeviceServiceError):
    status_code = 500
    error = "Failed to update sensor configuration"


class AdminAccessDenied(DeviceServiceError):
    status_code = 403
    error = "Admin access denied"
