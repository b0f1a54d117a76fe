"""Error types and constants for consistent error handling across the gateway."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Standardized error codes for consistent error handling."""

    # Inventory errors
    DEVICE_NOT_FOUND = "device_not_found"
    UNKNOWN_DEVICE_TYPE = "unknown_device_type"
    DUPLICATE_DEVICE = "duplicate_device"

    # Upstream errors
    NOT_CONFIGURED = "not_configured"
    SESSION_FAILED = "session_failed"
    AUTHENTICATION_FAILED = "authentication_failed"
    DEVICE_FETCH_FAILED = "device_fetch_failed"

    # Storage errors
    STORAGE_ERROR = "storage_error"

    # Generic errors
    VALIDATION_ERROR = "validation_error"
    INTERNAL_ERROR = "internal_error"


class GatewayError(Exception):
    """Base exception class for gateway errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        """Initialize the gateway error.

        Args:
            code: Error code identifier
            message: Human-readable error message
            details: Additional error context and data
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        self.cause = cause


class NotConfiguredError(GatewayError):
    """Raised when a provider has no devices or no credentials."""

    def __init__(self, provider: str, reason: str):
        super().__init__(
            ErrorCode.NOT_CONFIGURED,
            reason,
            details={"provider": provider},
        )


class SessionError(GatewayError):
    """Raised when the upstream session cannot be established or used.

    Session-level failures abort the whole fetch cycle, unlike
    per-device failures which only affect one result entry.
    """

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.SESSION_FAILED,
    ):
        if cause:
            message += f": {cause}"
        super().__init__(code, message, details=details, cause=cause)


class AuthenticationError(SessionError):
    """Raised when the login handshake did not yield an authenticated session."""

    def __init__(self, provider: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"{provider} login failed",
            details={"provider": provider, **(details or {})},
            code=ErrorCode.AUTHENTICATION_FAILED,
        )


class DeviceFetchError(GatewayError):
    """Raised when a single device resource cannot be fetched."""

    def __init__(
        self,
        device_id: Any,
        cause: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        message = f"Fetch failed for device {device_id}"
        if cause:
            message += f": {cause}"
        super().__init__(
            ErrorCode.DEVICE_FETCH_FAILED,
            message,
            details={"device_id": device_id, **(details or {})},
            cause=cause,
        )


class DeviceNotFoundError(GatewayError):
    """Raised when no inventory record matches an identity."""

    def __init__(self, identity: Any, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            ErrorCode.DEVICE_NOT_FOUND,
            "Device not found",
            details={"identity": identity, **(details or {})},
        )


class UnknownDeviceTypeError(GatewayError):
    """Raised for a device type outside the inventory's known types."""

    def __init__(self, device_type: str):
        super().__init__(
            ErrorCode.UNKNOWN_DEVICE_TYPE,
            "Unknown device type",
            details={"type": device_type},
        )


class DuplicateDeviceError(GatewayError):
    """Raised when adding a record whose identity is already present."""

    def __init__(self, identity: Any):
        super().__init__(
            ErrorCode.DUPLICATE_DEVICE,
            f"Device {identity} already exists",
            details={"identity": identity},
        )


class StorageError(GatewayError):
    """Raised when a durable document cannot be written."""

    def __init__(self, path: str, cause: Optional[Exception] = None):
        message = f"Could not write {path}"
        if cause:
            message += f": {cause}"
        super().__init__(
            ErrorCode.STORAGE_ERROR,
            message,
            details={"path": path},
            cause=cause,
        )
