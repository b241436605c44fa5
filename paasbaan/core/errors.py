"""
Standardized error code catalog.

Codes are machine-stable; messages are safe to show to API clients.
"""
from enum import Enum
from typing import Dict, Optional


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Authentication Errors (AUTH_*)
    AUTH_MISSING_TOKEN = "AUTH_001"
    AUTH_INVALID_TOKEN = "AUTH_002"
    AUTH_MISSING_USER_ID = "AUTH_003"
    AUTH_INSUFFICIENT_PERMISSIONS = "AUTH_004"

    # Business Logic Errors (BUS_*)
    BUS_RESOURCE_NOT_FOUND = "BUS_001"
    BUS_RESOURCE_ALREADY_EXISTS = "BUS_002"
    BUS_RESOURCE_IN_USE = "BUS_003"
    BUS_UNCONFIGURED_RESOURCE_TYPE = "BUS_004"

    # Validation Errors (VAL_*)
    VAL_INVALID_INPUT = "VAL_001"

    # System Errors (SYS_*)
    SYS_INTERNAL_ERROR = "SYS_001"
    SYS_DATABASE_ERROR = "SYS_002"
    SYS_CONFIGURATION_ERROR = "SYS_003"


class ErrorMessages:
    """Centralized error message definitions."""

    _messages: Dict[ErrorCode, str] = {
        ErrorCode.AUTH_MISSING_TOKEN: "Authentication required",
        ErrorCode.AUTH_INVALID_TOKEN: "Authentication failed: Invalid token",
        ErrorCode.AUTH_MISSING_USER_ID: "Authentication failed: User ID not found in token",
        ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS: "Access denied: Insufficient permissions",

        ErrorCode.BUS_RESOURCE_NOT_FOUND: "Requested resource not found",
        ErrorCode.BUS_RESOURCE_ALREADY_EXISTS: "Resource already exists",
        ErrorCode.BUS_RESOURCE_IN_USE: "Resource is still in use",
        ErrorCode.BUS_UNCONFIGURED_RESOURCE_TYPE: "Resource type is not configured for this permission",

        ErrorCode.VAL_INVALID_INPUT: "Invalid input provided",

        ErrorCode.SYS_INTERNAL_ERROR: "Internal server error",
        ErrorCode.SYS_DATABASE_ERROR: "Internal server error",
        ErrorCode.SYS_CONFIGURATION_ERROR: "System configuration error",
    }

    @classmethod
    def get(cls, code: ErrorCode, default: Optional[str] = None) -> str:
        """
        Get error message for a given error code.

        Args:
            code: Error code
            default: Message to use when the code has no entry

        Returns:
            Error message
        """
        return cls._messages.get(code, default or cls._messages[ErrorCode.SYS_INTERNAL_ERROR])


def error_response(code: ErrorCode, message: Optional[str] = None) -> Dict[str, str]:
    """Build the JSON body used for error responses."""
    return {"detail": message or ErrorMessages.get(code), "code": code.value}
