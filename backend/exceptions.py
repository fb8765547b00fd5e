"""
Custom Exceptions for School Admin
==================================

Raised from the store helpers and handlers; the app turns every subclass of
SchoolAdminError into a JSON body of the form

    {"error": <message>, "code": <CODE>, "details": {...}}

with the status code carried by the exception.

Usage:
    from backend.exceptions import ResourceNotFoundError

    if not department:
        raise ResourceNotFoundError("Department", department_id)
"""

from typing import Optional, Any, Dict, List


class SchoolAdminError(Exception):
    """Base exception for all School Admin errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details
        }


# ============================================
# Validation Errors (400-type)
# ============================================

class PayloadValidationError(SchoolAdminError):
    """Request payload is missing required fields or has invalid values"""

    status_code = 400

    def __init__(self, fields: List[str], messages: Optional[Dict[str, str]] = None):
        fields = list(dict.fromkeys(fields))
        super().__init__(
            f"{', '.join(fields)} {'is' if len(fields) == 1 else 'are'} required or invalid",
            code="VALIDATION_ERROR",
            details={"fields": fields, "messages": messages or {}}
        )
        self.fields = fields


class InvalidIdError(SchoolAdminError):
    """Identifier is not a valid ObjectId"""

    status_code = 400

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            f"Invalid {resource_type.lower()} ID",
            code="INVALID_ID",
            details={"resource_type": resource_type, "resource_id": str(resource_id)}
        )


class MissingIdError(SchoolAdminError):
    """Update/delete called without a target id"""

    status_code = 400

    def __init__(self, resource_type: str):
        super().__init__(f"{resource_type} ID is required", code="MISSING_ID")


class DuplicateResourceError(SchoolAdminError):
    """A unique field already holds the given value"""

    status_code = 400

    def __init__(self, message: str, field: str):
        super().__init__(message, code="DUPLICATE", details={"field": field})


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(SchoolAdminError):
    """Target or referenced document does not exist"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any = None):
        super().__init__(
            f"{resource_type} not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id is not None else None}
        )


# ============================================
# Authentication Errors
# ============================================

class AuthenticationError(SchoolAdminError):
    """Login failed or session missing/expired"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


# ============================================
# Infrastructure Errors
# ============================================

class DatabaseNotConfiguredError(SchoolAdminError):
    """No database connection was initialised"""

    status_code = 500

    def __init__(self):
        super().__init__("Database not configured", code="DATABASE_NOT_CONFIGURED")
