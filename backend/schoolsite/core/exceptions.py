"""
Custom Exceptions for SchoolSite
================================

Services raise these instead of HTTPException so that failures stay
distinguishable by kind. The API layer renders them through a single
exception handler (see schoolsite.main).

Usage:
    from schoolsite.core.exceptions import AuthorizationError, ContentNotFoundError

    if user.admin_status is not AdminStatus.ADMIN:
        raise AuthorizationError()
"""

from typing import Optional, Any, Dict


class SchoolSiteError(Exception):
    """Base exception for all SchoolSite errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(SchoolSiteError):
    """No resolvable caller identity"""

    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message, code="NOT_AUTHENTICATED")


class InvalidTokenError(AuthenticationError):
    """JWT token is invalid or expired"""

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message)
        self.code = "INVALID_TOKEN"


class InvalidCredentialsError(AuthenticationError):
    """Email/password pair did not match"""

    def __init__(self):
        super().__init__("Incorrect email or password")
        self.code = "INVALID_CREDENTIALS"


class AuthorizationError(SchoolSiteError):
    """Identity resolved but not allowed to perform the action"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(SchoolSiteError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class UserNotFoundError(ResourceNotFoundError):
    """User not found"""

    def __init__(self, identifier: str):
        super().__init__("User", identifier, message="User not found")


class ContentNotFoundError(ResourceNotFoundError):
    """Content record (announcement, event, ...) not found"""

    def __init__(self, kind: str, record_id: str):
        super().__init__(kind.capitalize(), record_id)


class ImageNotFoundError(ResourceNotFoundError):
    """Stored image not found"""

    def __init__(self, storage_id: str):
        super().__init__("Image", storage_id)


# ============================================
# Validation Errors (400-type)
# ============================================

class ValidationError(SchoolSiteError):
    """Input validation failed"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class ImageInUseError(ValidationError):
    """Image is already attached to another record"""

    def __init__(self, storage_id: str, owner_kind: str, owner_id: str):
        super().__init__(
            f"Image '{storage_id}' is already attached to {owner_kind} '{owner_id}'",
            field="image_id"
        )
        self.code = "IMAGE_IN_USE"
        self.details.update({"owner_kind": owner_kind, "owner_id": owner_id})


class InvalidImageError(ValidationError):
    """Uploaded bytes are not an acceptable image"""

    def __init__(self, message: str):
        super().__init__(message, field="file")
        self.code = "INVALID_IMAGE"


class ConflictError(SchoolSiteError):
    """Request conflicts with the current state"""

    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, code="CONFLICT")


# ============================================
# Storage Errors
# ============================================

class StorageError(SchoolSiteError):
    """Object storage operation failed"""

    status_code = 502

    def __init__(self, message: str, storage_id: Optional[str] = None):
        super().__init__(message, code="STORAGE_ERROR")
        if storage_id:
            self.details["storage_id"] = storage_id


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: SchoolSiteError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "detail": error.message,
        "error": error.to_dict()
    }
