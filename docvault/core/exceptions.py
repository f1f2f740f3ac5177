"""
Custom Exceptions
Application-specific exception classes
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class AppException(Exception):
    """Base application exception"""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: str = "app_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the transport layer"""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
            "retryable": self.retryable,
        }


class ValidationException(AppException):
    """Validation error exception"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="validation_error",
            status_code=400,
            details=details,
        )


class AuthenticationException(AppException):
    """Unknown or inactive subject"""

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="authentication_error",
            status_code=401,
            details=details,
        )


class AuthorizationException(AppException):
    """Subject is known but holds an insufficient access level"""

    def __init__(
        self,
        message: str = "Permission denied",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="authorization_error",
            status_code=403,
            details=details,
        )


class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource: str = "Resource",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=f"{resource} not found",
            code="not_found",
            status_code=404,
            details=details,
        )


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="conflict",
            status_code=409,
            details=details,
        )


class InvalidStateException(AppException):
    """Operation not allowed in the record's current state"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="invalid_state",
            status_code=409,
            details=details,
        )


class ShareLinkExpiredException(AppException):
    """Share link is past its expiry time"""

    def __init__(
        self,
        message: str = "Share link has expired",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="share_link_expired",
            status_code=410,
            details=details,
        )


class ShareLinkExhaustedException(AppException):
    """Share link has reached its maximum number of uses"""

    def __init__(
        self,
        message: str = "Share link has reached maximum uses",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="share_link_exhausted",
            status_code=410,
            details=details,
        )


class PasswordRequiredException(AppException):
    """Share link is password protected and no password was given"""

    def __init__(
        self,
        message: str = "Password required",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="password_required",
            status_code=401,
            details=details,
        )


class InvalidPasswordException(AppException):
    """Share link password mismatch"""

    def __init__(
        self,
        message: str = "Invalid password",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="invalid_password",
            status_code=401,
            details=details,
        )


class EncryptionException(AppException):
    """Envelope encryption error exception"""

    def __init__(
        self,
        message: str,
        code: str = "encryption_error",
        document_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if document_id is not None:
            details["document_id"] = document_id
        super().__init__(
            message=message,
            code=code,
            status_code=500,
            details=details,
        )


class EncryptionMetadataMissingException(EncryptionException):
    """No encryption metadata stored for the document"""

    def __init__(self, document_id: int, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="Encryption metadata not found",
            code="encryption_metadata_missing",
            document_id=document_id,
            details=details,
        )


class CiphertextAuthenticationException(EncryptionException):
    """AES-GCM tag check failed: ciphertext was tampered with or corrupted"""

    def __init__(self, document_id: int, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="Ciphertext authentication failed",
            code="authentication_failed",
            document_id=document_id,
            details=details,
        )


class IntegrityViolationException(EncryptionException):
    """Decrypted bytes do not match the stored checksum"""

    def __init__(self, document_id: int, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="File integrity check failed",
            code="integrity_violation",
            document_id=document_id,
            details=details,
        )


class KeyServiceUnavailableException(AppException):
    """Key management service timed out or could not be reached"""

    retryable = True

    def __init__(
        self,
        message: str = "Key management service unavailable",
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(
            message=message,
            code="key_service_unavailable",
            status_code=503,
            details=details,
        )


class StorageException(AppException):
    """Object storage error exception"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="storage_error",
            status_code=500,
            details=details,
        )
