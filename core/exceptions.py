"""
Custom exception hierarchy for the companion chat service.
Provides structured error handling with proper context.
"""

from typing import Optional, Dict, Any


class AICompanionException(Exception):
    """Base exception for all companion chat errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize exception with message and optional context.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            context: Additional context information
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# ==================== Request Exceptions ====================


class RequestException(AICompanionException):
    """Base exception for requests rejected before any work is done."""

    pass


class UnauthorizedError(RequestException):
    """Raised when the caller has no resolved identity."""

    def __init__(self, reason: str = "missing identity"):
        super().__init__(
            message="Unauthorized",
            error_code="UNAUTHORIZED",
            context={"reason": reason},
        )


class RateLimitedError(RequestException):
    """Raised when an identity key has exhausted its request window."""

    def __init__(self, identity_key: str):
        super().__init__(
            message="Rate limit exceeded",
            error_code="RATE_LIMITED",
            context={"identity_key": identity_key},
        )


# ==================== Database Exceptions ====================


class DatabaseException(AICompanionException):
    """Base exception for database-related errors."""

    pass


class RecordNotFoundError(DatabaseException):
    """Raised when a database record is not found."""

    def __init__(self, model: str, identifier: Any):
        super().__init__(
            message=f"{model} not found",
            error_code="RECORD_NOT_FOUND",
            context={"model": model, "identifier": identifier},
        )


class PersistenceError(DatabaseException):
    """Raised when a store write or read fails."""

    def __init__(self, operation: str, details: Optional[str] = None):
        super().__init__(
            message=f"Failed to {operation}",
            error_code="PERSISTENCE_FAILURE",
            context={"operation": operation, "details": details},
        )


# ==================== Memory Exceptions ====================


class MemoryException(AICompanionException):
    """Base exception for memory-related errors."""

    pass


class VectorStoreException(MemoryException):
    """Raised when the semantic index fails."""

    pass


class VectorStoreConnectionError(VectorStoreException):
    """Raised when the semantic index cannot be reached or configured."""

    def __init__(self, details: Optional[str] = None):
        super().__init__(
            message="Failed to connect to vector store",
            error_code="VECTOR_STORE_CONNECTION_ERROR",
            context={"details": details} if details else {},
        )


class EmbeddingError(VectorStoreException):
    """Raised when embedding generation fails."""

    def __init__(self, text_length: int, details: Optional[str] = None):
        super().__init__(
            message="Failed to generate embedding",
            error_code="EMBEDDING_ERROR",
            context={"text_length": text_length, "details": details},
        )


# ==================== API/External Service Exceptions ====================


class ExternalServiceException(AICompanionException):
    """Base exception for external service errors."""

    pass


class InferenceError(ExternalServiceException):
    """Raised when the remote model call fails, times out or returns nothing."""

    def __init__(self, model: str, details: Optional[str] = None):
        super().__init__(
            message="Inference request failed",
            error_code="INFERENCE_FAILURE",
            context={"model": model, "details": details},
        )


# ==================== Validation Exceptions ====================


class ValidationException(AICompanionException):
    """Base exception for validation errors."""

    pass


class ConfigurationError(ValidationException):
    """Raised when configuration is invalid."""

    def __init__(self, setting: str, reason: str):
        super().__init__(
            message=f"Invalid configuration: {setting} - {reason}",
            error_code="CONFIGURATION_ERROR",
            context={"setting": setting, "reason": reason},
        )
