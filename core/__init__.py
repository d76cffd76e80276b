"""
Core utilities and infrastructure for the companion chat service.
"""

from core.exceptions import (
    AICompanionException,
    RequestException,
    UnauthorizedError,
    RateLimitedError,
    DatabaseException,
    RecordNotFoundError,
    PersistenceError,
    MemoryException,
    VectorStoreException,
    VectorStoreConnectionError,
    EmbeddingError,
    ExternalServiceException,
    InferenceError,
    ValidationException,
    ConfigurationError,
)
from core.logging_config import configure_logging, get_logger

__all__ = [
    "AICompanionException",
    "RequestException",
    "UnauthorizedError",
    "RateLimitedError",
    "DatabaseException",
    "RecordNotFoundError",
    "PersistenceError",
    "MemoryException",
    "VectorStoreException",
    "VectorStoreConnectionError",
    "EmbeddingError",
    "ExternalServiceException",
    "InferenceError",
    "ValidationException",
    "ConfigurationError",
    "configure_logging",
    "get_logger",
]
