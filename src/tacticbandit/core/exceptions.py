"""
Tactic Bandit Domain-Specific Exceptions
========================================

This module defines a hierarchy of exceptions for consistent error handling
across the tactic recommendation engine.

Exception Hierarchy:
    TacticBanditError (base)
    ├── RecoverableError (transient, retry possible)
    │   ├── StorageConnectionError
    │   └── StorageTimeoutError
    ├── IrrecoverableError (permanent, requires intervention)
    │   ├── ConfigurationError
    │   │   └── UnknownPolicyError
    │   ├── DataCorruptionError
    │   └── ValidationError
    └── StorageError (mixed recoverability)

Usage Guidelines:
    - Store backends raise StorageError subclasses.
    - The TacticBandit orchestrator catches everything at its boundary and
      fails open; nothing here is meant to reach the calling dialogue.
    - Always include context in error messages.
"""

from typing import Optional, Any


class TacticBanditError(Exception):
    """
    Base exception for all tactic bandit errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        context: Additional context about the error
        recoverable: Whether the error is potentially recoverable
    """

    error_code: str = "TACTIC_BANDIT_ERROR"
    recoverable: bool = True

    def __init__(
        self,
        message: str,
        context: Optional[dict] = None,
        error_code: Optional[str] = None,
        recoverable: Optional[bool] = None
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        if error_code is not None:
            self.error_code = error_code
        if recoverable is not None:
            self.recoverable = recoverable

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to a dictionary for structured logs."""
        result = {
            "error": self.message,
            "code": self.error_code,
            "recoverable": self.recoverable,
        }

        if self.context:
            result["context"] = self.context

        return result


# =============================================================================
# Base Categories: Recoverable vs Irrecoverable
# =============================================================================

class RecoverableError(TacticBanditError):
    """
    Base class for recoverable errors.

    These are transient errors that may succeed on a later call:
    - Connection failures
    - Timeouts
    """
    recoverable = True


class IrrecoverableError(TacticBanditError):
    """
    Base class for irrecoverable errors.

    These are permanent errors that require intervention:
    - Invalid configuration
    - Corrupt edge records
    - Validation failures
    """
    recoverable = False


# =============================================================================
# Storage Errors
# =============================================================================

class StorageError(TacticBanditError):
    """Base exception for edge store errors."""
    error_code = "STORAGE_ERROR"


class StorageConnectionError(RecoverableError, StorageError):
    """Raised when connection to the edge store fails."""
    error_code = "STORAGE_CONNECTION_ERROR"

    def __init__(self, backend: str, message: str = "Connection failed", context: Optional[dict] = None):
        ctx = {"backend": backend}
        if context:
            ctx.update(context)
        super().__init__(f"[{backend}] {message}", ctx)
        self.backend = backend


class StorageTimeoutError(RecoverableError, StorageError):
    """Raised when an edge store operation times out."""
    error_code = "STORAGE_TIMEOUT_ERROR"

    def __init__(self, backend: str, operation: str, timeout_ms: Optional[int] = None, context: Optional[dict] = None):
        msg = f"[{backend}] Operation '{operation}' timed out"
        ctx = {"backend": backend, "operation": operation}
        if timeout_ms is not None:
            ctx["timeout_ms"] = timeout_ms
        if context:
            ctx.update(context)
        super().__init__(msg, ctx)
        self.backend = backend
        self.operation = operation


class DataCorruptionError(IrrecoverableError, StorageError):
    """Raised when a stored edge or decision cannot be deserialized."""
    error_code = "DATA_CORRUPTION_ERROR"

    def __init__(self, resource_id: str, reason: str = "Data corruption detected", context: Optional[dict] = None):
        ctx = {"resource_id": resource_id}
        if context:
            ctx.update(context)
        super().__init__(f"{reason} for resource '{resource_id}'", ctx)
        self.resource_id = resource_id


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(IrrecoverableError):
    """Raised when configuration is invalid or missing."""
    error_code = "CONFIGURATION_ERROR"

    def __init__(self, config_key: str, reason: str, context: Optional[dict] = None):
        ctx = {"config_key": config_key}
        if context:
            ctx.update(context)
        super().__init__(f"Configuration error for '{config_key}': {reason}", ctx)
        self.config_key = config_key


class UnknownPolicyError(ConfigurationError):
    """Raised when a ranking policy name does not resolve."""
    error_code = "UNKNOWN_POLICY_ERROR"

    def __init__(self, policy: Any, supported: Optional[list] = None, context: Optional[dict] = None):
        ctx = {"policy": str(policy)}
        if supported:
            ctx["supported_policies"] = supported
        if context:
            ctx.update(context)
        reason = f"unknown ranking policy {policy!r}"
        if supported:
            reason += f". Supported: {', '.join(supported)}"
        super().__init__("policy", reason, ctx)
        self.policy = policy


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(IrrecoverableError):
    """Raised when input validation fails."""
    error_code = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str, value: Any = None, context: Optional[dict] = None):
        ctx = {"field": field}
        if value is not None:
            # Truncate large values
            value_str = str(value)
            if len(value_str) > 100:
                value_str = value_str[:100] + "..."
            ctx["value"] = value_str
        if context:
            ctx.update(context)
        super().__init__(f"Validation error for '{field}': {reason}", ctx)
        self.field = field
        self.reason = reason


# =============================================================================
# Utility Functions
# =============================================================================

def wrap_storage_exception(backend: str, operation: str, exc: Exception) -> StorageError:
    """
    Wrap a generic exception into an appropriate StorageError.

    Args:
        backend: Name of the storage backend (e.g., 'redis', 'memory')
        operation: Name of the operation that failed
        exc: The original exception

    Returns:
        An appropriate StorageError subclass
    """
    if isinstance(exc, StorageError):
        return exc

    exc_name = type(exc).__name__
    exc_msg = str(exc)

    # Timeout detection
    if 'timeout' in exc_msg.lower() or 'Timeout' in exc_name:
        return StorageTimeoutError(backend, operation)

    # Connection error detection
    if any(x in exc_name.lower() for x in ['connection', 'connect', 'network']):
        return StorageConnectionError(backend, exc_msg)

    return StorageError(
        f"[{backend}] {operation} failed: {exc_msg}",
        {"backend": backend, "operation": operation, "original_exception": exc_name}
    )


__all__ = [
    # Base
    "TacticBanditError",
    "RecoverableError",
    "IrrecoverableError",
    # Storage
    "StorageError",
    "StorageConnectionError",
    "StorageTimeoutError",
    "DataCorruptionError",
    # Config
    "ConfigurationError",
    "UnknownPolicyError",
    # Validation
    "ValidationError",
    # Utilities
    "wrap_storage_exception",
]
