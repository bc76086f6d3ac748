"""Custom exception classes for Revoc.

This module provides a hierarchy of exceptions so callers can tell apart
bad input, missing or foreign records, and failing external services.
Re-linking an existing contact link is a no-op, not an error.
"""

from typing import Any, Dict, Optional


class RevocError(Exception):
    """Base exception for all Revoc errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(RevocError):
    """Raised when there's a configuration issue."""
    pass


class MissingConfigError(ConfigurationError):
    """Raised when a required configuration value is missing."""

    def __init__(self, config_key: str):
        super().__init__(
            f"Missing required configuration: {config_key}",
            {"config_key": config_key}
        )


# =============================================================================
# External API Errors
# =============================================================================

class ExternalAPIError(RevocError):
    """Base exception for external API errors."""

    def __init__(
        self,
        service: str,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None
    ):
        self.service = service
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(
            f"[{service}] {message}",
            {
                "service": service,
                "status_code": status_code,
                "response_body": response_body
            }
        )


class ExtractionError(ExternalAPIError):
    """Raised when the entity extraction call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__("extraction", message, status_code)


class AssistantError(ExternalAPIError):
    """Raised when the assistant reply cannot be produced."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__("assistant", message, status_code)


class TranscriptionError(ExternalAPIError):
    """Raised when audio transcription fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__("transcription", message, status_code)


# =============================================================================
# Storage Errors
# =============================================================================

class StorageError(RevocError):
    """Raised when a database operation fails unexpectedly."""

    def __init__(self, operation: str, message: str):
        super().__init__(
            f"Storage {operation} failed: {message}",
            {"operation": operation}
        )


class ValidationError(RevocError):
    """Raised when input is rejected before anything is persisted."""

    def __init__(self, field: str, reason: str):
        self.field = field
        super().__init__(
            f"Invalid {field}: {reason}",
            {"field": field}
        )


class NotFoundError(RevocError):
    """Raised when a record id does not exist."""

    def __init__(self, kind: str, record_id: Any):
        self.kind = kind
        self.record_id = record_id
        super().__init__(
            f"{kind.capitalize()} not found",
            {"kind": kind, "id": record_id}
        )


class AccessDeniedError(RevocError):
    """Raised when a record exists but belongs to another user."""

    def __init__(self, kind: str, record_id: Any, user_id: int):
        self.kind = kind
        self.record_id = record_id
        super().__init__(
            "Access denied",
            {"kind": kind, "id": record_id, "user_id": user_id}
        )


# =============================================================================
# Workflow Errors
# =============================================================================

class InvalidTransitionError(RevocError):
    """Raised when a workflow is asked to do something its state forbids."""

    def __init__(self, workflow: str, state: str, action: str):
        self.state = state
        self.action = action
        super().__init__(
            f"Cannot {action} while {workflow} is {state}",
            {"workflow": workflow, "state": state, "action": action}
        )
