"""
Custom exception classes for the document change monitor.

Provides specific exception types for different error scenarios to enable
proper error handling and debugging throughout the system.
"""

from typing import Any


class BaseError(Exception):
    """
    Base exception class for all document change monitor errors.

    All custom exceptions in the system should inherit from this base class
    to enable consistent error handling and logging.
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize the error.

        Args:
            message: Human-readable error description
            error_code: Optional error code for programmatic handling
            context: Optional dictionary with error context information
            cause: Optional underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause

    def __str__(self) -> str:
        """String representation including error code if present."""
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message

    def __repr__(self) -> str:
        """Detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}', "
            f"context={self.context})"
        )


class ConfigurationError(BaseError):
    """Raised when there are configuration or settings issues."""

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        expected_type: str | None = None,
        actual_value: Any | None = None,
    ):
        context = {}
        if config_key:
            context["config_key"] = config_key
        if expected_type:
            context["expected_type"] = expected_type
        if actual_value is not None:
            context["actual_value"] = str(actual_value)

        super().__init__(message, error_code="CONFIG_ERROR", context=context)


class FetchError(BaseError):
    """
    Raised when document metadata cannot be fetched from the upstream API.

    Callers should catch the concrete subclasses: transient failures have
    already been retried by the client, permanent ones never are.
    """

    transient = False

    def __init__(
        self,
        message: str,
        token: str | None = None,
        status_code: int | None = None,
        api_code: int | None = None,
        error_code: str = "FETCH_ERROR",
        underlying_error: Exception | None = None,
    ):
        context = {}
        if token:
            context["token"] = token
        if status_code is not None:
            context["status_code"] = status_code
        if api_code is not None:
            context["api_code"] = api_code

        super().__init__(message, error_code=error_code, context=context, cause=underlying_error)
        self.token = token
        self.status_code = status_code
        self.api_code = api_code


class TransientFetchError(FetchError):
    """Timeout, connection failure, 5xx or rate limiting. Safe to retry."""

    transient = True

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("error_code", "TRANSIENT_FETCH_ERROR")
        super().__init__(message, **kwargs)


class PermanentFetchError(FetchError):
    """Upstream rejected the request for a reason retrying will not fix."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("error_code", "PERMANENT_FETCH_ERROR")
        super().__init__(message, **kwargs)


class ResourceNotFoundError(PermanentFetchError):
    """The document does not exist (or no longer exists) upstream."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("error_code", "RESOURCE_NOT_FOUND")
        super().__init__(message, **kwargs)


class PermissionDeniedError(PermanentFetchError):
    """The application is not allowed to read the document's metadata."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("error_code", "PERMISSION_DENIED")
        super().__init__(message, **kwargs)


class PersistenceError(BaseError):
    """Raised when state store operations fail."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        owner_id: str | None = None,
        token: str | None = None,
        underlying_error: Exception | None = None,
    ):
        context = {}
        if operation:
            context["operation"] = operation
        if owner_id:
            context["owner_id"] = owner_id
        if token:
            context["token"] = token

        super().__init__(
            message,
            error_code="PERSISTENCE_ERROR",
            context=context,
            cause=underlying_error,
        )


class NotificationTransportError(BaseError):
    """Raised when a notification could not be handed to the transport."""

    def __init__(
        self,
        message: str,
        notify_target: str | None = None,
        token: str | None = None,
        underlying_error: Exception | None = None,
    ):
        context = {}
        if notify_target:
            context["notify_target"] = notify_target
        if token:
            context["token"] = token

        super().__init__(
            message,
            error_code="NOTIFICATION_TRANSPORT_ERROR",
            context=context,
            cause=underlying_error,
        )


class AlreadyWatchedError(BaseError):
    """Raised when an owner tries to watch a document they already watch."""

    def __init__(self, message: str, owner_id: str | None = None, token: str | None = None, state: str | None = None):
        context = {}
        if owner_id:
            context["owner_id"] = owner_id
        if token:
            context["token"] = token
        if state:
            context["state"] = state

        super().__init__(message, error_code="ALREADY_WATCHED", context=context)


class DocumentNotTrackedError(BaseError):
    """Raised when an owner operates on a document they do not track."""

    def __init__(self, message: str, owner_id: str | None = None, token: str | None = None):
        context = {}
        if owner_id:
            context["owner_id"] = owner_id
        if token:
            context["token"] = token

        super().__init__(message, error_code="DOCUMENT_NOT_TRACKED", context=context)


class MonitoringError(BaseError):
    """Raised when poller lifecycle operations fail."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        underlying_error: Exception | None = None,
    ):
        context = {}
        if operation:
            context["operation"] = operation

        super().__init__(
            message,
            error_code="MONITORING_ERROR",
            context=context,
            cause=underlying_error,
        )
