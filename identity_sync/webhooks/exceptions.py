"""
Custom exceptions for the webhooks module.

Signature errors reject the delivery. Everything raised after verification is
logged and acknowledged so the provider does not retry-storm.
"""
from typing import Optional


class WebhookException(Exception):
    """Base exception for webhook-related errors."""
    pass


class MalformedSignature(WebhookException):
    """Raised when a signature header lacks its timestamp or hash component."""
    def __init__(self, message: str = "Invalid signature format - missing timestamp or hash"):
        self.message = message
        super().__init__(message)


class SignatureInvalid(WebhookException):
    """Raised when the computed signature does not match the supplied one."""
    def __init__(self, message: str = "Signature verification failed - signatures don't match"):
        self.message = message
        super().__init__(message)


class InvalidPayload(WebhookException):
    """Raised when a verified body is not a usable event."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnknownEventType(WebhookException):
    """Marks an event type with no handler. Treated as a no-op."""
    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"Unhandled webhook event type: {event_type}")


class PersistenceError(WebhookException):
    """Raised when applying an event to the database fails."""
    def __init__(self, operation: str, cause: Optional[Exception] = None):
        self.operation = operation
        self.cause = cause
        message = f"Database operation failed: {operation}"
        if cause is not None:
            message = f"{message} ({cause})"
        super().__init__(message)
