"""
Exception types raised by the CQRS layer.

Errors are split into client errors (bad input, missing configuration, rejected
commands; never retried) and server errors (storage, dispose and delivery
failures). Collaborators (executors, consumers, logs) raise the "collaborator"
errors at the bottom of this module, which the layer translates or tolerates.
"""
from typing import Any, Dict, Optional


class CQRSError(Exception):
    """Base class for every error raised by this package."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context


class ClientError(CQRSError):
    pass


class ServerError(CQRSError):
    pass


class ConfigurationError(ClientError):
    """Raised when an action needs an aggregate, projection or executor that is not bound."""


class NotConfigured(ConfigurationError):
    pass


class ValidationError(ClientError):
    """Malformed action input or filter. Raised before the log is touched."""


class CommandRejected(ClientError):
    def __init__(
        self,
        aggregate_name: str,
        command_type: str,
        aggregate_id: str,
        cause: BaseException,
    ):
        super().__init__(
            f"Aggregate command (id:{aggregate_id}) '{aggregate_name}.{command_type}' failed: {cause}",
            aggregate_name=aggregate_name,
            command_type=command_type,
            aggregate_id=aggregate_id,
        )
        self.aggregate_name = aggregate_name
        self.command_type = command_type
        self.aggregate_id = aggregate_id
        self.cause = cause


class StorageError(ServerError):
    """The event log is unavailable or failed to read/write."""


class DisposeFailure(ServerError):
    def __init__(self, consumer_name: str, cause: BaseException):
        super().__init__(
            f"Dispose of consumer '{consumer_name}' failed: {cause}",
            consumer_name=consumer_name,
        )
        self.consumer_name = consumer_name
        self.cause = cause


class DeliveryFailure(ServerError):
    def __init__(
        self,
        event_type: str,
        delivered: int,
        cause: BaseException,
        event_filter: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            f"Replay aborted delivering '{event_type}' after {delivered} events "
            f"(filter: {event_filter}): {cause}",
            event_type=event_type,
            delivered=delivered,
            event_filter=event_filter,
        )
        self.event_type = event_type
        self.delivered = delivered
        self.cause = cause


# Raised by collaborators.

class BusinessRuleError(CQRSError):
    """An aggregate refused a command because of its current state."""


class ConcurrencyConflict(BusinessRuleError):
    """Another writer already appended this aggregate version."""


class CommandValidationError(CQRSError):
    """An aggregate rejected the shape of a command (unknown type, bad payload)."""


class ConsumerNotFound(CQRSError):
    """A consumer group has no instance that can be disposed."""


class InvalidTransitionError(CQRSError):
    """A strict projection met an event type it has no transition for."""
