"""
Error taxonomy of the data-access layer.

"Not found" is never an exception here: lookups return None and deletes of
missing rows return False.
"""

from typing import Any


class DataLayerException(Exception):
    """Base class for data-access exceptions."""
    def __init__(self, message: str, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class DataAccessError(DataLayerException):
    """Store failure: connectivity, constraint violation, timeout."""
    def __init__(self, message: str, entity_type: str = None, detail: Any = None):
        super().__init__(message, detail)
        self.entity_type = entity_type


class ConcurrencyError(DataAccessError):
    """A save hit a conflicting concurrent write (optimistic concurrency)."""


class InvalidOperationError(DataLayerException):
    """Transaction-discipline or capability-resolution misuse."""


class ServiceNotRegisteredError(InvalidOperationError):
    """The requested service type has no registration."""
    def __init__(self, service_type: type):
        name = getattr(service_type, "__name__", str(service_type))
        super().__init__(
            f"Service of type '{name}' is not registered in the service provider",
            detail={"service_type": name},
        )
        self.service_type = service_type


class ArgumentError(DataLayerException, ValueError):
    """Null or invalid argument passed to an entry point."""
    def __init__(self, message: str, argument: str = None):
        super().__init__(message, detail={"argument": argument} if argument else None)
        self.argument = argument
