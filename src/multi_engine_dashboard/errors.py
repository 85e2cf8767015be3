# errors.py
"""
Typed exceptions shared by the store, the provider gateways, the
fan-out engine and the HTTP layer.
"""
from typing import Optional

__all__ = [
    "DashboardError",
    "ValidationError",
    "ConfigurationError",
    "ProviderError",
    "PersistenceError",
    "NotFoundError",
]


class DashboardError(Exception):
    """Base class for all errors raised by this package."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DashboardError):
    """
    Malformed or missing request fields. Raised before any side effect.
    """
    status_code = 400


class NotFoundError(DashboardError):
    status_code = 404


class ConfigurationError(DashboardError):
    """
    A required provider credential is absent. Never retried.
    """

    def __init__(self, message: str, engine: Optional[str] = None):
        super().__init__(message)
        self.engine = engine


class ProviderError(DashboardError):
    """
    Network or provider-side failure of one engine call.
    """

    def __init__(self, message: str, engine: Optional[str] = None):
        super().__init__(message)
        self.engine = engine


class PersistenceError(DashboardError):
    """
    Writing a Result row failed after a successful provider call.
    Logged by the engine, never surfaced to the caller.
    """
