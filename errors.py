"""
Application errors.

Services raise these; ``main`` turns each into the JSON envelope with the
matching status code.
"""
from typing import Any, Dict, List, Optional


class StoreError(Exception):
    """Base exception for this application."""

    status_code = 500

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class ValidationError(StoreError):
    status_code = 400


class AuthenticationError(StoreError):
    """Missing or wrong credentials / token."""

    status_code = 401


class AuthorizationError(StoreError):
    """Token present but invalid or expired, or caller lacks a capability."""

    status_code = 403


class NotFoundError(StoreError):
    status_code = 404


class ConflictError(StoreError):
    status_code = 409


class InsufficientStockError(StoreError):
    """Business rule violation: requested quantity exceeds live stock."""

    status_code = 400


class DatabaseUnavailableError(StoreError):
    """No connection could be acquired in time. Safe to retry."""

    status_code = 503


class InvalidTokenError(Exception):
    """Raised by the token decoder; mapped to ``AuthorizationError`` by the access filter."""
