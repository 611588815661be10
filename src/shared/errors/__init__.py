"""Unified error hierarchy for userbridge.

All domain errors inherit from UserBridgeError. Store adapters raise these
types; the gateway maps each one to an HTTP status in src.gateway.app.
"""

from __future__ import annotations


class UserBridgeError(Exception):
    """Base error for all userbridge exceptions."""

    def __init__(self, message: str, code: str = "USERBRIDGE_ERROR") -> None:
        self.code = code
        super().__init__(message)


# -- Port errors (raised by Port implementations) --


class StoreError(UserBridgeError):
    """A store failed for a reason other than a domain rule (connectivity, SQL)."""

    def __init__(self, store_name: str, message: str = "") -> None:
        self.store_name = store_name
        super().__init__(
            message or f"{store_name} error",
            code="STORE_ERROR",
        )


class PortTimeoutError(UserBridgeError):
    """A Port operation timed out."""

    def __init__(self, port_name: str, timeout_ms: int) -> None:
        self.port_name = port_name
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Port {port_name} timed out after {timeout_ms}ms",
            code="PORT_TIMEOUT",
        )


# -- Key-value cluster errors --


class ClusterNotReadyError(UserBridgeError):
    """The cluster adapter is not READY; the command was refused."""

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(
            "Redis connection not available",
            code="CLUSTER_NOT_READY",
        )


class ClusterUnavailableError(UserBridgeError):
    """Reconnect-and-retry cycles were exhausted for a command."""

    def __init__(self, attempts: int, last_error: Exception | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(
            f"Redis cluster unavailable after {attempts} attempts{detail}",
            code="CLUSTER_UNAVAILABLE",
        )


class ClusterInitError(UserBridgeError):
    """The cluster adapter could not reach READY during initialisation."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CLUSTER_INIT_FAILED")


# -- Domain errors --


class NotFoundError(UserBridgeError):
    """Requested resource not found."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} not found",
            code="NOT_FOUND",
        )


class ConflictError(UserBridgeError):
    """Resource state conflict (duplicate unique value)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONFLICT")


class ValidationError(UserBridgeError):
    """Input validation failed."""

    def __init__(self, message: str, field: str = "") -> None:
        self.field = field
        super().__init__(message, code="VALIDATION")


__all__ = [
    "ClusterInitError",
    "ClusterNotReadyError",
    "ClusterUnavailableError",
    "ConflictError",
    "NotFoundError",
    "PortTimeoutError",
    "StoreError",
    "UserBridgeError",
    "ValidationError",
]
