"""
Core module for Field Estimator.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- gateway: Remote store gateway (JSON action envelope over HTTP, with retries)
- local_cache: Durable on-device key-value store
"""

from .exceptions import (
    FieldEstimatorError,
    ValidationError,
    CustomerNameRequiredError,
    ConfirmationRequiredError,
    EstimateNotFoundError,
    LifecycleError,
    NoActiveSessionError,
    AuthenticationError,
    RemoteStoreError,
)
from .gateway import RemoteStoreGateway, GatewayResponse
from .local_cache import LocalCache, SESSION_KEY, state_key

__all__ = [
    "FieldEstimatorError",
    "ValidationError",
    "CustomerNameRequiredError",
    "ConfirmationRequiredError",
    "EstimateNotFoundError",
    "LifecycleError",
    "NoActiveSessionError",
    "AuthenticationError",
    "RemoteStoreError",
    "RemoteStoreGateway",
    "GatewayResponse",
    "LocalCache",
    "SESSION_KEY",
    "state_key",
]
