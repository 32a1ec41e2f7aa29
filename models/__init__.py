"""
Data models for Field Estimator.

This module contains:
- Session: the authenticated actor (frozen)
- AppState / UIState / Notification: immutable client state snapshots
- Action / ActionType: the closed set of state transitions
- app_data: default ApplicationData, deep merge, canonical serialization
- estimate: job lifecycle statuses and record collection helpers
- warehouse: stock and equipment ledger mutations (pure functions)
"""

from .session import Session, Role
from .state import (
    AppState,
    UIState,
    Notification,
    NotificationLevel,
    SyncStatus,
    View,
    Action,
    ActionType,
)
from .app_data import DEFAULT_APP_DATA, default_app_data, deep_merge, serialize_app_data
from .estimate import EstimateStatus, ExecutionStatus, DocumentKind, can_transition

__all__ = [
    # Session
    "Session",
    "Role",
    # State
    "AppState",
    "UIState",
    "Notification",
    "NotificationLevel",
    "SyncStatus",
    "View",
    "Action",
    "ActionType",
    # Application data
    "DEFAULT_APP_DATA",
    "default_app_data",
    "deep_merge",
    "serialize_app_data",
    # Lifecycle
    "EstimateStatus",
    "ExecutionStatus",
    "DocumentKind",
    "can_transition",
]
