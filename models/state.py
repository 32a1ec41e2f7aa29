"""
Application state models.

The whole client state is one immutable AppState value:

    AppState
    ├── session: Session | None   - who is signed in
    ├── data: dict                - ApplicationData (see models.app_data)
    └── ui: UIState               - view, loading flags, sync status, notifications

State only changes by dispatching an Action to the StateStore, which replaces
the AppState with a new one. Nothing in here performs I/O.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, Tuple

from .app_data import default_app_data
from .session import Session


class SyncStatus(Enum):
    """
    Process-wide status of the most recent background push.

    Lifecycle:
        IDLE -> PENDING -> SYNCING -> (SUCCESS -> IDLE | ERROR)
    """

    IDLE = "idle"
    PENDING = "pending"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class NotificationLevel(Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class View(Enum):
    """Screens the UI can navigate to."""

    DASHBOARD = "dashboard"
    CALCULATOR = "calculator"
    SETTINGS = "settings"
    PROFILE = "profile"
    WAREHOUSE = "warehouse"
    CUSTOMERS = "customers"
    CUSTOMER_DETAIL = "customer_detail"
    ESTIMATE_DETAIL = "estimate_detail"
    WORK_ORDER_STAGE = "work_order_stage"
    INVOICE_STAGE = "invoice_stage"
    MATERIAL_ORDER = "material_order"
    EQUIPMENT_TRACKER = "equipment_tracker"


@dataclass(frozen=True)
class Notification:
    """
    A short-lived, dismissible user-facing message.

    Notifications expire on their own after lifetime_seconds; the UI only
    shows active ones.
    """

    level: NotificationLevel
    message: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: float = field(default_factory=time.time)
    lifetime_seconds: float = 2.0

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now >= self.created_at + self.lifetime_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.level.value,
            "message": self.message,
            "createdAt": self.created_at,
            "lifetimeSeconds": self.lifetime_seconds,
        }


@dataclass(frozen=True)
class UIState:
    """UI and sync bookkeeping. Never pushed to the remote store."""

    view: View = View.DASHBOARD
    is_loading: bool = True
    is_initialized: bool = False
    sync_status: SyncStatus = SyncStatus.IDLE
    notifications: Tuple[Notification, ...] = ()
    viewing_customer_id: Optional[str] = None
    editing_estimate_id: Optional[str] = None
    has_trial_access: bool = False

    @property
    def notification(self) -> Optional[Notification]:
        """Most recent notification, if any."""
        return self.notifications[-1] if self.notifications else None

    def active_notifications(self, now: Optional[float] = None) -> Tuple[Notification, ...]:
        return tuple(n for n in self.notifications if not n.is_expired(now))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "view": self.view.value,
            "isLoading": self.is_loading,
            "isInitialized": self.is_initialized,
            "syncStatus": self.sync_status.value,
            "notifications": [n.to_dict() for n in self.active_notifications()],
            "viewingCustomerId": self.viewing_customer_id,
            "editingEstimateId": self.editing_estimate_id,
            "hasTrialAccess": self.has_trial_access,
        }


@dataclass(frozen=True)
class AppState:
    """Immutable snapshot of the entire client state."""

    session: Optional[Session]
    data: Dict[str, Any]
    ui: UIState

    @classmethod
    def initial(cls) -> "AppState":
        return cls(session=None, data=default_app_data(), ui=UIState())


class ActionType(Enum):
    """The closed set of state transitions."""

    SET_SESSION = "SET_SESSION"
    SET_TRIAL_ACCESS = "SET_TRIAL_ACCESS"
    LOAD_DATA = "LOAD_DATA"
    UPDATE_DATA = "UPDATE_DATA"
    UPDATE_NESTED_DATA = "UPDATE_NESTED_DATA"
    UPDATE_SAVED_ESTIMATE = "UPDATE_SAVED_ESTIMATE"
    SET_VIEW = "SET_VIEW"
    SET_SYNC_STATUS = "SET_SYNC_STATUS"
    SET_NOTIFICATION = "SET_NOTIFICATION"
    DISMISS_NOTIFICATION = "DISMISS_NOTIFICATION"
    SET_LOADING = "SET_LOADING"
    SET_INITIALIZED = "SET_INITIALIZED"
    SET_EDITING_ESTIMATE = "SET_EDITING_ESTIMATE"
    SET_VIEWING_CUSTOMER = "SET_VIEWING_CUSTOMER"
    RESET_CALCULATOR = "RESET_CALCULATOR"
    LOGOUT = "LOGOUT"


@dataclass(frozen=True)
class Action:
    """
    A named state transition request.

    Payload shapes by type:
        SET_SESSION            Session | None
        LOAD_DATA              partial ApplicationData dict
        UPDATE_DATA            dict of top-level keys to replace
        UPDATE_NESTED_DATA     {"category": str, "field": str, "value": Any}
        UPDATE_SAVED_ESTIMATE  estimate record dict (replaced by id)
        SET_VIEW               View
        SET_SYNC_STATUS        SyncStatus
        SET_NOTIFICATION       Notification
        DISMISS_NOTIFICATION   notification id
        SET_EDITING_ESTIMATE   estimate id | None
        SET_VIEWING_CUSTOMER   customer id | None
        other SET_*            bool
        RESET_CALCULATOR, LOGOUT: no payload
    """

    type: ActionType
    payload: Any = None
