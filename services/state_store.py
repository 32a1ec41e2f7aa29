"""
Application state store.

The single in-memory source of truth for the client: session, application
data and UI/sync status, held as one immutable AppState.

RULES:
    - State changes ONLY through dispatch(action)
    - Every dispatch replaces the whole AppState with a new snapshot
    - An action is applied completely or not at all; readers never see
      a half-applied action
    - Unknown actions are no-ops, never errors
    - No I/O happens here; the engines do I/O and dispatch the results

Thread Safety:
    - dispatch() holds a re-entrant lock while reducing AND while notifying
      subscribers, so subscribers observe transitions in dispatch order
    - A subscriber may dispatch from inside its callback (same thread)
    - Reading store.state is a single attribute read of an immutable value

Usage:
    store = StateStore()
    unsubscribe = store.subscribe(lambda old, new: ...)

    store.dispatch(Action(ActionType.SET_VIEW, View.WAREHOUSE))
    store.notify(NotificationLevel.SUCCESS, "Order Saved & Stock Updated")
"""

from __future__ import annotations

import threading
from copy import deepcopy
from dataclasses import replace
from typing import Callable, Dict, Any, List, Optional

from logging_config import get_logger
from models.app_data import FORM_DEFAULTS, deep_merge, default_app_data
from models.estimate import upsert_estimate
from models.state import (
    Action,
    ActionType,
    AppState,
    Notification,
    NotificationLevel,
    UIState,
)


# Module logger
logger = get_logger(__name__)


Listener = Callable[[AppState, AppState], None]


# =============================================================================
# REDUCER
# =============================================================================

def _set_ui(state: AppState, **changes) -> AppState:
    return replace(state, ui=replace(state.ui, **changes))


def _set_data(state: AppState, data: Dict[str, Any]) -> AppState:
    return replace(state, data=data)


def _update_nested(state: AppState, payload: Dict[str, Any]) -> AppState:
    category = payload["category"]
    current = state.data.get(category)
    nested = dict(current) if isinstance(current, dict) else {}
    nested[payload["field"]] = deepcopy(payload["value"])
    return _set_data(state, {**state.data, category: nested})


def _update_saved_estimate(state: AppState, record: Dict[str, Any]) -> AppState:
    estimates = state.data.get("savedEstimates", [])
    if not any(e.get("id") == record.get("id") for e in estimates):
        # Replace-only: a record deleted meanwhile must not come back
        return state
    return _set_data(state, {**state.data, "savedEstimates": upsert_estimate(estimates, deepcopy(record))})


def _add_notification(state: AppState, notification: Notification) -> AppState:
    active = [n for n in state.ui.notifications if not n.is_expired()]
    return _set_ui(state, notifications=tuple(active) + (notification,))


def _dismiss_notification(state: AppState, notification_id: str) -> AppState:
    remaining = tuple(n for n in state.ui.notifications if n.id != notification_id)
    return _set_ui(state, notifications=remaining)


def _reset_calculator(state: AppState) -> AppState:
    data = {**state.data, **deepcopy(FORM_DEFAULTS)}
    return replace(state, data=data, ui=replace(state.ui, editing_estimate_id=None))


def _logout(state: AppState) -> AppState:
    return AppState(session=None, data=default_app_data(), ui=UIState(is_loading=False))


_REDUCERS: Dict[ActionType, Callable[[AppState, Any], AppState]] = {
    ActionType.SET_SESSION: lambda s, p: replace(s, session=p),
    ActionType.SET_TRIAL_ACCESS: lambda s, p: _set_ui(s, has_trial_access=bool(p)),
    ActionType.LOAD_DATA: lambda s, p: _set_data(s, deep_merge(default_app_data(), p)),
    ActionType.UPDATE_DATA: lambda s, p: _set_data(s, {**s.data, **deepcopy(p)}),
    ActionType.UPDATE_NESTED_DATA: _update_nested,
    ActionType.UPDATE_SAVED_ESTIMATE: _update_saved_estimate,
    ActionType.SET_VIEW: lambda s, p: _set_ui(s, view=p),
    ActionType.SET_SYNC_STATUS: lambda s, p: _set_ui(s, sync_status=p),
    ActionType.SET_NOTIFICATION: _add_notification,
    ActionType.DISMISS_NOTIFICATION: _dismiss_notification,
    ActionType.SET_LOADING: lambda s, p: _set_ui(s, is_loading=bool(p)),
    ActionType.SET_INITIALIZED: lambda s, p: _set_ui(s, is_initialized=bool(p)),
    ActionType.SET_EDITING_ESTIMATE: lambda s, p: _set_ui(s, editing_estimate_id=p),
    ActionType.SET_VIEWING_CUSTOMER: lambda s, p: _set_ui(s, viewing_customer_id=p),
    ActionType.RESET_CALCULATOR: lambda s, p: _reset_calculator(s),
    ActionType.LOGOUT: lambda s, p: _logout(s),
}


def reduce(state: AppState, action: Any) -> AppState:
    """
    Apply one action to a state, returning the new state.

    Pure function. Unknown actions (or anything that is not an Action)
    return the state unchanged.
    """
    if not isinstance(action, Action):
        return state

    reducer = _REDUCERS.get(action.type)
    if reducer is None:
        return state

    return reducer(state, action.payload)


# =============================================================================
# STORE
# =============================================================================

class StateStore:
    """
    Owner of the current AppState.

    One instance per app (tests create isolated instances). Engines receive
    the store by injection; nothing reaches for a global.

    Attributes:
        state: Current immutable AppState
    """

    def __init__(
        self,
        initial_state: Optional[AppState] = None,
        notification_lifetime_seconds: float = 2.0,
    ):
        self._state = initial_state or AppState.initial()
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._notification_lifetime = notification_lifetime_seconds

    @property
    def state(self) -> AppState:
        return self._state

    def dispatch(self, action: Action) -> AppState:
        """
        Apply an action atomically and notify subscribers.

        Args:
            action: The action to apply

        Returns:
            The new state
        """
        with self._lock:
            old_state = self._state
            try:
                new_state = reduce(old_state, action)
            except (KeyError, TypeError, AttributeError) as e:
                # Malformed payload: keep the old state intact
                logger.error(f"Rejected malformed {getattr(action, 'type', action)}: {e}")
                return old_state

            if new_state is old_state:
                return old_state

            self._state = new_state
            for listener in list(self._listeners):
                try:
                    listener(old_state, new_state)
                except Exception:
                    logger.exception(f"State listener failed after {action.type.value}")

            return new_state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callback invoked as listener(old_state, new_state).

        Returns:
            Function that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def notify(self, level: NotificationLevel, message: str) -> Notification:
        """Dispatch a short-lived user-facing notification."""
        notification = Notification(
            level=level,
            message=message,
            lifetime_seconds=self._notification_lifetime,
        )
        self.dispatch(Action(ActionType.SET_NOTIFICATION, notification))
        return notification
