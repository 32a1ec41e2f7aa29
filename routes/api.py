"""
State and sync routes.

Handles:
- /health - Health check endpoint
- /api/state - Current session, UI state and application data
- /api/data - Form edits (top-level keys of the application data)
- /api/view - Navigation
- /api/notifications/<id>/dismiss - Dismiss a notification
- /api/sync/push, /api/sync/pull - Manual sync
"""

from flask import Blueprint, current_app, jsonify

from core.exceptions import NoActiveSessionError, ValidationError
from logging_config import get_logger
from models.app_data import DEFAULT_APP_DATA
from models.state import Action, ActionType, View
from .common import json_body, require_field, sanitize, service


# Module logger
logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)

# Free-text fields cleaned before they reach the store
TEXT_FIELDS = {"jobNotes", "customerProfile", "companyProfile"}


def _require_session(operation: str) -> None:
    if service("STATE_STORE").state.session is None:
        raise NoActiveSessionError(operation)


def _state_response():
    state = service("STATE_STORE").state
    return jsonify({
        "session": state.session.to_dict() if state.session else None,
        "ui": state.ui.to_dict(),
        "data": state.data,
    })


@api_bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint with service status."""
    store = current_app.config.get("STATE_STORE")
    gateway = current_app.config.get("GATEWAY")

    health_status = {
        "status": "ok",
        "environment": current_app.config.get("ENVIRONMENT", "unknown"),
        "checks": {
            "remote_store": "configured" if gateway and gateway.is_configured else "not_configured",
        },
    }

    if store:
        ui = store.state.ui
        health_status["checks"]["sync_status"] = ui.sync_status.value
        health_status["checks"]["initialized"] = ui.is_initialized
    else:
        health_status["status"] = "degraded"

    return jsonify(health_status)


@api_bp.route("/api/state", methods=["GET"])
def get_state():
    return _state_response()


@api_bp.route("/api/data", methods=["PATCH"])
def update_data():
    """
    Apply form edits.

    Body is a JSON object of top-level application data keys. Every key is
    replaced in one UPDATE_DATA dispatch; unknown keys reject the request.
    """
    body = json_body()
    if not body:
        raise ValidationError("No fields to update")

    unknown = sorted(set(body) - set(DEFAULT_APP_DATA))
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}", field=unknown[0])

    patch = {
        key: sanitize(value) if key in TEXT_FIELDS else value
        for key, value in body.items()
    }
    service("STATE_STORE").dispatch(Action(ActionType.UPDATE_DATA, patch))
    logger.debug(f"Updated fields: {', '.join(sorted(patch))}")
    return _state_response()


@api_bp.route("/api/view", methods=["POST"])
def set_view():
    body = json_body()
    name = require_field(body, "view")
    try:
        view = View(name)
    except ValueError:
        raise ValidationError(f"Unknown view: {name}", field="view")

    store = service("STATE_STORE")
    store.dispatch(Action(ActionType.SET_VIEW, view))
    if "customerId" in body:
        store.dispatch(Action(ActionType.SET_VIEWING_CUSTOMER, body["customerId"]))
    return _state_response()


@api_bp.route("/api/notifications/<notification_id>/dismiss", methods=["POST"])
def dismiss_notification(notification_id: str):
    service("STATE_STORE").dispatch(Action(ActionType.DISMISS_NOTIFICATION, notification_id))
    return _state_response()


@api_bp.route("/api/sync/push", methods=["POST"])
def sync_push():
    """Manual push: bypasses the debounce."""
    _require_session("sync_push")
    ok = service("SYNC_SERVICE").sync_now()
    response = _state_response()
    return response, (200 if ok else 502)


@api_bp.route("/api/sync/pull", methods=["POST"])
def sync_pull():
    """Manual pull: replaces local data with the remote copy."""
    _require_session("sync_pull")
    ok = service("SYNC_SERVICE").pull()
    response = _state_response()
    return response, (200 if ok else 502)
